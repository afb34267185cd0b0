"""
Passport — Membership Ledger & Issuance Cap Counter

identity -> (status, token id), plus the global issuance counter.

Invariants held here:
  - status only moves NOT_ISSUED -> ISSUED -> WITHDRAWN
  - at most one issuance per identity, ever
  - total_issued <= max_issuances; withdrawal never decrements it
  - a WITHDRAWN identity has no resolvable token id

Every mutation validates before writing, so a raised error leaves the
ledger untouched. LedgerTransaction adds snapshot/restore around a
multi-step operation that also touches external collaborators.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from types import TracebackType

import structlog

from passport.errors import (
    IssuancesLimitReached,
    PassportAlreadyIssued,
    PassportNotIssued,
    RollbackError,
)
from passport.primitives.common import normalize_identity
from passport.primitives.membership import (
    IssuanceCounters,
    LedgerSnapshot,
    MembershipRecord,
    MembershipStatus,
)

logger = structlog.get_logger("passport.systems.ledger")

Compensation = Callable[[], Awaitable[None]]


class IssuanceCounter:
    """Counts issuances against a cap fixed at construction."""

    def __init__(self, max_issuances: int, total_issued: int = 0) -> None:
        if max_issuances < 0:
            raise ValueError(f"max_issuances must be >= 0, got {max_issuances}")
        if not 0 <= total_issued <= max_issuances:
            raise ValueError(
                f"total_issued {total_issued} outside [0, {max_issuances}]"
            )
        self._max_issuances = max_issuances
        self._total_issued = total_issued

    @property
    def max_issuances(self) -> int:
        return self._max_issuances

    @property
    def total_issued(self) -> int:
        return self._total_issued

    def ensure_capacity(self) -> None:
        if self._total_issued >= self._max_issuances:
            raise IssuancesLimitReached(
                f"All {self._max_issuances} passports have been issued"
            )

    def increment(self) -> None:
        self.ensure_capacity()
        self._total_issued += 1

    def to_counters(self) -> IssuanceCounters:
        return IssuanceCounters(
            total_issued=self._total_issued,
            max_issuances=self._max_issuances,
        )


class MembershipLedger:
    """
    In-memory membership state. Identities are keyed by checksum address;
    any identity never written reads as NOT_ISSUED.
    """

    def __init__(self, max_issuances: int) -> None:
        self._records: dict[str, MembershipRecord] = {}
        self._counter = IssuanceCounter(max_issuances)
        self._logger = logger.bind(component="membership_ledger")

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot) -> MembershipLedger:
        ledger = cls(snapshot.counters.max_issuances)
        ledger.restore(snapshot)
        return ledger

    # ─── Reads ───────────────────────────────────────────────────

    @property
    def counter(self) -> IssuanceCounter:
        return self._counter

    @property
    def total_issued(self) -> int:
        return self._counter.total_issued

    @property
    def max_issuances(self) -> int:
        return self._counter.max_issuances

    def record_of(self, identity: str) -> MembershipRecord:
        key = normalize_identity(identity)
        record = self._records.get(key)
        if record is None:
            return MembershipRecord(identity=key)
        return record.model_copy()

    def status_of(self, identity: str) -> MembershipStatus:
        record = self._records.get(normalize_identity(identity))
        return record.status if record is not None else MembershipStatus.NOT_ISSUED

    def token_id_of(self, identity: str) -> int:
        key = normalize_identity(identity)
        record = self._records.get(key)
        if record is None or not record.has_token:
            raise PassportNotIssued(f"{key} holds no passport")
        assert record.token_id is not None
        return record.token_id

    def __len__(self) -> int:
        return len(self._records)

    # ─── Mutations ───────────────────────────────────────────────

    def record_issuance(self, identity: str, token_id: int) -> None:
        key = normalize_identity(identity)
        status = self.status_of(key)
        if status != MembershipStatus.NOT_ISSUED:
            raise PassportAlreadyIssued(f"{key} is already {status.value}")
        self._counter.ensure_capacity()

        self._records[key] = MembershipRecord(
            identity=key,
            status=MembershipStatus.ISSUED,
            token_id=token_id,
        )
        self._counter.increment()
        self._logger.info(
            "issuance_recorded",
            identity=key,
            token_id=token_id,
            total_issued=self._counter.total_issued,
        )

    def record_withdrawal(self, identity: str) -> int:
        """Mark the identity WITHDRAWN and return the token id it held."""
        key = normalize_identity(identity)
        token_id = self.token_id_of(key)
        self._records[key] = MembershipRecord(
            identity=key,
            status=MembershipStatus.WITHDRAWN,
            token_id=None,
        )
        self._logger.info("withdrawal_recorded", identity=key, token_id=token_id)
        return token_id

    # ─── Snapshot / Restore ──────────────────────────────────────

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            records={k: r.model_copy() for k, r in self._records.items()},
            counters=self._counter.to_counters(),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        self._counter = IssuanceCounter(
            snapshot.counters.max_issuances,
            snapshot.counters.total_issued,
        )
        self._records = {k: r.model_copy() for k, r in snapshot.records.items()}

    def transaction(self) -> LedgerTransaction:
        return LedgerTransaction(self)


class LedgerTransaction:
    """
    All-or-nothing boundary around ledger writes and collaborator calls.

    On entry the ledger is snapshotted. If the block raises, the snapshot
    is restored and registered compensations run in reverse order before
    the original exception propagates. A failing compensation raises
    RollbackError chained to the original failure.

        async with ledger.transaction() as tx:
            token_id = await minter.mint(identity)
            tx.add_compensation(lambda: minter.burn(token_id))
            ledger.record_issuance(identity, token_id)
    """

    def __init__(self, ledger: MembershipLedger) -> None:
        self._ledger = ledger
        self._snapshot: LedgerSnapshot | None = None
        self._compensations: list[Compensation] = []

    def add_compensation(self, compensation: Compensation) -> None:
        self._compensations.append(compensation)

    async def __aenter__(self) -> LedgerTransaction:
        self._snapshot = self._ledger.snapshot()
        self._compensations = []
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            return
        await self.rollback(exc)

    async def rollback(self, cause: BaseException) -> None:
        assert self._snapshot is not None
        self._ledger.restore(self._snapshot)
        logger.warning(
            "ledger_rolled_back",
            cause=type(cause).__name__,
            compensations=len(self._compensations),
        )
        for compensation in reversed(self._compensations):
            try:
                await compensation()
            except Exception as comp_exc:
                logger.error(
                    "compensation_failed",
                    cause=type(cause).__name__,
                    error=str(comp_exc),
                )
                raise RollbackError(
                    f"Compensation failed after {type(cause).__name__}: {comp_exc}"
                ) from cause
