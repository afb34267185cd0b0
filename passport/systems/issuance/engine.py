"""
Passport — Issuance / Revocation Engine

Orchestrates consent, eligibility, the issuance cap, the membership
ledger, and the external minter/burner.

Per-identity state machine:

  NOT_ISSUED --claim--> ISSUED --withdraw | revoke | admin_revoke--> WITHDRAWN

WITHDRAWN is terminal: a withdrawn identity can never claim again.

Claim checks, in order: issuance enabled, cap not exhausted, caller not
yet issued, caller balance >= claim threshold, consent signature valid.
Only then is a token minted and the issuance recorded.

Concurrency: every mutating operation, setters included, holds one
engine-wide asyncio.Lock for its whole duration. That serialises
mutations the way a single-writer substrate would, so "one issuance per
identity" and "total_issued <= max_issuances" hold under concurrent
callers. Reads take no lock and may see a balance that is already stale.

Atomicity: collaborator calls and ledger writes run inside a
LedgerTransaction. A failed mint/burn or a failed persist restores the
ledger snapshot and undoes whatever the collaborators already did, so
a raised error always means no observable effect.

Lifecycle:
  PassportEngine(settings, admins)  -- construct with the settings handle
  initialize(...)                   -- wire collaborators, exactly once
  claim / withdraw / revoke / admin_revoke
  set_* / recover_assets            -- administrator surface
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog

from passport.errors import (
    AlreadyInitialized,
    AssetRecoveryUnavailable,
    IssuanceIsDisabled,
    NonRevocable,
    NotEligible,
    NotInitialized,
    PassportAlreadyIssued,
    PassportError,
    Unauthorized,
)
from passport.primitives.common import normalize_identity
from passport.primitives.membership import (
    EligibilityParameters,
    MembershipRecord,
    MembershipStatus,
    PassportSettings,
)
from passport.systems.consent.verifier import ConsentVerifier, DomainContext
from passport.systems.eligibility.evaluator import EligibilityEvaluator
from passport.systems.issuance.event_bus import EventBus
from passport.systems.issuance.types import EventReason, PassportEvent, PassportEventType
from passport.systems.ledger.ledger import MembershipLedger

if TYPE_CHECKING:
    from passport.clients.minter import BaseTokenMinter
    from passport.clients.oracle import BaseBalanceOracle
    from passport.clients.vault import BaseAssetVault
    from passport.systems.ledger.store import LedgerStore

logger = structlog.get_logger("passport.systems.issuance")


class PassportEngine:
    def __init__(
        self,
        settings: PassportSettings,
        admins: Iterable[str] = (),
        event_bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._admins: frozenset[str] = frozenset(normalize_identity(a) for a in admins)
        self._event_bus = event_bus or EventBus()
        self._lock = asyncio.Lock()

        self._ledger: MembershipLedger | None = None
        self._verifier: ConsentVerifier | None = None
        self._eligibility: EligibilityEvaluator | None = None
        self._minter: BaseTokenMinter | None = None
        self._vault: BaseAssetVault | None = None
        self._store: LedgerStore | None = None
        self._initialized: bool = False

        self._logger = logger.bind(component="passport_engine")

    # ─── Lifecycle ───────────────────────────────────────────────

    async def initialize(
        self,
        balance_oracle: BaseBalanceOracle,
        minter: BaseTokenMinter,
        max_issuances: int,
        domain: DomainContext,
        asset_vault: BaseAssetVault | None = None,
        store: LedgerStore | None = None,
    ) -> None:
        """
        Wire collaborators and fix the issuance cap and signing domain.

        May run exactly once. When a store holds a previous snapshot, the
        ledger resumes from it and the persisted cap stays authoritative.
        """
        if self._initialized:
            raise AlreadyInitialized("PassportEngine is already initialized")
        if max_issuances < 0:
            raise ValueError(f"max_issuances must be >= 0, got {max_issuances}")

        ledger = MembershipLedger(max_issuances)
        if store is not None:
            snapshot = store.load()
            if snapshot is not None:
                if snapshot.counters.max_issuances != max_issuances:
                    self._logger.warning(
                        "persisted_cap_differs",
                        persisted=snapshot.counters.max_issuances,
                        configured=max_issuances,
                    )
                ledger = MembershipLedger.from_snapshot(snapshot)

        self._ledger = ledger
        self._verifier = ConsentVerifier(domain, self._settings)
        self._eligibility = EligibilityEvaluator(balance_oracle, self._settings)
        self._minter = minter
        self._vault = asset_vault
        self._store = store
        self._initialized = True

        self._logger.info(
            "passport_engine_initialized",
            max_issuances=ledger.max_issuances,
            total_issued=ledger.total_issued,
            domain_separator=domain.separator_hex,
            admins=len(self._admins),
            persistent=store is not None,
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized("PassportEngine.initialize() has not been called")

    @property
    def ledger(self) -> MembershipLedger:
        self._require_initialized()
        assert self._ledger is not None
        return self._ledger

    @property
    def verifier(self) -> ConsentVerifier:
        self._require_initialized()
        assert self._verifier is not None
        return self._verifier

    @property
    def eligibility(self) -> EligibilityEvaluator:
        self._require_initialized()
        assert self._eligibility is not None
        return self._eligibility

    @property
    def minter(self) -> BaseTokenMinter:
        self._require_initialized()
        assert self._minter is not None
        return self._minter

    @property
    def settings(self) -> PassportSettings:
        return self._settings

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def is_admin(self, identity: str) -> bool:
        return normalize_identity(identity) in self._admins

    # ─── Membership Operations ───────────────────────────────────

    async def claim(self, caller: str, signature: bytes | str) -> int:
        """Issue a passport to caller. Returns the new token id."""
        self._require_initialized()
        identity = normalize_identity(caller)
        ledger = self.ledger

        async with self._lock:
            try:
                if not self._settings.issuance_enabled:
                    raise IssuanceIsDisabled("Passport issuance is disabled")
                ledger.counter.ensure_capacity()
                status = ledger.status_of(identity)
                if status != MembershipStatus.NOT_ISSUED:
                    raise PassportAlreadyIssued(f"{identity} is already {status.value}")
                if not await self.eligibility.can_claim(identity):
                    raise NotEligible(
                        f"{identity} holds less than "
                        f"{self._settings.eligibility.claim_required_balance}"
                    )
                self.verifier.verify_consent(signature, identity)
            except PassportError as exc:
                self._log_rejection("claim", identity, exc)
                raise

            minter = self.minter
            async with ledger.transaction() as tx:
                token_id = await minter.mint(identity)
                tx.add_compensation(partial(minter.burn, token_id))
                ledger.record_issuance(identity, token_id)
                self._persist()

        self._logger.info(
            "passport_issued",
            identity=identity,
            token_id=token_id,
            total_issued=ledger.total_issued,
            max_issuances=ledger.max_issuances,
        )
        await self._emit(PassportEventType.ISSUE, identity, token_id, EventReason.CLAIM)
        return token_id

    async def withdraw(self, caller: str) -> int:
        """Caller voluntarily gives up its passport. No eligibility check."""
        self._require_initialized()
        identity = normalize_identity(caller)
        async with self._lock:
            token_id = await self._withdraw(identity, EventReason.WITHDRAW)
        await self._emit(PassportEventType.WITHDRAW, identity, token_id, EventReason.WITHDRAW)
        return token_id

    async def revoke(self, caller: str, target: str) -> int:
        """Anyone may revoke a passport whose holder's balance is under the floor."""
        self._require_initialized()
        identity = normalize_identity(target)
        async with self._lock:
            if not await self.eligibility.can_revoke(identity):
                exc = NonRevocable(
                    f"{identity} holds at least "
                    f"{self._settings.eligibility.revoke_under_balance}"
                )
                self._log_rejection("revoke", identity, exc, caller=caller)
                raise exc
            token_id = await self._withdraw(identity, EventReason.REVOKE, caller=caller)
        await self._emit(PassportEventType.WITHDRAW, identity, token_id, EventReason.REVOKE)
        return token_id

    async def admin_revoke(self, caller: str, target: str) -> int:
        """Unconditional administrative revocation."""
        self._require_initialized()
        identity = normalize_identity(target)
        async with self._lock:
            self._require_admin(caller, "admin_revoke")
            token_id = await self._withdraw(identity, EventReason.ADMIN_REVOKE, caller=caller)
        await self._emit(
            PassportEventType.WITHDRAW, identity, token_id, EventReason.ADMIN_REVOKE
        )
        return token_id

    async def _withdraw(self, identity: str, reason: EventReason, caller: str = "") -> int:
        """
        Shared withdrawal path. Must be called with the lock held.

        The ledger is written and persisted before the burn, so a failed
        burn is undone by restoring the snapshot.
        """
        ledger = self.ledger
        minter = self.minter
        try:
            token_id = ledger.token_id_of(identity)
        except PassportError as exc:
            self._log_rejection(reason.value, identity, exc, caller=caller)
            raise

        async with ledger.transaction() as tx:
            ledger.record_withdrawal(identity)
            if self._store is not None:
                self._persist()
                tx.add_compensation(self._persist_async)
            await minter.burn(token_id)

        self._logger.info(
            "passport_withdrawn",
            identity=identity,
            token_id=token_id,
            reason=reason.value,
            caller=caller or identity,
        )
        return token_id

    # ─── Administration ──────────────────────────────────────────

    async def set_eligibility_params(
        self,
        caller: str,
        claim_required_balance: int,
        revoke_under_balance: int,
    ) -> None:
        async with self._lock:
            self._require_admin(caller, "set_eligibility_params")
            self._settings.eligibility = EligibilityParameters(
                claim_required_balance=claim_required_balance,
                revoke_under_balance=revoke_under_balance,
            )
        self._logger.info(
            "eligibility_params_updated",
            claim_required_balance=claim_required_balance,
            revoke_under_balance=revoke_under_balance,
        )

    async def set_issuance_enabled(self, caller: str, enabled: bool) -> None:
        async with self._lock:
            self._require_admin(caller, "set_issuance_enabled")
            self._settings.issuance_enabled = enabled
        self._logger.info("issuance_enabled_updated", enabled=enabled)

    async def set_agreement_statement(self, caller: str, statement: str) -> None:
        """Changing the text invalidates every consent signature made before."""
        async with self._lock:
            self._require_admin(caller, "set_agreement_statement")
            self._settings.agreement = self._settings.agreement.model_copy(
                update={"statement": statement}
            )
        self._logger.info("agreement_statement_updated", length=len(statement))

    async def set_agreement_terms_uri(self, caller: str, terms_uri: str) -> None:
        async with self._lock:
            self._require_admin(caller, "set_agreement_terms_uri")
            self._settings.agreement = self._settings.agreement.model_copy(
                update={"terms_uri": terms_uri}
            )
        self._logger.info("agreement_terms_uri_updated", terms_uri=terms_uri)

    async def recover_assets(
        self,
        caller: str,
        asset: str,
        recipient: str,
        amount: int,
    ) -> None:
        """Sweep unrelated assets sent to the engine's holding address."""
        self._require_initialized()
        to = normalize_identity(recipient)
        async with self._lock:
            self._require_admin(caller, "recover_assets")
            if self._vault is None:
                raise AssetRecoveryUnavailable("No asset vault is configured")
            await self._vault.transfer(asset, to, amount)
        self._logger.info("assets_recovered", asset=asset, recipient=to, amount=amount)

    def _require_admin(self, caller: str, operation: str) -> None:
        if not self.is_admin(caller):
            self._logger.warning("admin_call_rejected", caller=caller, operation=operation)
            raise Unauthorized(f"{caller} is not an administrator")

    # ─── Queries ─────────────────────────────────────────────────

    def status_of(self, identity: str) -> MembershipStatus:
        return self.ledger.status_of(identity)

    def token_id_of(self, identity: str) -> int:
        return self.ledger.token_id_of(identity)

    def record_of(self, identity: str) -> MembershipRecord:
        return self.ledger.record_of(identity)

    async def balance_of(self, identity: str) -> int:
        return await self.eligibility.balance_of(identity)

    async def can_claim(self, identity: str) -> bool:
        return await self.eligibility.can_claim(identity)

    async def can_revoke(self, identity: str) -> bool:
        return await self.eligibility.can_revoke(identity)

    @property
    def total_issued(self) -> int:
        return self.ledger.total_issued

    @property
    def max_issuances(self) -> int:
        return self.ledger.max_issuances

    @property
    def stats(self) -> dict[str, Any]:
        """Summary stats for observability."""
        ledger = self.ledger
        return {
            "total_issued": ledger.total_issued,
            "max_issuances": ledger.max_issuances,
            "remaining": ledger.counter.to_counters().remaining,
            "known_identities": len(ledger),
            "issuance_enabled": self._settings.issuance_enabled,
            "claim_required_balance": self._settings.eligibility.claim_required_balance,
            "revoke_under_balance": self._settings.eligibility.revoke_under_balance,
            "domain_separator": self.verifier.domain.separator_hex,
            "events": self._event_bus.stats,
        }

    async def health(self) -> dict[str, Any]:
        if not self._initialized:
            return {"status": "unhealthy", "reason": "not_initialized"}
        return {
            "status": "healthy",
            "total_issued": self.total_issued,
            "max_issuances": self.max_issuances,
        }

    # ─── Internals ───────────────────────────────────────────────

    def _persist(self) -> None:
        if self._store is not None:
            self._store.save(self.ledger.snapshot())

    async def _persist_async(self) -> None:
        self._persist()

    async def _emit(
        self,
        event_type: PassportEventType,
        identity: str,
        token_id: int,
        reason: EventReason,
    ) -> None:
        await self._event_bus.emit(
            PassportEvent(
                event_type=event_type,
                identity=identity,
                token_id=token_id,
                reason=reason,
            )
        )

    def _log_rejection(
        self,
        operation: str,
        identity: str,
        exc: PassportError,
        caller: str = "",
    ) -> None:
        self._logger.info(
            f"{operation}_rejected",
            identity=identity,
            code=exc.code,
            caller=caller or identity,
        )
