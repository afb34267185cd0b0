"""
Unit tests for the Membership Ledger and Issuance Cap Counter.

Tests status transitions, the monotonic cap counter, token id
resolution for withdrawn identities, and transactional rollback.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from passport.errors import (
    IssuancesLimitReached,
    PassportAlreadyIssued,
    PassportNotIssued,
    RollbackError,
)
from passport.primitives.membership import MembershipStatus
from passport.systems.ledger.ledger import IssuanceCounter, MembershipLedger

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20


def make_ledger(max_issuances: int = 10, issued: tuple[str, ...] = ()) -> MembershipLedger:
    ledger = MembershipLedger(max_issuances)
    for token_id, identity in enumerate(issued, start=1):
        ledger.record_issuance(identity, token_id)
    return ledger


# ─── Issuance Counter ────────────────────────────────────────────


class TestIssuanceCounter:
    def test_starts_empty(self):
        counter = IssuanceCounter(3)
        assert counter.total_issued == 0
        assert counter.max_issuances == 3
        assert counter.to_counters().remaining == 3

    def test_increment_until_exhausted(self):
        counter = IssuanceCounter(2)
        counter.increment()
        counter.increment()

        assert counter.to_counters().exhausted
        with pytest.raises(IssuancesLimitReached):
            counter.ensure_capacity()
        with pytest.raises(IssuancesLimitReached):
            counter.increment()
        assert counter.total_issued == 2

    def test_zero_cap_rejects_immediately(self):
        with pytest.raises(IssuancesLimitReached):
            IssuanceCounter(0).ensure_capacity()

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError):
            IssuanceCounter(-1)

    def test_total_above_cap_rejected(self):
        with pytest.raises(ValueError):
            IssuanceCounter(2, total_issued=3)


# ─── Status Transitions ──────────────────────────────────────────


class TestStatusTransitions:
    def test_unknown_identity_not_issued(self):
        ledger = make_ledger()
        assert ledger.status_of(ALICE) == MembershipStatus.NOT_ISSUED
        assert ledger.record_of(ALICE).token_id is None
        assert len(ledger) == 0

    def test_issue(self):
        ledger = make_ledger()
        ledger.record_issuance(ALICE, 7)

        assert ledger.status_of(ALICE) == MembershipStatus.ISSUED
        assert ledger.token_id_of(ALICE) == 7
        assert ledger.total_issued == 1

    def test_identity_lookup_ignores_case(self):
        ledger = make_ledger(issued=(ALICE,))
        assert ledger.status_of(ALICE.upper().replace("0X", "0x")) == MembershipStatus.ISSUED

    def test_double_issue_rejected(self):
        ledger = make_ledger(issued=(ALICE,))
        with pytest.raises(PassportAlreadyIssued):
            ledger.record_issuance(ALICE, 2)
        assert ledger.total_issued == 1
        assert ledger.token_id_of(ALICE) == 1

    def test_withdraw(self):
        ledger = make_ledger(issued=(ALICE,))
        token_id = ledger.record_withdrawal(ALICE)

        assert token_id == 1
        assert ledger.status_of(ALICE) == MembershipStatus.WITHDRAWN

    def test_withdraw_does_not_decrement_total(self):
        ledger = make_ledger(issued=(ALICE, BOB))
        ledger.record_withdrawal(ALICE)
        assert ledger.total_issued == 2

    def test_withdrawn_cannot_reissue(self):
        ledger = make_ledger(issued=(ALICE,))
        ledger.record_withdrawal(ALICE)

        with pytest.raises(PassportAlreadyIssued):
            ledger.record_issuance(ALICE, 5)
        assert ledger.status_of(ALICE) == MembershipStatus.WITHDRAWN

    def test_withdraw_without_passport_rejected(self):
        ledger = make_ledger()
        with pytest.raises(PassportNotIssued):
            ledger.record_withdrawal(ALICE)
        assert ledger.status_of(ALICE) == MembershipStatus.NOT_ISSUED

    def test_double_withdraw_rejected(self):
        ledger = make_ledger(issued=(ALICE,))
        ledger.record_withdrawal(ALICE)
        with pytest.raises(PassportNotIssued):
            ledger.record_withdrawal(ALICE)


class TestTokenIdResolution:
    def test_never_issued(self):
        with pytest.raises(PassportNotIssued):
            make_ledger().token_id_of(ALICE)

    def test_withdrawn_has_no_token(self):
        ledger = make_ledger(issued=(ALICE,))
        ledger.record_withdrawal(ALICE)

        with pytest.raises(PassportNotIssued):
            ledger.token_id_of(ALICE)
        assert ledger.record_of(ALICE).token_id is None

    def test_record_is_a_copy(self):
        ledger = make_ledger(issued=(ALICE,))
        record = ledger.record_of(ALICE)
        record.status = MembershipStatus.WITHDRAWN

        assert ledger.status_of(ALICE) == MembershipStatus.ISSUED


class TestCap:
    def test_cap_blocks_new_identity(self):
        ledger = make_ledger(max_issuances=2, issued=(ALICE, BOB))

        with pytest.raises(IssuancesLimitReached):
            ledger.record_issuance(CAROL, 3)
        assert ledger.status_of(CAROL) == MembershipStatus.NOT_ISSUED
        assert ledger.total_issued == 2

    def test_withdrawal_does_not_free_capacity(self):
        ledger = make_ledger(max_issuances=1, issued=(ALICE,))
        ledger.record_withdrawal(ALICE)

        with pytest.raises(IssuancesLimitReached):
            ledger.record_issuance(BOB, 2)


# ─── Snapshot / Transaction ──────────────────────────────────────


class TestSnapshot:
    def test_restore_round_trip(self):
        ledger = make_ledger(issued=(ALICE, BOB))
        ledger.record_withdrawal(BOB)
        snapshot = ledger.snapshot()

        restored = MembershipLedger.from_snapshot(snapshot)

        assert restored.status_of(ALICE) == MembershipStatus.ISSUED
        assert restored.status_of(BOB) == MembershipStatus.WITHDRAWN
        assert restored.total_issued == 2
        assert restored.max_issuances == 10

    def test_snapshot_isolated_from_later_writes(self):
        ledger = make_ledger(issued=(ALICE,))
        snapshot = ledger.snapshot()
        ledger.record_issuance(BOB, 2)

        assert len(snapshot.records) == 1
        assert snapshot.counters.total_issued == 1


class TestLedgerTransaction:
    @pytest.mark.asyncio
    async def test_commit_keeps_writes(self):
        ledger = make_ledger()
        async with ledger.transaction():
            ledger.record_issuance(ALICE, 1)

        assert ledger.status_of(ALICE) == MembershipStatus.ISSUED

    @pytest.mark.asyncio
    async def test_failure_restores_snapshot(self):
        ledger = make_ledger()
        with pytest.raises(ConnectionError):
            async with ledger.transaction():
                ledger.record_issuance(ALICE, 1)
                raise ConnectionError("minter down")

        assert ledger.status_of(ALICE) == MembershipStatus.NOT_ISSUED
        assert ledger.total_issued == 0

    @pytest.mark.asyncio
    async def test_compensations_run_in_reverse(self):
        ledger = make_ledger()
        order: list[str] = []

        async def first() -> None:
            order.append("first")

        async def second() -> None:
            order.append("second")

        with pytest.raises(ConnectionError):
            async with ledger.transaction() as tx:
                tx.add_compensation(first)
                tx.add_compensation(second)
                raise ConnectionError("boom")

        assert order == ["second", "first"]

    @pytest.mark.asyncio
    async def test_compensations_skipped_on_success(self):
        ledger = make_ledger()
        compensation = AsyncMock()
        async with ledger.transaction() as tx:
            tx.add_compensation(compensation)
            ledger.record_issuance(ALICE, 1)

        compensation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_compensation_raises_rollback_error(self):
        ledger = make_ledger()
        compensation = AsyncMock(side_effect=OSError("burn failed"))

        with pytest.raises(RollbackError) as exc_info:
            async with ledger.transaction() as tx:
                tx.add_compensation(compensation)
                ledger.record_issuance(ALICE, 1)
                raise ConnectionError("persist failed")

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert ledger.status_of(ALICE) == MembershipStatus.NOT_ISSUED
