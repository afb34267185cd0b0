"""
Unit tests for the Eligibility Evaluator.

Tests threshold boundaries and that every decision reads the live
balance and the live thresholds.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from passport.clients.oracle import InMemoryBalanceOracle
from passport.primitives.membership import EligibilityParameters, PassportSettings
from passport.systems.eligibility.evaluator import EligibilityEvaluator

ALICE = "0x" + "a1" * 20


def make_evaluator(
    balance: int = 0,
    claim_required_balance: int = 100,
    revoke_under_balance: int = 50,
) -> tuple[EligibilityEvaluator, InMemoryBalanceOracle, PassportSettings]:
    oracle = InMemoryBalanceOracle({ALICE: balance})
    settings = PassportSettings(
        eligibility=EligibilityParameters(
            claim_required_balance=claim_required_balance,
            revoke_under_balance=revoke_under_balance,
        ),
    )
    return EligibilityEvaluator(oracle, settings), oracle, settings


class TestCanClaim:
    @pytest.mark.asyncio
    async def test_below_threshold(self):
        evaluator, _, _ = make_evaluator(balance=99)
        assert not await evaluator.can_claim(ALICE)

    @pytest.mark.asyncio
    async def test_at_threshold(self):
        evaluator, _, _ = make_evaluator(balance=100)
        assert await evaluator.can_claim(ALICE)

    @pytest.mark.asyncio
    async def test_above_threshold(self):
        evaluator, _, _ = make_evaluator(balance=1_000)
        assert await evaluator.can_claim(ALICE)

    @pytest.mark.asyncio
    async def test_zero_threshold_admits_empty_balance(self):
        evaluator, _, _ = make_evaluator(balance=0, claim_required_balance=0)
        assert await evaluator.can_claim(ALICE)


class TestCanRevoke:
    @pytest.mark.asyncio
    async def test_above_floor_not_revocable(self):
        evaluator, _, _ = make_evaluator(balance=60)
        assert not await evaluator.can_revoke(ALICE)

    @pytest.mark.asyncio
    async def test_at_floor_not_revocable(self):
        evaluator, _, _ = make_evaluator(balance=50)
        assert not await evaluator.can_revoke(ALICE)

    @pytest.mark.asyncio
    async def test_below_floor_revocable(self):
        evaluator, _, _ = make_evaluator(balance=49)
        assert await evaluator.can_revoke(ALICE)

    @pytest.mark.asyncio
    async def test_zero_floor_never_revocable(self):
        evaluator, _, _ = make_evaluator(balance=0, revoke_under_balance=0)
        assert not await evaluator.can_revoke(ALICE)

    @pytest.mark.asyncio
    async def test_inverted_thresholds_allowed(self):
        """Claim and revoke thresholds are independent and may overlap."""
        evaluator, _, _ = make_evaluator(
            balance=150, claim_required_balance=100, revoke_under_balance=200
        )
        assert await evaluator.can_claim(ALICE)
        assert await evaluator.can_revoke(ALICE)


class TestLiveReads:
    @pytest.mark.asyncio
    async def test_balance_change_between_calls(self):
        evaluator, oracle, _ = make_evaluator(balance=99)
        assert not await evaluator.can_claim(ALICE)

        oracle.set_balance(ALICE, 100)
        assert await evaluator.can_claim(ALICE)

    @pytest.mark.asyncio
    async def test_threshold_change_between_calls(self):
        evaluator, _, settings = make_evaluator(balance=100)
        assert await evaluator.can_claim(ALICE)

        settings.eligibility = EligibilityParameters(
            claim_required_balance=101, revoke_under_balance=50
        )
        assert not await evaluator.can_claim(ALICE)

    @pytest.mark.asyncio
    async def test_oracle_queried_every_call(self):
        oracle = AsyncMock()
        oracle.balance_of.return_value = 500
        evaluator = EligibilityEvaluator(oracle, PassportSettings())

        await evaluator.can_claim(ALICE)
        await evaluator.can_claim(ALICE)
        await evaluator.can_revoke(ALICE)

        assert oracle.balance_of.await_count == 3

    @pytest.mark.asyncio
    async def test_oracle_failure_propagates(self):
        oracle = AsyncMock()
        oracle.balance_of.side_effect = ConnectionError("rpc down")
        evaluator = EligibilityEvaluator(oracle, PassportSettings())

        with pytest.raises(ConnectionError):
            await evaluator.can_claim(ALICE)
