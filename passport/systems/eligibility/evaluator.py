"""
Passport — Eligibility Evaluator

Compares an identity's live balance against the configured thresholds:

  can_claim(identity)  = balance >= claim_required_balance
  can_revoke(identity) = balance <  revoke_under_balance

No snapshot isolation: each call queries the oracle, so two calls can
disagree if the balance moved in between.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from passport.primitives.common import normalize_identity

if TYPE_CHECKING:
    from passport.clients.oracle import BaseBalanceOracle
    from passport.primitives.membership import PassportSettings

logger = structlog.get_logger("passport.systems.eligibility")


class EligibilityEvaluator:
    def __init__(self, oracle: BaseBalanceOracle, settings: PassportSettings) -> None:
        self._oracle = oracle
        self._settings = settings
        self._logger = logger.bind(component="eligibility_evaluator")

    async def balance_of(self, identity: str) -> int:
        return await self._oracle.balance_of(normalize_identity(identity))

    async def can_claim(self, identity: str) -> bool:
        balance = await self.balance_of(identity)
        required = self._settings.eligibility.claim_required_balance
        eligible = balance >= required
        self._logger.debug(
            "claim_eligibility",
            identity=identity,
            balance=balance,
            required=required,
            eligible=eligible,
        )
        return eligible

    async def can_revoke(self, identity: str) -> bool:
        balance = await self.balance_of(identity)
        floor = self._settings.eligibility.revoke_under_balance
        revocable = balance < floor
        self._logger.debug(
            "revoke_eligibility",
            identity=identity,
            balance=balance,
            floor=floor,
            revocable=revocable,
        )
        return revocable
