"""
Passport — Asset Vault

The engine's holding address. Unrelated assets sent there by mistake
can be swept back out by an administrator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict

import structlog

from passport.primitives.common import normalize_identity

logger = structlog.get_logger("passport.clients.vault")


class BaseAssetVault(ABC):
    """Holds stray assets and transfers them out on request."""

    @abstractmethod
    async def transfer(self, asset: str, recipient: str, amount: int) -> None:
        """Move amount of asset to recipient. Raises on insufficient holdings."""
        ...


class InMemoryAssetVault(BaseAssetVault):
    """Holdings per asset, keyed by asset identifier."""

    def __init__(self, holdings: dict[str, int] | None = None) -> None:
        self._holdings: dict[str, int] = defaultdict(int, holdings or {})
        self._credited: dict[tuple[str, str], int] = defaultdict(int)

    def deposit(self, asset: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Deposit must be positive, got {amount}")
        self._holdings[asset] += amount

    def holdings(self, asset: str) -> int:
        return self._holdings.get(asset, 0)

    def received(self, asset: str, recipient: str) -> int:
        """Total amount of asset transferred to recipient so far."""
        return self._credited.get((asset, normalize_identity(recipient)), 0)

    async def transfer(self, asset: str, recipient: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        held = self._holdings.get(asset, 0)
        if amount > held:
            raise ValueError(f"Insufficient {asset}: holding {held}, requested {amount}")
        to = normalize_identity(recipient)
        self._holdings[asset] = held - amount
        self._credited[(asset, to)] += amount
        logger.info("vault_transfer", asset=asset, recipient=to, amount=amount)
