"""
Passport — External Collaborator Clients

Balance oracle, membership token minter, and asset vault.
"""

from passport.clients.minter import BaseTokenMinter, InMemoryTokenMinter
from passport.clients.oracle import (
    BaseBalanceOracle,
    InMemoryBalanceOracle,
    Web3BalanceOracle,
    create_balance_oracle,
)
from passport.clients.vault import BaseAssetVault, InMemoryAssetVault

__all__ = [
    "BaseAssetVault",
    "BaseBalanceOracle",
    "BaseTokenMinter",
    "InMemoryAssetVault",
    "InMemoryBalanceOracle",
    "InMemoryTokenMinter",
    "Web3BalanceOracle",
    "create_balance_oracle",
]
