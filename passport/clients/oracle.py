"""
Passport — Balance Oracle Clients

The engine's only view of an identity's locked balance. Reads are
side-effect free and never cached: every eligibility decision queries
the current balance.

Implementations:
  - InMemoryBalanceOracle  settable balances (dev, tests)
  - Web3BalanceOracle      ERC-20 style balanceOf(address) view call
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3

from passport.primitives.common import normalize_identity

if TYPE_CHECKING:
    from passport.config import OracleConfig

logger = structlog.get_logger("passport.clients.oracle")

# balanceOf(address) -> uint256
_BALANCE_OF_ABI: list[dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class BaseBalanceOracle(ABC):
    """Read-only source of an identity's current balance."""

    @abstractmethod
    async def balance_of(self, identity: str) -> int:
        """Return the identity's balance as a non-negative integer."""
        ...


class InMemoryBalanceOracle(BaseBalanceOracle):
    """Balances held in a dict. Unknown identities have a zero balance."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = {}
        for identity, amount in (balances or {}).items():
            self.set_balance(identity, amount)

    def set_balance(self, identity: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Balance must be non-negative, got {amount}")
        self._balances[normalize_identity(identity)] = amount

    async def balance_of(self, identity: str) -> int:
        return self._balances.get(normalize_identity(identity), 0)


class Web3BalanceOracle(BaseBalanceOracle):
    """
    Balance oracle backed by an on-chain token's balanceOf view.

    Lifecycle: construct → connect() → use → close().
    A pre-built AsyncWeb3 may be injected instead of an RPC URL.
    """

    def __init__(
        self,
        token_address: str,
        rpc_url: str = "",
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self._token_address = normalize_identity(token_address)
        self._rpc_url = rpc_url
        self._w3 = w3
        self._contract: Any = None
        self._logger = logger.bind(component="web3_balance_oracle")

    async def connect(self) -> None:
        if self._w3 is None:
            if not self._rpc_url:
                raise ValueError("Web3BalanceOracle needs an rpc_url or an injected AsyncWeb3")
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_url))
        self._contract = self._w3.eth.contract(
            address=self._token_address,
            abi=_BALANCE_OF_ABI,
        )
        self._logger.info("balance_oracle_connected", token=self._token_address)

    async def close(self) -> None:
        if self._w3 is None:
            return
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        self._contract = None

    async def balance_of(self, identity: str) -> int:
        if self._contract is None:
            raise RuntimeError("Web3BalanceOracle not connected. Call connect() first.")
        address = normalize_identity(identity)
        raw = await self._contract.functions.balanceOf(address).call()
        balance = int(raw)
        if balance < 0:
            raise ValueError(f"Oracle returned negative balance {balance} for {address}")
        self._logger.debug("balance_fetched", identity=address, balance=balance)
        return balance


def create_balance_oracle(config: OracleConfig) -> BaseBalanceOracle:
    """Build the oracle selected by config. Web3 oracles still need connect()."""
    if config.kind == "web3":
        return Web3BalanceOracle(
            token_address=config.token_address,
            rpc_url=config.rpc_url,
        )
    return InMemoryBalanceOracle(config.static_balances)
