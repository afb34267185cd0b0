"""
Unit tests for the balance oracle clients.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_utils import to_checksum_address

from passport.clients.oracle import (
    InMemoryBalanceOracle,
    Web3BalanceOracle,
    create_balance_oracle,
)
from passport.config import OracleConfig

ALICE = "0x" + "a1" * 20
TOKEN = "0x" + "70" * 20


def make_w3(balance: int = 0) -> MagicMock:
    w3 = MagicMock()
    contract = MagicMock()
    contract.functions.balanceOf.return_value.call = AsyncMock(return_value=balance)
    w3.eth.contract.return_value = contract
    w3.provider.disconnect = AsyncMock()
    return w3


class TestInMemoryBalanceOracle:
    @pytest.mark.asyncio
    async def test_unknown_identity_is_zero(self):
        assert await InMemoryBalanceOracle().balance_of(ALICE) == 0

    @pytest.mark.asyncio
    async def test_set_balance_any_case(self):
        oracle = InMemoryBalanceOracle()
        oracle.set_balance(ALICE.upper().replace("0X", "0x"), 42)
        assert await oracle.balance_of(ALICE) == 42

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            InMemoryBalanceOracle({ALICE: -1})

    def test_invalid_identity_rejected(self):
        with pytest.raises(ValueError):
            InMemoryBalanceOracle().set_balance("alice", 1)


class TestWeb3BalanceOracle:
    @pytest.mark.asyncio
    async def test_balance_of_calls_contract(self):
        w3 = make_w3(balance=1234)
        oracle = Web3BalanceOracle(TOKEN, w3=w3)
        await oracle.connect()

        assert await oracle.balance_of(ALICE.lower()) == 1234

        contract = w3.eth.contract.return_value
        contract.functions.balanceOf.assert_called_with(to_checksum_address(ALICE))

    @pytest.mark.asyncio
    async def test_not_connected(self):
        oracle = Web3BalanceOracle(TOKEN, w3=make_w3())
        with pytest.raises(RuntimeError, match="not connected"):
            await oracle.balance_of(ALICE)

    @pytest.mark.asyncio
    async def test_connect_needs_rpc_or_client(self):
        with pytest.raises(ValueError):
            await Web3BalanceOracle(TOKEN).connect()

    @pytest.mark.asyncio
    async def test_close_disconnects(self):
        w3 = make_w3()
        oracle = Web3BalanceOracle(TOKEN, w3=w3)
        await oracle.connect()
        await oracle.close()

        w3.provider.disconnect.assert_awaited_once()
        with pytest.raises(RuntimeError):
            await oracle.balance_of(ALICE)

    @pytest.mark.asyncio
    async def test_rpc_failure_propagates(self):
        w3 = make_w3()
        w3.eth.contract.return_value.functions.balanceOf.return_value.call = AsyncMock(
            side_effect=ConnectionError("rpc down")
        )
        oracle = Web3BalanceOracle(TOKEN, w3=w3)
        await oracle.connect()

        with pytest.raises(ConnectionError):
            await oracle.balance_of(ALICE)


class TestCreateBalanceOracle:
    def test_memory(self):
        oracle = create_balance_oracle(OracleConfig(kind="memory", static_balances={ALICE: 5}))
        assert isinstance(oracle, InMemoryBalanceOracle)

    def test_web3(self):
        oracle = create_balance_oracle(
            OracleConfig(kind="web3", rpc_url="http://localhost:8545", token_address=TOKEN)
        )
        assert isinstance(oracle, Web3BalanceOracle)
