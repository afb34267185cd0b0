"""
Passport — Membership Token Minter

Allocates and destroys passport token ids. The engine treats the minter
as an external system: both calls either succeed or raise, never
silently no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog

from passport.primitives.common import normalize_identity

if TYPE_CHECKING:
    from passport.primitives.membership import LedgerSnapshot

logger = structlog.get_logger("passport.clients.minter")


class BaseTokenMinter(ABC):
    """Mints and burns non-transferable membership tokens."""

    @abstractmethod
    async def mint(self, identity: str) -> int:
        """Mint a token to identity and return its id."""
        ...

    @abstractmethod
    async def burn(self, token_id: int) -> None:
        """Destroy a token. Raises if the token does not exist."""
        ...


class InMemoryTokenMinter(BaseTokenMinter):
    """
    Sequential token ids starting at 1. Id 0 is never allocated, so it
    can never be mistaken for a live token.
    """

    def __init__(self) -> None:
        self._next_id: int = 1
        self._owners: dict[int, str] = {}
        self._logger = logger.bind(component="in_memory_minter")

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot | None) -> InMemoryTokenMinter:
        """
        Rebuild ownership from a persisted ledger so a restarted service
        never hands out an id a live holder already owns.

        Withdrawn records no longer carry their id, so the counter resumes
        past both the highest live id and the number of issuances made.
        """
        minter = cls()
        if snapshot is None:
            return minter
        for record in snapshot.records.values():
            if record.has_token:
                assert record.token_id is not None
                minter._owners[record.token_id] = record.identity
        highest = max(minter._owners, default=0)
        minter._next_id = max(highest, snapshot.counters.total_issued) + 1
        minter._logger.info(
            "minter_restored",
            live_tokens=len(minter._owners),
            next_id=minter._next_id,
        )
        return minter

    async def mint(self, identity: str) -> int:
        owner = normalize_identity(identity)
        token_id = self._next_id
        self._next_id += 1
        self._owners[token_id] = owner
        self._logger.debug("token_minted", token_id=token_id, owner=owner)
        return token_id

    async def burn(self, token_id: int) -> None:
        if token_id not in self._owners:
            raise KeyError(f"Token {token_id} does not exist")
        owner = self._owners.pop(token_id)
        self._logger.debug("token_burned", token_id=token_id, owner=owner)

    def owner_of(self, token_id: int) -> str | None:
        return self._owners.get(token_id)

    @property
    def supply(self) -> int:
        return len(self._owners)
