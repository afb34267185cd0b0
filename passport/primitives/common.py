"""
Passport — Common Primitives

Shared base models, identifiers, and identity normalisation used across
all systems.
"""

from __future__ import annotations

from datetime import datetime, timezone

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def normalize_identity(identity: str) -> str:
    """
    Canonical form of an identity: the EIP-55 checksum address.

    Signature recovery yields checksum addresses, so every identity used as
    a ledger key goes through here first. Raises ValueError when the value
    is not a 20-byte hex address.
    """
    if not isinstance(identity, str) or not is_address(identity):
        raise ValueError(f"Invalid identity: {identity!r}")
    return to_checksum_address(identity)


# ─── Base Models ──────────────────────────────────────────────────


class PassportBaseModel(BaseModel):
    """Base model for all Passport primitives."""

    model_config = {"populate_by_name": True, "from_attributes": True}
