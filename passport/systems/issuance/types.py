"""
Passport — Issuance Event Types
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field

from passport.primitives.common import PassportBaseModel, new_id, utc_now


class PassportEventType(enum.StrEnum):
    ISSUE = "issue"
    WITHDRAW = "withdraw"


class EventReason(enum.StrEnum):
    """Which operation produced the event."""

    CLAIM = "claim"
    WITHDRAW = "withdraw"         # Holder relinquished it
    REVOKE = "revoke"             # Third party, balance under floor
    ADMIN_REVOKE = "admin_revoke"


class PassportEvent(PassportBaseModel):
    """Emitted once per successful issuance or withdrawal, after mutation."""

    id: str = Field(default_factory=new_id)
    event_type: PassportEventType
    timestamp: datetime = Field(default_factory=utc_now)
    identity: str
    token_id: int
    reason: EventReason
