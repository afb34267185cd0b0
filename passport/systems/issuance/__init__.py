"""
Passport — Issuance & Revocation

The membership state machine: claim, withdraw, revoke, admin revoke,
and the events they emit.
"""

from passport.systems.issuance.engine import PassportEngine
from passport.systems.issuance.event_bus import EventBus
from passport.systems.issuance.types import EventReason, PassportEvent, PassportEventType

__all__ = [
    "EventBus",
    "EventReason",
    "PassportEngine",
    "PassportEvent",
    "PassportEventType",
]
