"""
Passport — Shared Primitives

Every system communicates through these types.
"""

from passport.primitives.common import (
    PassportBaseModel,
    new_id,
    normalize_identity,
    utc_now,
)
from passport.primitives.membership import (
    ConsentAgreement,
    EligibilityParameters,
    IssuanceCounters,
    LedgerSnapshot,
    MembershipRecord,
    MembershipStatus,
    PassportSettings,
)

__all__ = [
    "ConsentAgreement",
    "EligibilityParameters",
    "IssuanceCounters",
    "LedgerSnapshot",
    "MembershipRecord",
    "MembershipStatus",
    "PassportBaseModel",
    "PassportSettings",
    "new_id",
    "normalize_identity",
    "utc_now",
]
