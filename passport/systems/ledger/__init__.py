"""
Passport — Membership Ledger

Membership status per identity, the issuance cap counter, transactional
rollback, and snapshot persistence.
"""

from passport.systems.ledger.ledger import (
    IssuanceCounter,
    LedgerTransaction,
    MembershipLedger,
)
from passport.systems.ledger.store import LedgerStore

__all__ = [
    "IssuanceCounter",
    "LedgerStore",
    "LedgerTransaction",
    "MembershipLedger",
]
