"""
Passport — Membership Primitives

The data model shared by the ledger, the engine, and the API:
membership status and records, issuance counters, eligibility
thresholds, the consent agreement, and the mutable settings record.
"""

from __future__ import annotations

import enum

from pydantic import Field, field_validator

from passport.primitives.common import PassportBaseModel


class MembershipStatus(enum.StrEnum):
    """
    Lifecycle of a passport for one identity.

    NOT_ISSUED is the default for every identity never written.
    Transitions only NOT_ISSUED -> ISSUED -> WITHDRAWN.
    """

    NOT_ISSUED = "not_issued"
    ISSUED = "issued"
    WITHDRAWN = "withdrawn"   # Terminal: never reissued


class MembershipRecord(PassportBaseModel):
    """One identity's membership. token_id is only meaningful while ISSUED."""

    identity: str
    status: MembershipStatus = MembershipStatus.NOT_ISSUED
    token_id: int | None = None

    @property
    def has_token(self) -> bool:
        return self.status == MembershipStatus.ISSUED and self.token_id is not None


class IssuanceCounters(PassportBaseModel):
    """total_issued only ever grows; max_issuances is fixed at initialization."""

    total_issued: int = 0
    max_issuances: int = 0

    @property
    def remaining(self) -> int:
        return max(self.max_issuances - self.total_issued, 0)

    @property
    def exhausted(self) -> bool:
        return self.total_issued >= self.max_issuances


class EligibilityParameters(PassportBaseModel):
    """
    Balance thresholds for claiming and third-party revocation.

    No relation between the two is enforced: they may overlap or invert.
    """

    claim_required_balance: int = Field(default=0, ge=0)
    revoke_under_balance: int = Field(default=0, ge=0)


class ConsentAgreement(PassportBaseModel):
    """The human-readable text an identity signs before claiming."""

    statement: str = ""
    terms_uri: str = ""


class PassportSettings(PassportBaseModel):
    """
    The single mutable configuration record read by the engine.

    Administrators change it through the engine's gated setters; the
    engine always reads the live values, never a copy.
    """

    issuance_enabled: bool = False
    eligibility: EligibilityParameters = Field(default_factory=EligibilityParameters)
    agreement: ConsentAgreement = Field(default_factory=ConsentAgreement)


class LedgerSnapshot(PassportBaseModel):
    """Full copy of ledger and counter state, for rollback and persistence."""

    records: dict[str, MembershipRecord] = Field(default_factory=dict)
    counters: IssuanceCounters = Field(default_factory=IssuanceCounters)

    @field_validator("records")
    @classmethod
    def _keys_match_identities(
        cls, records: dict[str, MembershipRecord]
    ) -> dict[str, MembershipRecord]:
        for key, record in records.items():
            if key != record.identity:
                raise ValueError(f"Record key {key} does not match identity {record.identity}")
        return records
