"""
Passport — Consent

Domain-separated, replay-protected consent signatures over the
agreement text.
"""

from passport.systems.consent.verifier import (
    AGREEMENT_TYPEHASH,
    EIP712_DOMAIN_TYPEHASH,
    ConsentVerifier,
    DomainContext,
    agreement_struct_hash,
    consent_digest,
    consent_message,
    sign_consent,
)

__all__ = [
    "AGREEMENT_TYPEHASH",
    "EIP712_DOMAIN_TYPEHASH",
    "ConsentVerifier",
    "DomainContext",
    "agreement_struct_hash",
    "consent_digest",
    "consent_message",
    "sign_consent",
]
