"""
Passport — Consent Verifier

Checks that a caller signed the *current* agreement text, scoped to this
deployment. Uses EIP-712 typed structured data:

  struct_hash      = keccak(AGREEMENT_TYPEHASH ‖ keccak(statement) ‖ keccak(termsURI))
  domain_separator = keccak(EIP712DOMAIN_TYPEHASH ‖ keccak(name) ‖ keccak(version)
                            ‖ uint256(chainId) ‖ address(verifyingContract))
  digest           = keccak(0x19 ‖ 0x01 ‖ domain_separator ‖ struct_hash)

The domain separator is computed once when the DomainContext is built and
never changes. The struct hash is rebuilt from the live agreement on every
call, so editing the agreement text invalidates every signature produced
before the edit. The domain prevents replay across deployments; the
struct hash prevents replay across agreement versions.

Signatures are 65-byte secp256k1 (r ‖ s ‖ v). The recovered signer must
equal the caller's identity.
"""

from __future__ import annotations

from typing import Any

import structlog
from eth_account import Account
from eth_account.messages import SignableMessage
from eth_utils import keccak, to_canonical_address
from hexbytes import HexBytes
from pydantic import Field

from passport.errors import InvalidSignature
from passport.primitives.common import PassportBaseModel, normalize_identity
from passport.primitives.membership import ConsentAgreement, PassportSettings

logger = structlog.get_logger("passport.systems.consent")

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
AGREEMENT_TYPE = "Agreement(string statement,string termsURI)"

EIP712_DOMAIN_TYPEHASH: bytes = keccak(text=EIP712_DOMAIN_TYPE)
AGREEMENT_TYPEHASH: bytes = keccak(text=AGREEMENT_TYPE)

_SIGNATURE_LENGTH = 65


# ─── Domain ──────────────────────────────────────────────────────


class DomainContext(PassportBaseModel):
    """Immutable EIP-712 domain for one deployment instance."""

    model_config = {"frozen": True}

    name: str
    version: str
    chain_id: int = Field(ge=0)
    verifying_contract: str
    separator: bytes

    @classmethod
    def build(
        cls,
        name: str,
        version: str,
        chain_id: int,
        verifying_contract: str,
    ) -> DomainContext:
        contract = normalize_identity(verifying_contract)
        separator = keccak(
            EIP712_DOMAIN_TYPEHASH
            + keccak(text=name)
            + keccak(text=version)
            + chain_id.to_bytes(32, "big")
            + bytes(12) + to_canonical_address(contract)
        )
        return cls(
            name=name,
            version=version,
            chain_id=chain_id,
            verifying_contract=contract,
            separator=separator,
        )

    @property
    def separator_hex(self) -> str:
        return "0x" + self.separator.hex()

    def as_typed_domain(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


# ─── Hashing ─────────────────────────────────────────────────────


def agreement_struct_hash(agreement: ConsentAgreement) -> bytes:
    """hashStruct(Agreement) for the given text."""
    return keccak(
        AGREEMENT_TYPEHASH
        + keccak(text=agreement.statement)
        + keccak(text=agreement.terms_uri)
    )


def consent_message(agreement: ConsentAgreement, domain: DomainContext) -> SignableMessage:
    """The EIP-191 version 0x01 message wrapping domain and struct hash."""
    return SignableMessage(
        version=b"\x01",
        header=domain.separator,
        body=agreement_struct_hash(agreement),
    )


def consent_digest(agreement: ConsentAgreement, domain: DomainContext) -> bytes:
    """The 32-byte digest a consent signature is made over."""
    return keccak(b"\x19\x01" + domain.separator + agreement_struct_hash(agreement))


def sign_consent(
    private_key: Any,
    agreement: ConsentAgreement,
    domain: DomainContext,
) -> bytes:
    """Sign the agreement as the holder of private_key. Returns r ‖ s ‖ v."""
    signed = Account.sign_message(consent_message(agreement, domain), private_key)
    return bytes(signed.signature)


# ─── Verifier ────────────────────────────────────────────────────


class ConsentVerifier:
    """
    Verifies consent signatures against the live agreement in the
    settings record.
    """

    def __init__(self, domain: DomainContext, settings: PassportSettings) -> None:
        self._domain = domain
        self._settings = settings
        self._logger = logger.bind(component="consent_verifier")

    @property
    def domain(self) -> DomainContext:
        return self._domain

    def typed_data(self, agreement: ConsentAgreement | None = None) -> dict[str, Any]:
        """
        The full eth_signTypedData_v4 payload for the agreement, so wallets
        can sign without re-deriving the schema.
        """
        agreement = agreement or self._settings.agreement
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "Agreement": [
                    {"name": "statement", "type": "string"},
                    {"name": "termsURI", "type": "string"},
                ],
            },
            "primaryType": "Agreement",
            "domain": self._domain.as_typed_domain(),
            "message": {
                "statement": agreement.statement,
                "termsURI": agreement.terms_uri,
            },
        }

    def recover_signer(self, signature: bytes | str) -> str:
        """Recover the checksum address that signed the current agreement."""
        try:
            raw = HexBytes(signature)
        except (TypeError, ValueError) as exc:
            raise InvalidSignature("Signature is not valid hex or bytes") from exc

        if len(raw) != _SIGNATURE_LENGTH:
            raise InvalidSignature(
                f"Signature must be {_SIGNATURE_LENGTH} bytes, got {len(raw)}"
            )

        message = consent_message(self._settings.agreement, self._domain)
        try:
            return Account.recover_message(message, signature=raw)
        except Exception as exc:
            raise InvalidSignature("Signer could not be recovered") from exc

    def verify_consent(self, signature: bytes | str, caller: str) -> None:
        """Raise InvalidSignature unless caller signed the current agreement."""
        expected = normalize_identity(caller)
        signer = self.recover_signer(signature)
        if signer != expected:
            self._logger.info(
                "consent_signer_mismatch",
                caller=expected,
                recovered=signer,
            )
            raise InvalidSignature(f"Signature was not produced by {expected}")
