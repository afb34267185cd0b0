"""
Passport — Error Hierarchy

Every caller-visible failure of the membership engine. Each error is
raised before any state is mutated (or after a completed rollback), so a
raised PassportError always means the operation had no effect.

The `code` attribute is stable and is what the HTTP layer returns.

Severity guide:
  Precondition errors  LOW      -- caller's request was not permitted
  Lifecycle errors     HIGH     -- engine wired incorrectly
  RollbackError        CRITICAL -- compensation failed; collaborator state
                                   may diverge from the ledger
"""

from __future__ import annotations


class PassportError(RuntimeError):
    """Base for all membership engine errors."""

    code: str = "passport_error"


# ─── Issuance preconditions ──────────────────────────────────────


class IssuanceIsDisabled(PassportError):
    """Issuance is globally paused."""

    code = "issuance_is_disabled"


class IssuancesLimitReached(PassportError):
    """The issuance cap is exhausted."""

    code = "issuances_limit_reached"


class PassportAlreadyIssued(PassportError):
    """The identity holds, or has held, a passport."""

    code = "passport_already_issued"


class NotEligible(PassportError):
    """Balance is below the claim threshold."""

    code = "not_eligible"


class InvalidSignature(PassportError):
    """Recovered signer does not match the caller, or the signature is malformed."""

    code = "invalid_signature"


# ─── Revocation preconditions ────────────────────────────────────


class PassportNotIssued(PassportError):
    """The operation needs a resolvable passport and there is none."""

    code = "passport_not_issued"


class NonRevocable(PassportError):
    """Balance is at or above the revoke threshold."""

    code = "non_revocable"


# ─── Administration ──────────────────────────────────────────────


class Unauthorized(PassportError):
    """Caller is not an administrator."""

    code = "unauthorized"


class AssetRecoveryUnavailable(PassportError):
    """No asset vault is wired, so stray assets cannot be swept."""

    code = "asset_recovery_unavailable"


# ─── Lifecycle ───────────────────────────────────────────────────


class AlreadyInitialized(PassportError):
    """initialize() was called a second time."""

    code = "already_initialized"


class NotInitialized(PassportError):
    """An operation ran before initialize()."""

    code = "not_initialized"


class RollbackError(PassportError):
    """
    A compensating action failed while undoing a partial operation.

    Recovery: manual reconciliation of the minter against the ledger.
    """

    code = "rollback_failed"
