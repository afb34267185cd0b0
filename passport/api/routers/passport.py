"""
Passport — REST Router

Public endpoints:
  GET  /api/v1/passport/stats          — counters, thresholds, signing domain
  GET  /api/v1/passport/agreement      — current agreement + typed data to sign
  GET  /api/v1/passport/{identity}     — status, token id, balance, eligibility
  POST /api/v1/passport/claim          — claim with a consent signature
  POST /api/v1/passport/revoke         — permissionless revoke under the floor

Administrative endpoints (API key, see main.APIKeyMiddleware):
  POST /api/v1/admin/passport/revoke
  PUT  /api/v1/admin/passport/eligibility
  PUT  /api/v1/admin/passport/enabled
  PUT  /api/v1/admin/passport/agreement
  POST /api/v1/admin/passport/recover

The claim signature is the caller's authentication: the engine only
issues if the recovered signer is the identity in the body.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from passport.errors import PassportNotIssued
from passport.primitives.common import normalize_identity

if TYPE_CHECKING:
    from passport.systems.issuance.engine import PassportEngine

logger = structlog.get_logger("passport.api.passport")

router = APIRouter()


# ─── Request Bodies ──────────────────────────────────────────────


class _IdentityBody(BaseModel):
    identity: str

    @field_validator("identity")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_identity(value)


class ClaimRequest(_IdentityBody):
    signature: str = Field(min_length=1)


class RevokeRequest(_IdentityBody):
    pass


class EligibilityUpdate(BaseModel):
    claim_required_balance: int = Field(ge=0)
    revoke_under_balance: int = Field(ge=0)


class EnabledUpdate(BaseModel):
    enabled: bool


class AgreementUpdate(BaseModel):
    statement: str | None = None
    terms_uri: str | None = None


class RecoverRequest(BaseModel):
    asset: str = Field(min_length=1)
    recipient: str
    amount: int = Field(gt=0)

    @field_validator("recipient")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_identity(value)


# ─── Helpers ─────────────────────────────────────────────────────


def _engine(request: Request) -> PassportEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise HTTPException(status_code=503, detail="Passport engine not initialized")
    return engine


def _operator(request: Request) -> str:
    operator = request.app.state.config.server.operator_identity
    if not operator:
        raise HTTPException(status_code=403, detail="No operator identity configured")
    return operator


def _parse_identity(identity: str) -> str:
    try:
        return normalize_identity(identity)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


# ─── Public ──────────────────────────────────────────────────────


@router.get("/api/v1/passport/stats")
async def get_stats(request: Request) -> dict[str, Any]:
    engine = _engine(request)
    return {"status": "ok", "data": engine.stats}


@router.get("/api/v1/passport/agreement")
async def get_agreement(request: Request) -> dict[str, Any]:
    """The live agreement and the exact payload a wallet should sign."""
    engine = _engine(request)
    agreement = engine.settings.agreement
    return {
        "status": "ok",
        "data": {
            "statement": agreement.statement,
            "terms_uri": agreement.terms_uri,
            "typed_data": engine.verifier.typed_data(),
        },
    }


@router.get("/api/v1/passport/{identity}")
async def get_passport(identity: str, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    key = _parse_identity(identity)
    record = engine.record_of(key)

    try:
        token_id: int | None = engine.token_id_of(key)
    except PassportNotIssued:
        token_id = None

    return {
        "status": "ok",
        "data": {
            "identity": key,
            "status": record.status.value,
            "token_id": token_id,
            "balance": await engine.balance_of(key),
            "can_claim": await engine.can_claim(key),
            "can_revoke": await engine.can_revoke(key),
        },
    }


@router.post("/api/v1/passport/claim")
async def claim_passport(body: ClaimRequest, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    token_id = await engine.claim(body.identity, body.signature)
    return {"status": "ok", "data": {"identity": body.identity, "token_id": token_id}}


@router.post("/api/v1/passport/revoke")
async def revoke_passport(body: RevokeRequest, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    caller = request.client.host if request.client else "anonymous"
    token_id = await engine.revoke(caller, body.identity)
    return {"status": "ok", "data": {"identity": body.identity, "token_id": token_id}}


# ─── Administration ──────────────────────────────────────────────


@router.post("/api/v1/admin/passport/revoke")
async def admin_revoke_passport(body: RevokeRequest, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    token_id = await engine.admin_revoke(_operator(request), body.identity)
    return {"status": "ok", "data": {"identity": body.identity, "token_id": token_id}}


@router.put("/api/v1/admin/passport/eligibility")
async def update_eligibility(body: EligibilityUpdate, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    await engine.set_eligibility_params(
        _operator(request),
        body.claim_required_balance,
        body.revoke_under_balance,
    )
    return {"status": "ok", "data": engine.settings.eligibility.model_dump()}


@router.put("/api/v1/admin/passport/enabled")
async def update_enabled(body: EnabledUpdate, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    await engine.set_issuance_enabled(_operator(request), body.enabled)
    return {"status": "ok", "data": {"enabled": engine.settings.issuance_enabled}}


@router.put("/api/v1/admin/passport/agreement")
async def update_agreement(body: AgreementUpdate, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    operator = _operator(request)
    if body.statement is not None:
        await engine.set_agreement_statement(operator, body.statement)
    if body.terms_uri is not None:
        await engine.set_agreement_terms_uri(operator, body.terms_uri)
    return {"status": "ok", "data": engine.settings.agreement.model_dump()}


@router.post("/api/v1/admin/passport/recover")
async def recover_assets(body: RecoverRequest, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    await engine.recover_assets(_operator(request), body.asset, body.recipient, body.amount)
    return {
        "status": "ok",
        "data": {"asset": body.asset, "recipient": body.recipient, "amount": body.amount},
    }
