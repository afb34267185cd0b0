"""
Passport — Application Entry Point

FastAPI application wiring the membership engine to its collaborators.

`uvicorn passport.main:app`

Startup:
  1. Load configuration (PASSPORT_CONFIG_PATH, env overrides)
  2. Set up logging
  3. Build the settings record, balance oracle, minter, vault, ledger store
  4. Initialize the engine with the configured cap and signing domain
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Load .env file before any configuration is loaded
load_dotenv()

from passport.api.routers.passport import router as passport_router
from passport.clients.minter import BaseTokenMinter, InMemoryTokenMinter
from passport.clients.oracle import (
    BaseBalanceOracle,
    Web3BalanceOracle,
    create_balance_oracle,
)
from passport.clients.vault import BaseAssetVault, InMemoryAssetVault
from passport.config import PassportConfig, load_config
from passport.errors import PassportError
from passport.primitives.membership import (
    ConsentAgreement,
    EligibilityParameters,
    PassportSettings,
)
from passport.systems.consent.verifier import DomainContext
from passport.systems.issuance.engine import PassportEngine
from passport.systems.ledger.store import LedgerStore
from passport.telemetry.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger("passport.main")

_ERROR_STATUS: dict[str, int] = {
    "issuance_is_disabled": 403,
    "issuances_limit_reached": 409,
    "passport_already_issued": 409,
    "passport_not_issued": 404,
    "not_eligible": 403,
    "non_revocable": 403,
    "invalid_signature": 401,
    "unauthorized": 403,
    "asset_recovery_unavailable": 501,
    "not_initialized": 503,
}


def build_settings(config: PassportConfig) -> PassportSettings:
    """Seed the mutable settings record from static configuration."""
    return PassportSettings(
        issuance_enabled=config.issuance.enabled,
        eligibility=EligibilityParameters(
            claim_required_balance=config.issuance.claim_required_balance,
            revoke_under_balance=config.issuance.revoke_under_balance,
        ),
        agreement=ConsentAgreement(
            statement=config.agreement.statement,
            terms_uri=config.agreement.terms_uri,
        ),
    )


# ─── API Key Authentication Middleware ─────────────────────────────
# Protects /api/v1/admin/*. Everything else is public.
# When no API keys are configured (dev mode), all requests pass through.


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Validates the API key header or an Authorization Bearer token."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        if not request.url.path.startswith("/api/v1/admin/"):
            return await call_next(request)

        config = getattr(request.app.state, "config", None)
        if config is None or not config.server.api_keys:
            return await call_next(request)

        api_key = request.headers.get(config.server.api_key_header, "")
        if not api_key:
            auth_header = request.headers.get("authorization", "")
            if auth_header.startswith("Bearer "):
                api_key = auth_header[7:]

        if not api_key or api_key not in config.server.api_keys:
            logger.warning("admin_auth_rejected", path=request.url.path)
            return JSONResponse(
                status_code=401,
                content={"error": "Invalid or missing API key"},
            )

        return await call_next(request)


async def passport_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = getattr(exc, "code", "passport_error")
    return JSONResponse(
        status_code=_ERROR_STATUS.get(code, 500),
        content={"error": code, "detail": str(exc)},
    )


async def value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": "invalid_input", "detail": str(exc)})


# ─── Application Factory ─────────────────────────────────────────


def create_app(
    config: PassportConfig | None = None,
    *,
    oracle: BaseBalanceOracle | None = None,
    minter: BaseTokenMinter | None = None,
    vault: BaseAssetVault | None = None,
) -> FastAPI:
    """
    Build the application. Collaborators default to the configured oracle
    and in-memory minter/vault; deployments inject their own.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = app.state.config
        if cfg is None:
            cfg = load_config(os.environ.get("PASSPORT_CONFIG_PATH", "config/default.yaml"))
            app.state.config = cfg

        setup_logging(cfg.logging, instance_id=cfg.instance_id)

        balance_oracle = oracle or create_balance_oracle(cfg.oracle)
        if isinstance(balance_oracle, Web3BalanceOracle):
            await balance_oracle.connect()
        asset_vault = vault or InMemoryAssetVault()

        store: LedgerStore | None = None
        if cfg.ledger.data_dir:
            store = LedgerStore(Path(cfg.ledger.data_dir) / cfg.ledger.file_name)

        # The default minter keeps no state of its own, so it resumes from
        # the persisted ledger. An injected minter owns its own state.
        token_minter = minter or InMemoryTokenMinter.from_snapshot(
            store.load() if store is not None else None
        )

        engine = PassportEngine(build_settings(cfg), admins=cfg.issuance.admins)
        await engine.initialize(
            balance_oracle=balance_oracle,
            minter=token_minter,
            max_issuances=cfg.issuance.max_issuances,
            domain=DomainContext.build(
                name=cfg.domain.name,
                version=cfg.domain.version,
                chain_id=cfg.domain.chain_id,
                verifying_contract=cfg.domain.verifying_contract,
            ),
            asset_vault=asset_vault,
            store=store,
        )

        app.state.engine = engine
        app.state.oracle = balance_oracle
        app.state.minter = token_minter
        app.state.vault = asset_vault
        logger.info("passport_started", instance_id=cfg.instance_id)

        try:
            yield
        finally:
            if isinstance(balance_oracle, Web3BalanceOracle):
                await balance_oracle.close()
            logger.info("passport_stopped", instance_id=cfg.instance_id)

    app = FastAPI(
        title="Passport",
        description="Membership passport issuance and revocation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.engine = None

    app.add_middleware(APIKeyMiddleware)
    app.add_exception_handler(PassportError, passport_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.include_router(passport_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        engine = app.state.engine
        if engine is None:
            return {"status": "unhealthy", "reason": "not_started"}
        return await engine.health()

    return app


app = create_app()
