"""
Passport — Configuration System

All configuration is Pydantic-validated and loaded from:
1. A YAML file (defaults)
2. Environment variables (overrides)

The issuance and agreement sections seed the engine's mutable settings
record at startup; afterwards administrators change them through the API.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import orjson
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from passport.primitives.common import normalize_identity

_ENV_PREFIX = "PASSPORT_"
_ENV_DELIMITER = "__"

# ─── Sub-configs ──────────────────────────────────────────────────


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    api_key_header: str = "X-Passport-API-Key"
    # API keys guarding /api/v1/admin/*. When empty, auth is disabled (dev mode).
    api_keys: list[str] = Field(default_factory=list)
    # Administrator identity the HTTP admin surface acts as.
    operator_identity: str = ""

    @field_validator("operator_identity")
    @classmethod
    def _checksum_operator(cls, value: str) -> str:
        return normalize_identity(value) if value else value


class DomainConfig(BaseModel):
    """EIP-712 domain binding consent signatures to this deployment."""

    name: str = "Passport"
    version: str = "1"
    chain_id: int = Field(default=1, ge=0)
    verifying_contract: str = "0x" + "0" * 40

    @field_validator("verifying_contract")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return normalize_identity(value)


class IssuanceConfig(BaseModel):
    max_issuances: int = Field(default=10_000, ge=0)
    enabled: bool = False
    claim_required_balance: int = Field(default=0, ge=0)
    revoke_under_balance: int = Field(default=0, ge=0)
    admins: list[str] = Field(default_factory=list)

    @field_validator("admins")
    @classmethod
    def _checksum_admins(cls, value: list[str]) -> list[str]:
        return [normalize_identity(a) for a in value]


class AgreementConfig(BaseModel):
    statement: str = ""
    terms_uri: str = ""


class OracleConfig(BaseModel):
    kind: Literal["memory", "web3"] = "memory"
    rpc_url: str = ""
    token_address: str = ""
    # Seed balances for the in-memory oracle (dev / tests).
    static_balances: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _web3_needs_endpoint(self) -> OracleConfig:
        if self.kind == "web3" and not (self.rpc_url and self.token_address):
            raise ValueError("web3 oracle requires rpc_url and token_address")
        return self


class LedgerConfig(BaseModel):
    # Directory for the JSON ledger snapshot. Empty = in-memory only.
    data_dir: str = ""
    file_name: str = "ledger.json"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class PassportConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix=_ENV_PREFIX,
        env_nested_delimiter=_ENV_DELIMITER,
        extra="ignore",
    )

    instance_id: str = "passport-default"

    server: ServerConfig = Field(default_factory=ServerConfig)
    domain: DomainConfig = Field(default_factory=DomainConfig)
    issuance: IssuanceConfig = Field(default_factory=IssuanceConfig)
    agreement: AgreementConfig = Field(default_factory=AgreementConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Collect PASSPORT_<SECTION>__<KEY> variables as a nested dict.

    Scalars stay strings for pydantic to coerce. Values that look like JSON
    arrays or objects (admins, api_keys, static_balances) are decoded.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name, value in env.items():
        upper = name.upper()
        if not upper.startswith(_ENV_PREFIX) or _ENV_DELIMITER not in upper:
            continue
        path = [p.lower() for p in upper[len(_ENV_PREFIX):].split(_ENV_DELIMITER)]
        if not all(path):
            continue
        parsed: Any = value
        if value.lstrip().startswith(("[", "{")):
            parsed = orjson.loads(value)
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = parsed
    return overrides


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PassportConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Comma-separated keys; kept out of the nested namespace so the
    # settings source does not try to parse it as JSON.
    if api_keys := os.environ.get("PASSPORT_API_KEYS"):
        raw.setdefault("server", {})["api_keys"] = [
            k.strip() for k in api_keys.split(",") if k.strip()
        ]
    if instance_id := os.environ.get("PASSPORT_INSTANCE_ID"):
        raw["instance_id"] = instance_id
    # Init kwargs outrank the settings env source, so nested env values
    # are merged into raw here or the YAML would shadow them.
    raw = _deep_merge(raw, _env_overrides())

    if overrides:
        raw = _deep_merge(raw, overrides)

    return PassportConfig(**raw)
