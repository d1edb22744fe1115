"""
Environment-driven configuration for the orchestrator.

All settings are read from environment variables at call time (never at import
time) and frozen into dataclasses. NO SECRETS ARE STORED IN CODE.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_LEDGER_URL = "http://localhost:7575"
DEFAULT_MODULE_NAME = "CrossBorderTransaction"
DEFAULT_SUBMIT_PATH = "/v2/commands/submit-and-wait-for-transaction"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_CACHE_SHARDS = 16


def _parse_bool(v: str | None, *, default: bool = False) -> bool:
    if v is None:
        return default
    s = str(v).strip().lower()
    if not s:
        return default
    return s in {"1", "true", "yes", "y", "on"}


def _first_env(*names: str) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and str(v).strip():
            return str(v).strip()
    return None


def _norm_url(url: str) -> str:
    url = url.strip()
    return url[:-1] if url.endswith("/") else url


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = _first_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number (got {raw!r})") from e


def _int_env(name: str, default: int) -> int:
    raw = _first_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from e


def parse_party_allocations(raw: str | None) -> dict[str, str]:
    """
    Parse the startup party map.

    Accepts either a JSON object (`{"AliceCorp": "AliceCorp::1220ab..."}`) or
    comma-separated `handle=fullId` pairs.
    """
    s = str(raw or "").strip()
    if not s:
        return {}
    if s.startswith("{"):
        try:
            decoded = json.loads(s)
        except json.JSONDecodeError as e:
            raise ValueError(f"LEDGER_PARTY_ALLOCATIONS is not valid JSON: {e}") from e
        if not isinstance(decoded, Mapping):
            raise ValueError("LEDGER_PARTY_ALLOCATIONS JSON must be an object")
        return {str(k).strip(): str(v).strip() for k, v in decoded.items() if str(k).strip() and str(v).strip()}

    out: dict[str, str] = {}
    for pair in s.split(","):
        if not pair.strip():
            continue
        handle, sep, full_id = pair.partition("=")
        if not sep or not handle.strip() or not full_id.strip():
            raise ValueError(f"Invalid party allocation entry: {pair.strip()!r} (expected handle=fullId)")
        out[handle.strip()] = full_id.strip()
    return out


@dataclass(frozen=True)
class LedgerSettings:
    ledger_url: str = DEFAULT_LEDGER_URL
    module_name: str = DEFAULT_MODULE_NAME
    package_id: Optional[str] = None
    user_id: Optional[str] = None
    auth_token: Optional[str] = None
    request_timeout_s: Optional[float] = DEFAULT_TIMEOUT_S
    submit_path: str = DEFAULT_SUBMIT_PATH
    party_allocations: Mapping[str, str] = field(default_factory=dict)
    sync_parties_on_start: bool = False


@dataclass(frozen=True)
class CacheSettings:
    ttl_s: Optional[float] = None
    shards: int = DEFAULT_CACHE_SHARDS


@dataclass(frozen=True)
class Settings:
    ledger: LedgerSettings
    cache: CacheSettings
    service_name: str = "crossborder-orchestrator"
    env: str = "unknown"
    log_level: str = "INFO"


def load_ledger_settings() -> LedgerSettings:
    """
    Loads ledger connection settings.

    The bearer token is optional: the sandbox ledger accepts the acting party
    handle as its own token, which is what the gateway falls back to.
    """
    timeout = _float_env("LEDGER_TIMEOUT_S", DEFAULT_TIMEOUT_S)
    if timeout is not None and timeout <= 0:
        raise ValueError("LEDGER_TIMEOUT_S must be > 0")
    return LedgerSettings(
        ledger_url=_norm_url(_first_env("LEDGER_URL") or DEFAULT_LEDGER_URL),
        module_name=_first_env("LEDGER_MODULE_NAME") or DEFAULT_MODULE_NAME,
        package_id=_first_env("LEDGER_PACKAGE_ID"),
        user_id=_first_env("LEDGER_USER_ID"),
        auth_token=_first_env("LEDGER_AUTH_TOKEN"),
        request_timeout_s=timeout,
        submit_path=_first_env("LEDGER_SUBMIT_PATH") or DEFAULT_SUBMIT_PATH,
        party_allocations=parse_party_allocations(os.getenv("LEDGER_PARTY_ALLOCATIONS")),
        sync_parties_on_start=_parse_bool(os.getenv("LEDGER_SYNC_PARTIES")),
    )


def load_cache_settings() -> CacheSettings:
    ttl = _float_env("SENSITIVE_CACHE_TTL_S", None)
    if ttl is not None and ttl <= 0:
        raise ValueError("SENSITIVE_CACHE_TTL_S must be > 0 when set")
    shards = _int_env("SENSITIVE_CACHE_SHARDS", DEFAULT_CACHE_SHARDS)
    if shards < 1:
        raise ValueError("SENSITIVE_CACHE_SHARDS must be >= 1")
    return CacheSettings(ttl_s=ttl, shards=shards)


def load_settings() -> Settings:
    return Settings(
        ledger=load_ledger_settings(),
        cache=load_cache_settings(),
        service_name=_first_env("SERVICE_NAME") or "crossborder-orchestrator",
        env=_first_env("ENV", "ENVIRONMENT") or "unknown",
        log_level=(_first_env("LOG_LEVEL") or "INFO").upper(),
    )
