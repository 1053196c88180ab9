"""
Application settings and environment configuration.

Loads configuration from environment variables and the project .env file,
validates numeric values and exposes a typed, immutable Settings object for
the orchestrator, API server and CLI tools.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from wallet_whisperer.config.env import (
    get_helius_api_key,
    get_helius_api_url,
    get_helius_rpc_url,
    load_whisperer_env,
)

DEFAULT_SQLITE_PATH = "wallet_whisperer.db"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DISABLED_VALUES = ("", "disabled", "none", "off")


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {raw!r}")
    return value


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {raw!r}")
    return value


def _database_url() -> str:
    """Return DATABASE_URL for Postgres if set; else SQLite from WHISPERER_DB_PATH or default."""
    url = _env_str("DATABASE_URL")
    if url:
        return url
    path = _env_str("WHISPERER_DB_PATH") or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


@dataclass(frozen=True)
class Settings:
    """
    Typed application settings.

    redis_url is None when the hot tier is disabled (REDIS_URL=disabled); the
    orchestrator then uses the in-process hot tier.
    """

    database_url: str
    redis_url: str | None
    helius_api_key: str
    helius_api_url: str
    helius_rpc_url: str
    coingecko_api_key: str
    profile_ttl_sec: float = 6 * 3600.0
    market_ttl_sec: float = 600.0
    durable_ttl_sec: float = 24 * 3600.0
    fetch_timeout_sec: float = 45.0
    metadata_timeout_sec: float = 5.0
    max_tx_history: int = 500
    retry_max_attempts: int = 4
    retry_base_delay_sec: float = 0.5
    retry_max_delay_sec: float = 8.0
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def hot_tier_enabled(self) -> bool:
        return self.redis_url is not None


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_whisperer_env()
    redis_raw = _env_str("REDIS_URL", DEFAULT_REDIS_URL)
    return Settings(
        database_url=_database_url(),
        redis_url=None if redis_raw.lower() in DISABLED_VALUES else redis_raw,
        helius_api_key=get_helius_api_key(),
        helius_api_url=get_helius_api_url(),
        helius_rpc_url=get_helius_rpc_url(),
        coingecko_api_key=_env_str("COINGECKO_API_KEY"),
        profile_ttl_sec=_env_float("PROFILE_TTL_SEC", 6 * 3600.0, minimum=1.0),
        market_ttl_sec=_env_float("MARKET_TTL_SEC", 600.0, minimum=1.0),
        durable_ttl_sec=_env_float("DURABLE_TTL_SEC", 24 * 3600.0, minimum=1.0),
        fetch_timeout_sec=_env_float("FETCH_TIMEOUT_SEC", 45.0, minimum=1.0),
        metadata_timeout_sec=_env_float("METADATA_TIMEOUT_SEC", 5.0, minimum=0.1),
        max_tx_history=_env_int("MAX_TX_HISTORY", 500, minimum=1),
        retry_max_attempts=_env_int("RETRY_MAX_ATTEMPTS", 4, minimum=1),
        retry_base_delay_sec=_env_float("RETRY_BASE_DELAY_SEC", 0.5),
        retry_max_delay_sec=_env_float("RETRY_MAX_DELAY_SEC", 8.0),
        api_host=_env_str("API_HOST", "0.0.0.0"),
        api_port=_env_int("API_PORT", 8000, minimum=1),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings (cached).

    Tests that change the environment call get_settings.cache_clear().
    """
    return load_settings()
