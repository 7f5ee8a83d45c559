"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator

from .core.clients.ssi import API_URL
from .core.sync_cache import DEFAULT_IDLE_EVICTION_SECONDS, DEFAULT_MAX_AGE_SECONDS

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

ENV_VARS = {
    "ssi_graphql_url": "SSI_GRAPHQL_URL",
    "ssi_timeout_seconds": "SSI_TIMEOUT_SECONDS",
    "sync_cache_max_age_seconds": "SYNC_CACHE_MAX_AGE_SECONDS",
    "sync_cache_idle_eviction_seconds": "SYNC_CACHE_IDLE_EVICTION_SECONDS",
    "response_cache_ttl_seconds": "RESPONSE_CACHE_TTL_SECONDS",
    "raw_cache_max_entries": "RAW_CACHE_MAX_ENTRIES",
    "raw_cache_ttl_seconds": "RAW_CACHE_TTL_SECONDS",
    "log_level": "LOG_LEVEL",
}


class Settings(BaseModel):
    """Cache windows, upstream endpoint and logging level."""

    ssi_graphql_url: str = API_URL
    ssi_timeout_seconds: float = Field(60.0, gt=0)
    sync_cache_max_age_seconds: float = Field(DEFAULT_MAX_AGE_SECONDS, gt=0)
    sync_cache_idle_eviction_seconds: float = Field(DEFAULT_IDLE_EVICTION_SECONDS, gt=0)
    response_cache_ttl_seconds: float = Field(5.0, ge=0)
    raw_cache_max_entries: int = Field(100, ge=1)
    raw_cache_ttl_seconds: float = Field(5.0, ge=0)
    log_level: str = "INFO"

    @field_validator("ssi_graphql_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("SSI_GRAPHQL_URL must be a valid HTTP/HTTPS URL")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Unset variables keep their defaults; invalid values raise ``ValueError``.
        """
        env = os.environ if environ is None else environ
        values = {field: env[name] for field, name in ENV_VARS.items() if env.get(name)}
        return cls(**values)
