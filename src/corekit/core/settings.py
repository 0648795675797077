"""Environment-driven defaults for the execution primitives.

``CorekitSettings`` holds the process-wide defaults used when a retry
manager or abort coordinator is built without explicit options. Values come
from ``COREKIT_*`` environment variables or a ``.env`` file.

Examples:
    >>> import os
    >>> os.environ["COREKIT_RETRY_MAX_RETRIES"] = "5"
    >>> get_settings.cache_clear()
    >>> get_settings().retry_max_retries
    5

Tags:
    settings, configuration, pydantic, environment, corekit

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CorekitSettings(BaseSettings):
    """Defaults shared by executors, retry managers and abort coordinators.

    Fields
    ──────
    log_level                 : Structlog log level
    log_json                  : Force JSON (True) / console (False) / auto (None)
    retry_max_retries         : Total attempts including the first one
    retry_delay_ms            : Fixed delay, or exponential base, in ms
    retry_exponential_backoff : Double the delay after every failed attempt
    abort_default_timeout_ms  : Deadline applied when a registration has none
    abort_pool_name           : Name used to prefix generated abort ids
    """

    model_config = SettingsConfigDict(
        env_prefix="COREKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Retry ────────────────────────────────────────────────────
    retry_max_retries: int = Field(default=3, description="Total attempts, clamped to [1, 16]")
    retry_delay_ms: float = Field(default=1000, ge=0, description="Delay between attempts in ms")
    retry_exponential_backoff: bool = False

    # ── Abort ────────────────────────────────────────────────────
    abort_default_timeout_ms: float | None = Field(
        default=None,
        description="Deadline applied to registrations without abort_timeout",
    )
    abort_pool_name: str = "ProxyAbortManager"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> CorekitSettings:
    """Return the cached process settings."""
    return CorekitSettings()
