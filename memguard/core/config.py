"""Settings — environment-driven configuration for memguard.

All settings are loaded from environment variables with the ``MEMGUARD_``
prefix and can be turned into a ready-to-use facade with
``CacheFacade.from_settings()``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """memguard configuration.

    All fields can be overridden by environment variables prefixed with
    ``MEMGUARD_``.  For example, ``MEMGUARD_POOL_MAX=4`` caps the pool at
    four connections.
    """

    # ── Endpoint ────────────────────────────────────────────────────
    SERVER_LOCATION: str = "127.0.0.1:11211"  # Comma-separated for several endpoints
    VALUE_ENCODING: str | None = "utf-8"  # None returns raw bytes

    # ── Pool ────────────────────────────────────────────────────────
    POOL_MIN: int = 0
    POOL_MAX: int = 10
    IDLE_TIMEOUT_SECONDS: float = 5.0
    EVICT_ON_FAILURE: bool = False
    ACQUIRE_TIMEOUT_SECONDS: float | None = None  # None waits indefinitely

    # ── Per-call defaults ───────────────────────────────────────────
    DEFAULT_TIMEOUT_SECONDS: float = 1.0
    DEFAULT_RETRIES: int = 0

    # ── Retry backoff ───────────────────────────────────────────────
    RETRY_BASE_DELAY_SECONDS: float | None = None  # None uses the call timeout
    RETRY_BACKOFF: Literal["linear", "fixed", "exponential"] = "linear"
    RETRY_MAX_DELAY_SECONDS: float | None = None

    # ── Circuit breaker ─────────────────────────────────────────────
    CIRCUIT_BREAKER_ENABLED: bool = False
    CIRCUIT_BREAKER_THRESHOLD: int = 5  # Consecutive failures before OPEN
    CIRCUIT_BREAKER_RECOVERY_SECONDS: float = 30.0  # Seconds before a HALF_OPEN trial call

    # ── Logging ─────────────────────────────────────────────────────
    DEBUG_LOGGING: bool = False

    model_config = {
        "env_prefix": "MEMGUARD_",
    }

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> Settings:
        if self.POOL_MAX < 1:
            raise ValueError("POOL_MAX must be at least 1")
        if not 0 <= self.POOL_MIN <= self.POOL_MAX:
            raise ValueError("POOL_MIN must be between 0 and POOL_MAX")
        if self.DEFAULT_RETRIES < 0:
            raise ValueError("DEFAULT_RETRIES must not be negative")
        return self
