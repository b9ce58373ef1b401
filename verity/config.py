"""
Verity — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Verity match-lifecycle service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10

    # ------------------------------------------------------------------ #
    # Redis – authoritative rate-limit counters + realtime channels
    # ------------------------------------------------------------------ #
    REDIS_URL: str

    # ------------------------------------------------------------------ #
    # Room provider (Daily.co)
    # ------------------------------------------------------------------ #
    DAILY_API_KEY: str = ""
    DAILY_API_URL: str = "https://api.daily.co/v1"
    ROOM_PROVISION_MAX_ATTEMPTS: int = 3
    ROOM_PROVISION_TIMEOUT_SECONDS: float = 10.0

    # ------------------------------------------------------------------ #
    # Verity-Date session
    # ------------------------------------------------------------------ #
    VERITY_DATE_DURATION_SECONDS: int = 600  # 10 minutes
    SESSION_SWEEP_INTERVAL_SECONDS: int = 30
    MAX_PREFERRED_TIMES: int = 3

    # ------------------------------------------------------------------ #
    # Rate limiting (interest + message actions)
    # ------------------------------------------------------------------ #
    RATE_LIMIT_MAX_ACTIONS: int = 5
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # ------------------------------------------------------------------ #
    # Discovery feed
    # ------------------------------------------------------------------ #
    FEED_DEFAULT_PAGE_SIZE: int = 10
    FEED_REFILL_THRESHOLD: int = 4
    ACTIVE_RECENTLY_HOURS: int = 24
    BOOST_DURATION_MINUTES: int = 30

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator(
        "ROOM_PROVISION_MAX_ATTEMPTS",
        "VERITY_DATE_DURATION_SECONDS",
        "SESSION_SWEEP_INTERVAL_SECONDS",
        "RATE_LIMIT_MAX_ACTIONS",
        "RATE_LIMIT_WINDOW_SECONDS",
        "FEED_DEFAULT_PAGE_SIZE",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from verity.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
