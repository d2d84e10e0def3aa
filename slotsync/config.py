"""Centralized configuration management using Pydantic Settings.

Each section is loaded from environment variables with its own prefix.

Usage:
    from slotsync.config import get_settings
    settings = get_settings()
    interval = settings.sync.poll_interval_sec
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Event store connection configuration."""

    model_config = SettingsConfigDict(env_prefix="SLOTSYNC_STORE_", extra="ignore")

    base_url: str = Field(default="http://localhost:8787", description="Store base URL")
    timeout_sec: float = Field(default=10.0, description="Request timeout in seconds")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SyncSettings(BaseSettings):
    """Polling and write-debounce tuning."""

    model_config = SettingsConfigDict(env_prefix="SLOTSYNC_SYNC_", extra="ignore")

    poll_interval_sec: float = Field(default=3.0, gt=0, description="Seconds between polls")
    debounce_sec: float = Field(default=1.0, ge=0, description="Quiet period before a write")
    expiry_days: int = Field(default=7, ge=1, description="Days before an event reads as expired")
    max_dates: int = Field(default=10, ge=1, description="Maximum dates per date-based event")


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(env_prefix="SLOTSYNC_", extra="ignore")

    http: bool = Field(default=False, alias="slotsync_http_debug")
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("http", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower() in ("1", "true", "yes")
        return bool(v)

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper()


class Settings:
    """Main settings combining all configuration sections.

    Not a BaseSettings subclass; each section is loaded independently
    with its own prefix.
    """

    def __init__(self) -> None:
        self.store = StoreSettings()
        self.sync = SyncSettings()
        self.debug = DebugSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
