"""Process configuration loaded from the environment and an optional .env file."""

from __future__ import annotations

from datetime import datetime, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scalecron.control.client import DEFAULT_API_BASE, DEFAULT_TIMEOUT_S


class Settings(BaseSettings):
    """Application settings. Every field reads ``SCALECRON_<NAME>``."""

    model_config = SettingsConfigDict(
        env_prefix="SCALECRON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Control plane
    api_base: str = DEFAULT_API_BASE
    api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SCALECRON_API_TOKEN", "LIARA_API_TOKEN"),
    )
    request_timeout: float = DEFAULT_TIMEOUT_S

    # Persistence: unset keeps schedules in memory only
    store_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("SCALECRON_STORE_PATH", "DATABASE_PATH"),
    )

    # Scheduling
    timezone: str | None = None

    # HTTP
    host: str = "0.0.0.0"
    port: int = Field(default=8080, validation_alias=AliasChoices("SCALECRON_PORT", "PORT"))

    # Logging
    log_level: str = "INFO"
    log_buffer_lines: int = 1000

    @field_validator("api_token", "timezone", "store_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone '{value}'") from None
        return value

    def zone(self) -> tzinfo | None:
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
