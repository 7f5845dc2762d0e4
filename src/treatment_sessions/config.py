"""Application configuration."""

import os
from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    notification_webhook_url: str | None = None
    max_recovery_tokens: int = 50
    default_duration_seconds: int = 3600
    scheduler_poll_seconds: float = 1.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def default_duration(self) -> timedelta:
        return timedelta(seconds=self.default_duration_seconds)


def parse_duration_seconds(raw: float | None, fallback: timedelta) -> timedelta:
    """Return a positive duration from request input, or the fallback."""
    if raw is None:
        return fallback
    if raw <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(seconds=raw)
