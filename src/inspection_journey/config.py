"""Application configuration."""

import os
from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    journey_api_base_url: str
    journey_api_token: str | None = None
    storage_dir: Path = Path(".inspection_journey")
    freshness_hours: float = 24
    session_ttl_hours: float = 24
    last_known_max_age_hours: float = 24
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3
    request_timeout_seconds: float = 15
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(hours=self.freshness_hours)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)

    @property
    def last_known_max_age(self) -> timedelta:
        return timedelta(hours=self.last_known_max_age_hours)
