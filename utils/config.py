"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    marker_bucket = settings.MARKER_BUCKET
    settings.require("MARKER_BUCKET", "MARKER_KEY")

The harvest core never reads settings directly; the entrypoint wires them in.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or empty."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # AWS Configuration
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ENDPOINT_URL: str = Field(default="")
    ATHENA_WORK_GROUP: str = Field(default="")

    # Cursor and Result Locations
    MARKER_BUCKET: str = Field(default="")
    MARKER_KEY: str = Field(default="")
    RETRY_BUCKET: str = Field(default="")
    RETRY_KEY: str = Field(default="")
    RESULT_BUCKET: str = Field(default="")

    # Scheduler Configuration
    HARVEST_SCHEDULE_CRON: str = Field(default="*/15 * * * *")
    RETRY_SCHEDULE_CRON: str = Field(default="0 * * * *")
    RUN_ONCE: bool = Field(default=False)
    RUN_MODE: str = Field(default="all")

    # Redis Configuration (empty URL disables run notifications)
    REDIS_URL: str = Field(default="")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_RUNS: str = Field(default="harvest.runs")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="athena-query-metrics")
    APP_VERSION: str = Field(default="0.1.0")

    def require(self, *names: str) -> None:
        """Ensure the named settings are present and non-empty.

        Args:
            names: Setting attribute names

        Raises:
            ConfigurationError: If any of the settings is empty
        """
        missing = [name for name in names if not str(getattr(self, name, "") or "").strip()]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
