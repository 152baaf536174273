"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    api_url = settings.AC_API_URL
    chunk_size = settings.STORE_CHUNK_SIZE
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ActiveCampaign API Configuration
    AC_API_URL: str = Field(default="")
    AC_API_KEY: str = Field(default="")
    API_TIMEOUT: int = Field(default=30)

    # Sync Configuration
    SYNC_SCHEDULE_CRON: str = Field(default="0 3 * * *")
    SYNC_TIMEOUT_SECONDS: int = Field(default=300)
    SYNC_PAGE_SIZE: int = Field(default=100, ge=1)
    SYNC_METADATA_LIMIT: int = Field(default=1000, ge=1)

    # Rate Limiting (10 calls/second against the upstream API)
    RATE_LIMIT_GROUP_SIZE: int = Field(default=10, ge=1)
    RATE_LIMIT_GROUP_INTERVAL_MS: int = Field(default=1000, ge=0)
    RETRY_MAX_ATTEMPTS: int = Field(default=4, ge=1)
    RETRY_INITIAL_DELAY_MS: int = Field(default=1000, ge=0)

    # Storage Configuration
    STORE_CHUNK_SIZE: int = Field(default=10_000, ge=1)
    SQLITE_PATH: str = Field(default="/app/data/db/acsync.db")
    SQLITE_TIMEOUT: float = Field(default=30.0)

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_SYNC: str = Field(default="acsync.sync_completed")

    # Backend API Configuration
    API_PORT: int = Field(default=8000)
    API_HOST: str = Field(default="0.0.0.0")
    CRON_SECRET: str = Field(default="")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="acsync-backend")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
