"""Application configuration module.

This module contains settings for the URL shortener service,
loaded from environment variables with appropriate defaults.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class EnvironmentType(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with defaults.

    Settings are loaded from environment variables, with fallback to
    values in .env file if present, and finally to the default values
    specified here.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    ENVIRONMENT: EnvironmentType = EnvironmentType.DEVELOPMENT

    # App Information
    APP_NAME: str = "URL Shortener"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Short codes, redirects and click statistics"

    # API Configuration
    BASE_URL: str = "http://localhost:8000"  # Prefix for generated short URLs
    DEBUG: bool = False
    CORS_ORIGINS: Union[List[str], str] = ["*"]

    # Short code generation
    SHORT_CODE_LENGTH: int = 7
    SHORT_CODE_MIN_LENGTH: int = 3
    SHORT_CODE_MAX_ATTEMPTS: int = 10

    # Denylist patterns (case-insensitive regular expressions)
    MALICIOUS_URL_PATTERNS: Union[List[str], str] = ["phish", "malware", "hack", "scam"]

    # PostgreSQL settings
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "url_shortener"
    DATABASE_URL: Optional[str] = None  # Full override of the computed URI

    # PostgreSQL pool settings
    POSTGRES_POOL_SIZE: int = 20
    POSTGRES_POOL_MAX_OVERFLOW: int = 10
    POSTGRES_POOL_TIMEOUT: int = 30
    POSTGRES_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False

    # Startup connection retry
    DB_CONNECT_RETRY_ATTEMPTS: int = 5
    DB_CONNECT_RETRY_INITIAL_DELAY: float = 1.0
    DB_CONNECT_RETRY_MAX_DELAY: float = 30.0
    DB_CONNECT_RETRY_JITTER: float = 0.1  # Fraction of the delay

    # Redis settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_DB: int = 0
    REDIS_URL: Optional[str] = None  # Full override of the computed URI
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_RECONNECT_INITIAL_DELAY: float = 0.5
    REDIS_RECONNECT_MAX_DELAY: float = 30.0

    # Cache settings
    CACHE_ENABLED: bool = True
    CACHE_DEFAULT_TTL: int = 3600  # Seconds, used when a record never expires

    # Expiration sweeper
    SWEEP_INTERVAL_MINUTES: int = 60
    SWEEP_START_ON_STARTUP: bool = False
    RETENTION_PURGE_INTERVAL_HOURS: int = 24
    RETENTION_DAYS: int = 30

    # Scheduler settings
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_JOBSTORE_URL: Optional[str] = None  # None keeps jobs in memory
    SCHEDULER_JOB_COALESCE: bool = True
    SCHEDULER_JOB_MAX_INSTANCES: int = 1
    SCHEDULER_MISFIRE_GRACE_TIME: int = 15 * 60

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_FILENAME: str = "app.log"
    LOG_TO_FILE: bool = True
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "7 days"
    LOG_FORMAT: str = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{line} | {message}"
    LOG_JSON: bool = True
    REQUEST_LOGGING_ENABLED: bool = True

    @field_validator("CORS_ORIGINS", "MALICIOUS_URL_PATTERNS")
    def validate_list_or_string(cls, v: Union[List[str], str]) -> List[str]:
        """Convert comma-separated string to list if needed."""
        if isinstance(v, str):
            if not v.strip():
                return []
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("SHORT_CODE_LENGTH")
    def validate_code_length(cls, v: int) -> int:
        if not 3 <= v <= 30:
            raise ValueError("SHORT_CODE_LENGTH must be between 3 and 30")
        return v

    @field_validator("SHORT_CODE_MAX_ATTEMPTS", "CACHE_DEFAULT_TTL", "RETENTION_DAYS")
    def validate_positive(cls, v: Any) -> int:
        if int(v) < 1:
            raise ValueError("value must be a positive integer")
        return int(v)

    @computed_field
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Construct the SQLAlchemy database URI from settings or use override."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @computed_field
    def REDIS_URI(self) -> str:
        """Construct the Redis URI from settings or use override."""
        if self.REDIS_URL:
            return self.REDIS_URL
        password_part = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{password_part}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Create a singleton instance of the settings
settings = Settings()
