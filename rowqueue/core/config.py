from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


class DatabaseBackend(str, Enum):
    """Relational stores the polling driver can run on."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class QueueDriverKind(str, Enum):
    """Queue backends selectable through settings."""
    POLLING = "polling"
    SQS = "sqs"


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "rowqueue"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = ""
    DATABASE_BACKEND: DatabaseBackend = DatabaseBackend.SQLITE
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # Queue
    QUEUE_DRIVER: QueueDriverKind = QueueDriverKind.POLLING
    QUEUE_NAME: str = ""
    VISIBILITY_TIMEOUT_SECONDS: float = 10.0
    MAX_RECEIVE_COUNT: int = 10
    MAX_BATCH_SIZE: int = 10
    OPERATION_TIMEOUT_SECONDS: float = 10.0

    # SQS
    SQS_QUEUE_NAME: str = ""
    AWS_REGION: Optional[str] = None
    SQS_WAIT_TIME_SECONDS: int = 0

    # Consumer
    CONSUMER_POLL_INTERVAL_SECONDS: float = 1.0

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        allowed_envs = ["development", "staging", "production", "testing"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of: {allowed_envs}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @field_validator(
        "VISIBILITY_TIMEOUT_SECONDS",
        "MAX_RECEIVE_COUNT",
        "MAX_BATCH_SIZE",
        "OPERATION_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("SQS_WAIT_TIME_SECONDS")
    @classmethod
    def validate_wait_time(cls, v):
        # SQS long polling is capped at 20 seconds
        if not 0 <= v <= 20:
            raise ValueError("SQS wait time must be between 0 and 20 seconds")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment, applying keyword overrides.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def require(value: Optional[str], name: str) -> str:
    """Return ``value`` or raise ConfigurationError when it is empty."""
    if value is None or not str(value).strip():
        raise ConfigurationError(f"{name} is empty")
    return value
