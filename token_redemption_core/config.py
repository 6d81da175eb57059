"""
Centralized configuration management for the token redemption core.

This module provides a unified configuration system with support for:
- Environment variables
- Runtime configuration
- Validation using Pydantic

Database connection settings live in ``db.db_config`` because they are
required external configuration and fail fast when absent.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    DEFAULT_CODE_LENGTH,
    DEFAULT_CODE_PREFIX,
    DEFAULT_USAGE_PURPOSE,
    EnvironmentVariable,
    LogLevel,
    QueueName,
)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        validate_default=True,
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )
    enable_queue_logging: bool = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.ENABLE_QUEUE_LOGGING.value, "false"
        ).lower()
        == "true",
        description="Ship structured logs to an Azure Storage queue",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class QueueConfig(BaseModel):
    """Azure Storage queue used for log shipping."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default=QueueName.LOGS.value, description="Logs queue name")
    batch_size: int = Field(default=10, gt=0, description="Log entries per queue flush")


class TokenConfig(BaseModel):
    """Token code generation and consumption defaults."""

    code_prefix: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.TOKEN_CODE_PREFIX.value, DEFAULT_CODE_PREFIX
        ),
        description="Fixed prefix of every generated code",
    )
    code_length: int = Field(
        default=DEFAULT_CODE_LENGTH, ge=6, le=32, description="Random suffix length"
    )
    max_code_attempts: int = Field(
        default=5, ge=1, le=20, description="Insert attempts before a code collision is fatal"
    )
    code_retry_backoff_base: float = Field(
        default=0.05, ge=0, description="Base delay (seconds) for collision retry backoff"
    )
    code_retry_backoff_max: float = Field(
        default=1.0, ge=0, description="Maximum delay (seconds) for collision retry backoff"
    )
    default_purpose: str = Field(
        default=DEFAULT_USAGE_PURPOSE, min_length=1, description="Purpose recorded when unset"
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "TokenConfig":
        """The backoff cap must not be below its base."""
        if self.code_retry_backoff_max < self.code_retry_backoff_base:
            raise ValueError("code_retry_backoff_max must be >= code_retry_backoff_base")
        return self


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true",
        description="Debug mode",
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    tokens: TokenConfig = Field(default_factory=TokenConfig, description="Token configuration")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
