"""
Constants and enums for the token redemption core.

This module centralizes magic strings and defaults used throughout
the package.
"""

import string
from enum import Enum

# Symbols a generated token code suffix is drawn from (36 symbols)
CODE_ALPHABET = string.ascii_uppercase + string.digits

DEFAULT_CODE_PREFIX = "TKN-"
DEFAULT_CODE_LENGTH = 8
DEFAULT_USAGE_PURPOSE = "General use"
MAX_PURPOSE_LENGTH = 255
DEFAULT_DEV_DB_PATH = "token_redemption_dev.db"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class QueueName(str, Enum):
    """Standard queue names."""

    LOGS = "logs-queue"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    ENABLE_QUEUE_LOGGING = "ENABLE_QUEUE_LOGGING"
    TOKEN_CODE_PREFIX = "TOKEN_CODE_PREFIX"
    DB_TYPE = "DB_TYPE"
    DB_HOST = "DB_HOST"
    DB_PORT = "DB_PORT"
    DB_NAME = "DB_NAME"
    DB_USER = "DB_USER"
    DB_PASSWORD = "DB_PASSWORD"
    DB_POOL_SIZE = "DB_POOL_SIZE"
    DB_MAX_OVERFLOW = "DB_MAX_OVERFLOW"
    DB_POOL_TIMEOUT = "DB_POOL_TIMEOUT"
    DB_ECHO = "DB_ECHO"
    DEV_DB_PATH = "DEV_DB_PATH"


class OperationStatus(str, Enum):
    """Status values logged for operations."""

    SUCCESS = "success"
    ERROR = "error"
