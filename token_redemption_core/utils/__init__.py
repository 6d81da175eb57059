"""Utility modules for the token redemption core."""

from .code_utils import backoff_delay, ensure_utc, generate_token_code, parse_expires_at
from .json_utils import EnhancedJSONEncoder, dumps
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    CorrelationIdFilter,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    # Code and timestamp helpers
    "backoff_delay",
    "ensure_utc",
    "generate_token_code",
    "parse_expires_at",
    # JSON helpers
    "dumps",
    "EnhancedJSONEncoder",
    # Logging utilities
    "AzureQueueHandler",
    "ContextAwareLogger",
    "CorrelationIdFilter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
