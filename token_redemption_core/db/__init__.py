"""
SQLAlchemy models and store configuration.

This module provides a common entry point for all models.
"""

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    get_development_config,
    get_production_config,
    import_all_models,
    init_db,
)
from .db_token_models import RedeemableToken, TokenUsageRecord
from .db_user_models import User

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "get_development_config",
    "get_production_config",
    "import_all_models",
    "init_db",
    # Models
    "RedeemableToken",
    "TokenUsageRecord",
    "User",
]
