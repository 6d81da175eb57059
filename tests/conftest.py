"""
Shared test fixtures.

This module provides the store setup used by every test: a file-backed
SQLite database per test (so threads share one database), a
``DatabaseManager`` over it, and a ``TokenService`` wired to that manager.
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from token_redemption_core.config import TokenConfig, reset_config
from token_redemption_core.db import DatabaseConfig, DatabaseManager, User, utc_now
from token_redemption_core.exceptions import clear_correlation_id
from token_redemption_core.services.token_service import TokenService
from token_redemption_core.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def isolate_globals():
    """Reset process-wide config, logger and correlation ID around each test."""
    reset_config()
    reset_logging()
    clear_correlation_id()
    yield
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture(scope="function")
def db_config(tmp_path) -> DatabaseConfig:
    """SQLite file database configuration; ``:memory:`` would be private per connection."""
    return DatabaseConfig(
        db_type="sqlite",
        database=str(tmp_path / "tokens.db"),
        busy_timeout=30.0,
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="function")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Database manager with all tables created; dropped and disposed afterwards."""
    manager = DatabaseManager(db_config)
    manager.create_tables()

    yield manager

    manager.drop_tables()
    manager.close()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """A raw session for repository-level tests. Rolled back after each test."""
    session = db_manager.get_session()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def token_config() -> TokenConfig:
    """Token settings without retry delays."""
    return TokenConfig(
        code_prefix="TKN-",
        code_length=8,
        max_code_attempts=5,
        code_retry_backoff_base=0.0,
        code_retry_backoff_max=0.0,
    )


@pytest.fixture
def token_service(db_manager: DatabaseManager, token_config: TokenConfig) -> TokenService:
    """Service under test with the real store."""
    return TokenService(db_manager, config=token_config)


@pytest.fixture
def sample_user(db_manager: DatabaseManager) -> dict:
    """A persisted user to act as token creator and consumer."""
    with db_manager.get_session() as session:
        user = User(username="alice", email="alice@example.com")
        session.add(user)
        session.commit()
        return {"id": user.id, "username": user.username, "email": user.email}


@pytest.fixture
def past_time():
    return utc_now() - timedelta(hours=1)


@pytest.fixture
def future_time():
    return utc_now() + timedelta(days=1)
