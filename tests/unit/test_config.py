"""Tests for centralized configuration and store configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import inspect

from token_redemption_core.config import (
    AppConfig,
    LoggingConfig,
    QueueConfig,
    TokenConfig,
    get_config,
    reset_config,
    set_config,
)
from token_redemption_core.db import (
    DatabaseConfig,
    DatabaseManager,
    get_development_config,
    get_production_config,
    init_db,
)
from token_redemption_core.exceptions import ErrorCode, StoreError, ValidationError

PRODUCTION_ENV = {
    "DB_HOST": "db.internal",
    "DB_NAME": "tokens",
    "DB_USER": "token_app",
    "DB_PASSWORD": "s3cret",
}


class TestLoggingConfig:
    """Test LoggingConfig model."""

    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = LoggingConfig()
        assert config.level == "INFO"
        assert config.enable_queue_logging is False

    def test_from_env(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug", "ENABLE_QUEUE_LOGGING": "true"}):
            config = LoggingConfig()
        assert config.level == "DEBUG"
        assert config.enable_queue_logging is True

    def test_invalid_level(self):
        with pytest.raises(PydanticValidationError):
            LoggingConfig(level="LOUD")

    def test_invalid_level_from_env(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}):
            with pytest.raises(PydanticValidationError):
                LoggingConfig()


class TestQueueConfig:
    """Test QueueConfig model."""

    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = QueueConfig()
        assert config.connection_string == ""
        assert config.logs_queue_name == "logs-queue"
        assert config.batch_size == 10

    def test_from_env(self):
        with patch.dict(os.environ, {"AzureWebJobsStorage": "UseDevelopmentStorage=true"}):
            config = QueueConfig()
        assert config.connection_string == "UseDevelopmentStorage=true"


class TestTokenConfig:
    """Test TokenConfig model."""

    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = TokenConfig()
        assert config.code_prefix == "TKN-"
        assert config.code_length == 8
        assert config.max_code_attempts == 5
        assert config.code_retry_backoff_base == 0.05
        assert config.code_retry_backoff_max == 1.0
        assert config.default_purpose == "General use"

    def test_prefix_from_env(self):
        with patch.dict(os.environ, {"TOKEN_CODE_PREFIX": "JC-"}):
            assert TokenConfig().code_prefix == "JC-"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"code_length": 4},
            {"code_length": 64},
            {"max_code_attempts": 0},
            {"code_retry_backoff_base": -1},
            {"code_retry_backoff_base": 2.0, "code_retry_backoff_max": 1.0},
            {"default_purpose": ""},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(PydanticValidationError):
            TokenConfig(**overrides)


class TestGlobalConfig:
    """Test the process-wide configuration instance."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = AppConfig(environment="staging", tokens=TokenConfig(code_prefix="PRM-"))
        set_config(custom)
        assert get_config().tokens.code_prefix == "PRM-"

        reset_config()
        assert get_config() is not custom


class TestDatabaseConfig:
    """Store configuration and fail-fast production settings."""

    def test_sqlite_connection_string(self):
        config = DatabaseConfig(db_type="sqlite", database="/tmp/tokens.db")
        assert config.get_connection_string() == "sqlite:////tmp/tokens.db"

    def test_postgres_connection_string(self):
        config = DatabaseConfig(
            database="tokens", host="db", username="app", password="pw", port="6543"
        )
        assert config.get_connection_string() == "postgresql://app:pw@db:6543/tokens"

    def test_postgres_missing_parameters(self):
        with pytest.raises(ValidationError) as exc_info:
            DatabaseConfig(database="tokens").get_connection_string()
        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED

    def test_unsupported_db_type(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="oracle", database="x").get_connection_string()

    def test_repr_masks_password(self):
        config = DatabaseConfig(database="tokens", host="db", username="app", password="pw")
        assert "pw'" not in repr(config)
        assert "***" in repr(config)

    def test_development_config(self):
        with patch.dict(os.environ, {"DEV_DB_PATH": "/tmp/dev.db"}):
            config = get_development_config()
        assert config.is_sqlite
        assert config.database == "/tmp/dev.db"
        assert config.development_mode is True

    def test_development_config_defaults_to_file(self):
        with patch.dict(os.environ, {}, clear=True):
            config = get_development_config()
        assert config.database == "token_redemption_dev.db"
        assert config.database != ":memory:"

    def test_production_config_from_env(self):
        with patch.dict(os.environ, {**PRODUCTION_ENV, "DB_POOL_SIZE": "20"}, clear=True):
            config = get_production_config()
        assert config.db_type == "postgres"
        assert config.host == "db.internal"
        assert config.pool_size == 20
        assert config.development_mode is False

    @pytest.mark.parametrize("missing", sorted(PRODUCTION_ENV))
    def test_production_config_fails_fast(self, missing):
        """Test credentials have no defaults."""
        env = {k: v for k, v in PRODUCTION_ENV.items() if k != missing}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(StoreError) as exc_info:
                get_production_config()
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR
        assert exc_info.value.context["missing"] == [missing]

    def test_drop_tables_refused_outside_development(self, tmp_path):
        manager = DatabaseManager(
            DatabaseConfig(db_type="sqlite", database=str(tmp_path / "prod.db"))
        )
        try:
            with pytest.raises(StoreError) as exc_info:
                manager.drop_tables()
            assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR
        finally:
            manager.close()

    def test_init_db_creates_tables(self, tmp_path):
        manager = DatabaseManager(
            DatabaseConfig(
                db_type="sqlite", database=str(tmp_path / "init.db"), development_mode=True
            )
        )
        try:
            init_db(manager)

            table_names = set(inspect(manager.engine).get_table_names())
            assert {"users", "redeemable_tokens", "token_usage_records"} <= table_names
            assert manager.dialect_name == "sqlite"
        finally:
            manager.close()
