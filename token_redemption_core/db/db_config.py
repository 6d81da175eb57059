import os
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..constants import DEFAULT_DEV_DB_PATH, EnvironmentVariable
from ..exceptions import ErrorCode, StoreError, ValidationError
from ..utils.logger import get_logger

# Base class for all SQLAlchemy models
Base: Any = declarative_base()


class DatabaseConfig(BaseModel):
    db_type: str = "postgres"
    database: str
    host: Optional[str] = None
    port: str = "5432"
    username: Optional[str] = None
    password: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout: float = 30.0
    echo: bool = False
    development_mode: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_sqlite(self) -> bool:
        return self.db_type.lower() == "sqlite"

    def get_connection_string(self) -> str:
        if self.db_type.lower() == "postgres":
            if not all([self.host, self.database, self.username, self.password]):
                raise ValidationError(
                    "Missing required Postgres configuration parameters",
                    error_code=ErrorCode.MISSING_REQUIRED,
                    field="database_config",
                    value={"host": self.host, "database": self.database, "username": self.username},
                )
            return (
                f"postgresql://{self.username}:{self.password}@"
                f"{self.host}:{self.port}/{self.database}"
            )
        elif self.is_sqlite:
            return f"sqlite:///{self.database}"
        raise ValidationError(
            f"Unsupported database type: {self.db_type}",
            error_code=ErrorCode.INVALID_FORMAT,
            field="db_type",
            value=self.db_type,
        )

    def __repr__(self) -> str:
        """String representation with masked password."""
        return (
            f"DatabaseConfig("
            f"db_type='{self.db_type}', "
            f"host='{self.host}', "
            f"port='{self.port}', "
            f"database='{self.database}', "
            f"username='{self.username}', "
            f"password='***')"
        )


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # Hand transaction control to SQLAlchemy so the "begin" hook below decides how to BEGIN
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn) -> None:
    # SQLite has no row locks; take the write lock up front so check-then-write is serialized
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseManager:
    """
    Explicitly constructed store handle: engine plus session factory.

    Services receive a manager instead of reaching for a process-wide pool.
    Every unit of work opens its own session from ``session_factory``.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = self._create_engine()
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _create_engine(self) -> Engine:
        connection_string = self.config.get_connection_string()
        if self.config.is_sqlite:
            engine = create_engine(
                connection_string,
                echo=self.config.echo,
                connect_args={"check_same_thread": False, "timeout": self.config.busy_timeout},
            )
            event.listen(engine, "connect", _configure_sqlite_connection)
            event.listen(engine, "begin", _begin_immediate)
            return engine
        return create_engine(
            connection_string,
            echo=self.config.echo,
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout,
            pool_pre_ping=True,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def create_tables(self) -> None:
        import_all_models()
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        if self.config.development_mode:
            Base.metadata.drop_all(self.engine)
        else:
            raise StoreError(
                "Cannot drop tables: not in development mode",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="drop_tables",
                development_mode=self.config.development_mode,
            )

    def get_session(self) -> Session:
        return self.session_factory()

    def close(self) -> None:
        self.engine.dispose()


def get_development_config() -> DatabaseConfig:
    """
    Get SQLite configuration for development.

    Always file-backed: ``:memory:`` gives each pooled connection its own
    empty database.
    """
    return DatabaseConfig(
        db_type="sqlite",
        database=os.environ.get(EnvironmentVariable.DEV_DB_PATH.value, DEFAULT_DEV_DB_PATH),
        echo=os.environ.get(EnvironmentVariable.DB_ECHO.value, "False").lower() == "true",
        development_mode=True,
    )


def get_production_config() -> DatabaseConfig:
    """
    Get Postgres configuration for production from environment variables.

    Credentials are required external configuration; there are no defaults.

    Raises:
        StoreError: If any required variable is missing or empty
    """
    required = [
        EnvironmentVariable.DB_HOST,
        EnvironmentVariable.DB_NAME,
        EnvironmentVariable.DB_USER,
        EnvironmentVariable.DB_PASSWORD,
    ]
    missing: List[str] = [var.value for var in required if not os.environ.get(var.value)]
    if missing:
        raise StoreError(
            f"Missing required database configuration: {', '.join(missing)}",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            operation="get_production_config",
            missing=missing,
        )

    return DatabaseConfig(
        db_type="postgres",
        host=os.environ[EnvironmentVariable.DB_HOST.value],
        port=os.environ.get(EnvironmentVariable.DB_PORT.value, "5432"),
        database=os.environ[EnvironmentVariable.DB_NAME.value],
        username=os.environ[EnvironmentVariable.DB_USER.value],
        password=os.environ[EnvironmentVariable.DB_PASSWORD.value],
        pool_size=int(os.environ.get(EnvironmentVariable.DB_POOL_SIZE.value, "5")),
        max_overflow=int(os.environ.get(EnvironmentVariable.DB_MAX_OVERFLOW.value, "10")),
        pool_timeout=int(os.environ.get(EnvironmentVariable.DB_POOL_TIMEOUT.value, "30")),
        echo=os.environ.get(EnvironmentVariable.DB_ECHO.value, "False").lower() == "true",
        development_mode=False,
    )


def import_all_models():
    """Import all models to ensure they're registered with SQLAlchemy metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_token_models import RedeemableToken, TokenUsageRecord  # noqa
    from .db_user_models import User  # noqa

    configure_mappers()


def init_db(db_manager: DatabaseManager) -> None:
    """
    Initialize the database, creating all tables.

    Args:
        db_manager: DatabaseManager instance to use for table creation
    """
    get_logger().info(
        "Initializing database",
        extra={"dialect": db_manager.dialect_name, "database": db_manager.config.database},
    )
    db_manager.create_tables()
