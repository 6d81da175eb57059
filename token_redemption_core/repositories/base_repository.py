"""
Base repository implementation with common functionality for all repositories.

Repositories receive a session and never commit or roll back; that is the
unit of work's job. They translate driver and SQLAlchemy failures into the
package's typed errors.
"""

from contextlib import contextmanager
from typing import Any, Generic, NoReturn, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import BaseError, ErrorCode, StoreError, duplicate
from ..utils.logger import get_logger

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository with common functionality for all repositories."""

    def __init__(self, session: Session, entity_class: Type[T]):
        """
        Initialize the base repository.

        Args:
            session: SQLAlchemy session for database operations
            entity_class: SQLAlchemy model class this repository handles
        """
        self.session = session
        self.entity_class = entity_class
        self.entity_name = entity_class.__name__
        self.logger = get_logger()

    def _handle_db_error(
        self,
        e: Exception,
        operation_name: str,
        entity_id: Optional[str] = None,
        **context: Any,
    ) -> NoReturn:
        """
        Map a database failure onto the typed error hierarchy.

        Args:
            e: The original exception
            operation_name: Name of the operation that failed
            entity_id: Optional entity ID involved in the operation
            **context: Additional context for the error

        Raises:
            ConflictError: On unique constraint violations
            StoreError: On any other database failure
        """
        # Already typed, keep its error code
        if isinstance(e, BaseError):
            raise e

        error_context = {
            "operation_name": operation_name,
            "entity_type": self.entity_name,
            **context,
        }
        if entity_id:
            error_context["entity_id"] = entity_id

        if isinstance(e, IntegrityError):
            error_message = str(e.orig).lower() if getattr(e, "orig", None) else str(e).lower()

            if "unique" in error_message or "duplicate" in error_message:
                self.logger.warning(
                    f"Duplicate {self.entity_name} in {operation_name}",
                    extra=error_context,
                )
                raise duplicate(resource_type=self.entity_name, cause=e, **error_context)

            self.logger.error(
                f"Integrity constraint violation in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise StoreError(
                f"Database constraint violation for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.CONSTRAINT_VIOLATION,
                cause=e,
                **error_context,
            )

        if isinstance(e, OperationalError):
            self.logger.error(
                f"Database unavailable in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise StoreError(
                f"Database unavailable for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.CONNECTION_ERROR,
                cause=e,
                **error_context,
            )

        if isinstance(e, SQLAlchemyError):
            self.logger.error(
                f"Database error in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise StoreError(
                f"Database error for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                **error_context,
            )

        self.logger.error(
            f"Unexpected error in {operation_name}: {str(e)}",
            extra=error_context,
        )
        raise StoreError(
            f"Unexpected error for {self.entity_name}: {str(e)}",
            error_code=ErrorCode.INTERNAL_ERROR,
            cause=e,
            **error_context,
        )

    @contextmanager
    def _session_operation(
        self, operation_name: str, entity_id: Optional[str] = None, is_read_only: bool = False
    ):
        """
        Context manager for operations on the existing session with error handling.

        Args:
            operation_name: Name of the operation for error reporting
            entity_id: Optional ID of the entity being operated on
            is_read_only: If True, skip the flush

        Yields:
            The existing session

        Raises:
            ConflictError, StoreError: If there's a database error
        """
        try:
            yield self.session
            # Flush writes so constraint violations surface inside the operation
            if not is_read_only:
                self.session.flush()
        except Exception as e:
            self._handle_db_error(e, operation_name, entity_id)
