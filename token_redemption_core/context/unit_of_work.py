"""
Transactional unit of work over an explicitly passed-in store handle.

A unit of work opens one session from the ``DatabaseManager``, exposes the
repositories bound to it, commits when the block finishes cleanly and rolls
back when anything raises. The session is always closed afterwards, so no
partial write of a failed block is ever visible to later reads.

Usage:
    with UnitOfWork(db_manager, "consume_token") as uow:
        token = uow.tokens.get_by_code(code, for_update=True)
        ...
"""

from typing import Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.db_config import DatabaseManager
from ..exceptions import ErrorCode, StoreError
from ..repositories.token_repository import TokenRepository
from ..repositories.usage_record_repository import UsageRecordRepository
from ..utils.logger import get_logger


class UnitOfWork:
    """One transaction: commit on success, roll back on any exception."""

    def __init__(self, db_manager: DatabaseManager, operation_name: str = "unit_of_work"):
        self.db_manager = db_manager
        self.operation_name = operation_name
        self.logger = get_logger()
        self.session: Optional[Session] = None
        self.tokens: Optional[TokenRepository] = None
        self.usage_records: Optional[UsageRecordRepository] = None

    def __enter__(self) -> "UnitOfWork":
        self.session = self.db_manager.session_factory()
        self.tokens = TokenRepository(self.session)
        self.usage_records = UsageRecordRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                self._commit()
            else:
                self._rollback(exc)
                if isinstance(exc, SQLAlchemyError):
                    raise StoreError(
                        f"Transaction failed in {self.operation_name}: {str(exc)}",
                        error_code=ErrorCode.DATABASE_ERROR,
                        cause=exc,
                        operation=self.operation_name,
                    ) from exc
        finally:
            self.session.close()
            self.session = None
        # Never suppress the original exception
        return False

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self._rollback(e)
            error_code = (
                ErrorCode.CONNECTION_ERROR
                if isinstance(e, OperationalError)
                else ErrorCode.DATABASE_ERROR
            )
            raise StoreError(
                f"Commit failed in {self.operation_name}: {str(e)}",
                error_code=error_code,
                cause=e,
                operation=self.operation_name,
            ) from e

    def _rollback(self, reason: BaseException) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError as rollback_error:
            # The original failure still propagates; the connection is discarded on close
            self.logger.error(
                f"Rollback failed in {self.operation_name}",
                extra={
                    "operation": self.operation_name,
                    "reason": type(reason).__name__,
                    "rollback_error": str(rollback_error),
                },
            )
        else:
            self.logger.debug(
                f"Rolled back {self.operation_name}",
                extra={"operation": self.operation_name, "reason": type(reason).__name__},
            )
