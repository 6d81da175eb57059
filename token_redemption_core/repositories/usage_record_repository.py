"""
Repository for the append-only token usage ledger.
"""

from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..db.db_token_models import TokenUsageRecord
from ..db.db_user_models import User
from .base_repository import BaseRepository


class UsageRecordRepository(BaseRepository[TokenUsageRecord]):
    """Data access for the ``token_usage_records`` table."""

    def __init__(self, session: Session):
        super().__init__(session, TokenUsageRecord)

    def record_usage(
        self,
        token_id: str,
        purpose: str,
        metadata: Optional[Any] = None,
        user_info: Optional[Any] = None,
        user_id: Optional[str] = None,
    ) -> TokenUsageRecord:
        """Append a ledger entry; ``used_at`` is assigned by the store."""
        with self._session_operation("record_usage", entity_id=token_id):
            record = TokenUsageRecord(
                token_id=token_id,
                user_id=user_id,
                purpose=purpose,
                usage_metadata=metadata,
                user_info=user_info,
            )
            self.session.add(record)
        return record

    def list_for_token(
        self, token_id: str
    ) -> List[Tuple[TokenUsageRecord, Optional[str], Optional[str]]]:
        """Ledger entries for a token, newest first, with the user's name and email."""
        query = (
            select(TokenUsageRecord, User.username, User.email)
            .outerjoin(User, User.id == TokenUsageRecord.user_id)
            .where(TokenUsageRecord.token_id == token_id)
            .order_by(TokenUsageRecord.used_at.desc(), TokenUsageRecord.id)
        )
        with self._session_operation("list_usage_records", entity_id=token_id, is_read_only=True):
            return [tuple(row) for row in self.session.execute(query).all()]

    def delete_for_token(self, token_id: str) -> int:
        """Remove every ledger entry of a token. Only called while deleting the token."""
        statement = (
            delete(TokenUsageRecord)
            .where(TokenUsageRecord.token_id == token_id)
            .execution_options(synchronize_session=False)
        )
        with self._session_operation("delete_usage_records", entity_id=token_id):
            result = self.session.execute(statement)
        return result.rowcount or 0

    def count_for_token(self, token_id: str) -> int:
        query = (
            select(func.count())
            .select_from(TokenUsageRecord)
            .where(TokenUsageRecord.token_id == token_id)
        )
        with self._session_operation("count_usage_records", entity_id=token_id, is_read_only=True):
            return self.session.execute(query).scalar_one()

    def count_all(self) -> int:
        query = select(func.count()).select_from(TokenUsageRecord)
        with self._session_operation("count_all_usage_records", is_read_only=True):
            return self.session.execute(query).scalar_one()
