"""
Repository for redeemable tokens.

Owns every token query, including the exclusive row lock taken by
consumption, activation toggles and deletion.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from ..db.db_base import utc_now
from ..db.db_token_models import RedeemableToken
from ..db.db_user_models import User
from .base_repository import BaseRepository


class TokenRepository(BaseRepository[RedeemableToken]):
    """Data access for the ``redeemable_tokens`` table."""

    def __init__(self, session: Session):
        super().__init__(session, RedeemableToken)

    def create(self, data: Dict[str, Any]) -> RedeemableToken:
        """
        Insert a token and flush so a duplicate code surfaces immediately.

        Raises:
            ConflictError: If the code is already taken
            StoreError: On any other database failure
        """
        with self._session_operation("create_token"):
            token = RedeemableToken(**data)
            self.session.add(token)

        self.logger.debug(
            "Inserted token", extra={"token_id": token.id, "code": token.code}
        )
        return token

    def get_by_code(self, code: str, for_update: bool = False) -> Optional[RedeemableToken]:
        """
        Fetch a token by code.

        Args:
            code: Token code
            for_update: Take an exclusive row lock held until the transaction ends

        Returns:
            The token or None if not found
        """
        query = select(RedeemableToken).where(RedeemableToken.code == code)
        if for_update:
            # Re-read the row after the lock is granted instead of trusting the identity map
            query = query.with_for_update().execution_options(populate_existing=True)

        with self._session_operation("get_token_by_code", is_read_only=True):
            return self.session.execute(query).scalar_one_or_none()

    def get_with_creator(self, code: str) -> Optional[Tuple[RedeemableToken, Optional[str]]]:
        """Fetch a token and its creator's username (None when unknown)."""
        query = (
            select(RedeemableToken, User.username)
            .outerjoin(User, User.id == RedeemableToken.creator_id)
            .where(RedeemableToken.code == code)
        )
        with self._session_operation("get_token_with_creator", is_read_only=True):
            row = self.session.execute(query).first()
        return (row[0], row[1]) if row else None

    def list_with_creator(self) -> List[Tuple[RedeemableToken, Optional[str]]]:
        """All tokens, newest first, each paired with its creator's username."""
        query = (
            select(RedeemableToken, User.username)
            .outerjoin(User, User.id == RedeemableToken.creator_id)
            .order_by(RedeemableToken.created_at.desc(), RedeemableToken.id)
        )
        with self._session_operation("list_tokens", is_read_only=True):
            return [(token, username) for token, username in self.session.execute(query).all()]

    def increment_usage(self, token: RedeemableToken) -> RedeemableToken:
        """Add one consumption to a token the caller holds the row lock on."""
        with self._session_operation("increment_usage", entity_id=token.id):
            token.usage_count = token.usage_count + 1
            token.updated_at = utc_now()
        return token

    def set_active(self, token: RedeemableToken, is_active: bool) -> RedeemableToken:
        with self._session_operation("set_token_active", entity_id=token.id):
            token.is_active = is_active
            token.updated_at = utc_now()
        return token

    def delete(self, token: RedeemableToken) -> None:
        with self._session_operation("delete_token", entity_id=token.id):
            self.session.delete(token)

        self.logger.info(
            "Deleted token", extra={"token_id": token.id, "code": token.code}
        )

    def deactivate_expired(self, now: Optional[datetime] = None) -> int:
        """Deactivate every active token whose expiry has passed, in one statement."""
        now = now or utc_now()
        statement = (
            update(RedeemableToken)
            .where(
                and_(
                    RedeemableToken.is_active.is_(True),
                    RedeemableToken.expires_at.is_not(None),
                    RedeemableToken.expires_at < now,
                )
            )
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._session_operation("deactivate_expired_tokens"):
            result = self.session.execute(statement)
        return result.rowcount or 0

    def _count(self, *conditions) -> int:
        query = select(func.count()).select_from(RedeemableToken)
        if conditions:
            query = query.where(and_(*conditions))
        return self.session.execute(query).scalar_one()

    def statistics(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Token counts by lifecycle state."""
        now = now or utc_now()
        with self._session_operation("token_statistics", is_read_only=True):
            return {
                "total_tokens": self._count(),
                "active_tokens": self._count(RedeemableToken.is_active.is_(True)),
                "inactive_tokens": self._count(RedeemableToken.is_active.is_(False)),
                "expired_tokens": self._count(
                    RedeemableToken.expires_at.is_not(None), RedeemableToken.expires_at < now
                ),
                "exhausted_tokens": self._count(
                    RedeemableToken.usage_count >= RedeemableToken.usage_limit
                ),
            }
