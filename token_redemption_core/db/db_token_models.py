"""
Redeemable token models.

Just the data structure. Consumability rules live in the service layer,
locking and queries in the repositories.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import Base


class RedeemableToken(Base, UUIDMixin, TimestampMixin):
    """A shareable code with a bounded number of consumptions."""

    __tablename__ = "redeemable_tokens"

    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Lifecycle
    usage_limit = Column(Integer, nullable=False, default=1)
    usage_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Gating
    restricted_contact = Column(String(64), nullable=True)

    # Weak reference to users.id, no FK
    creator_id = Column(String(36), nullable=True, index=True)

    __table_args__ = (
        CheckConstraint("usage_limit >= 1", name="ck_redeemable_tokens_usage_limit_positive"),
        CheckConstraint(
            "usage_count >= 0 AND usage_count <= usage_limit",
            name="ck_redeemable_tokens_usage_count_bounds",
        ),
        Index("ix_redeemable_tokens_active_expiry", "is_active", "expires_at"),
    )

    def __repr__(self):
        return (
            f"<RedeemableToken(code={self.code}, uses={self.usage_count}/{self.usage_limit}, "
            f"active={self.is_active})>"
        )


class TokenUsageRecord(Base, UUIDMixin):
    """Append-only ledger entry for one consumption."""

    __tablename__ = "token_usage_records"

    token_id = Column(String(36), ForeignKey("redeemable_tokens.id"), nullable=False, index=True)

    # Weak reference to users.id, no FK
    user_id = Column(String(36), nullable=True)

    purpose = Column(String(255), nullable=False)
    usage_metadata = Column("metadata", JSON, nullable=True)
    user_info = Column(JSON, nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
