"""
User model referenced by tokens and usage records.

Only what display-name lookups need; accounts are managed elsewhere.
"""

from sqlalchemy import Column, String

from .db_base import TimestampMixin, UUIDMixin
from .db_config import Base


class User(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "users"

    username = Column(String(255), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
