from .base_repository import BaseRepository
from .token_repository import TokenRepository
from .usage_record_repository import UsageRecordRepository

__all__ = ["BaseRepository", "TokenRepository", "UsageRecordRepository"]
