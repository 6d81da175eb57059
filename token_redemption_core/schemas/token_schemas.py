"""
Pydantic schemas for redeemable tokens.

Defines the request and response models exchanged with the HTTP layer.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from ..utils.code_utils import ensure_utc, parse_expires_at


class BaseTokenSchema(BaseModel):
    """Base schema for token input models."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
    )


class TokenCreate(BaseTokenSchema):
    """Input for creating a token. The code is generated, never supplied."""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    description: Optional[str] = Field(None, description="Free text description")
    usage_limit: int = Field(default=1, ge=1, description="Maximum successful consumptions")
    expires_at: Optional[datetime] = Field(None, description="Expiry; absent means never")
    restricted_contact: Optional[str] = Field(
        None, max_length=64, description="Contact that consumption must present"
    )
    creator_id: Optional[str] = Field(None, max_length=36, description="Weak reference to a user")

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expiry(cls, v):
        """Accept datetimes and ISO-8601 strings; store as UTC."""
        return parse_expires_at(v)

    @field_validator("restricted_contact", "description")
    @classmethod
    def blank_to_none(cls, v):
        """Treat blank strings as absent."""
        return v or None


class TokenRead(BaseModel):
    """Token as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    name: str
    description: Optional[str] = None
    usage_limit: int
    usage_count: int
    expires_at: Optional[datetime] = None
    restricted_contact: Optional[str] = None
    is_active: bool
    creator_id: Optional[str] = None
    creator_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_uses(self) -> int:
        return max(self.usage_limit - self.usage_count, 0)


class ValidationResult(BaseModel):
    """Outcome of a successful read-only consumability check."""

    valid: bool = True
    token: TokenRead
    remaining_uses: int


class ConsumptionResult(BaseModel):
    """Outcome of a successful consumption."""

    code: str
    usage_count: int
    usage_limit: int
    remaining_uses: int
    usage_id: str
    used_at: datetime
    purpose: str


class UsageRecordRead(BaseModel):
    """Ledger entry enriched with the consuming user's identity when known."""

    id: str
    token_id: str
    user_id: Optional[str] = None
    purpose: str
    metadata: Optional[Any] = None
    user_info: Optional[Any] = None
    used_at: datetime
    username: Optional[str] = None
    user_email: Optional[str] = None

    @field_validator("used_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)


class DeletedToken(BaseModel):
    """Summary of a deleted token."""

    code: str
    name: str
    deleted_usage_records: int = 0


class TokenStatistics(BaseModel):
    """Aggregate counts over all tokens."""

    total_tokens: int = 0
    active_tokens: int = 0
    inactive_tokens: int = 0
    expired_tokens: int = 0
    exhausted_tokens: int = 0
    total_usage_records: int = 0
