"""
Helpers for token codes, timestamps and retry delays.

Codes are a fixed prefix followed by characters drawn with ``secrets`` from
a 36-symbol alphabet; with 8 characters that is 36**8 (about 2.8e12)
possible suffixes per prefix.
"""

import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from ..constants import CODE_ALPHABET, DEFAULT_CODE_LENGTH, DEFAULT_CODE_PREFIX
from ..exceptions import ErrorCode, ValidationError


def generate_token_code(prefix: str = DEFAULT_CODE_PREFIX, length: int = DEFAULT_CODE_LENGTH) -> str:
    """Return ``prefix`` followed by ``length`` random upper-case alphanumerics."""
    if length < 1:
        raise ValidationError(
            "Code length must be positive",
            field="code_length",
            error_code=ErrorCode.INVALID_FORMAT,
            value=length,
        )
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix}{suffix}"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_expires_at(value: Any) -> Optional[datetime]:
    """
    Parse an expiry timestamp supplied by a caller.

    Args:
        value: None, a datetime, or an ISO-8601 string (a trailing ``Z`` is accepted)

    Returns:
        A timezone-aware UTC datetime, or None when no expiry was given

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise ValidationError(
                f"expires_at is not a valid timestamp: {value!r}",
                field="expires_at",
                error_code=ErrorCode.INVALID_FORMAT,
                cause=e,
                value=value,
            ) from e

    raise ValidationError(
        f"expires_at must be a datetime or ISO-8601 string, got {type(value).__name__}",
        field="expires_at",
        error_code=ErrorCode.INVALID_FORMAT,
        value=str(value),
    )


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Exponential backoff delay in seconds for a zero-based retry ``attempt``."""
    return min(base * (2**attempt), maximum)
