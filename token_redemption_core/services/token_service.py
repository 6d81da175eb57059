"""
Token lifecycle service.

This service provides the operations exposed to the HTTP layer: create,
look up, list, validate, consume, activate/deactivate, delete and audit
redeemable tokens. Each operation runs as a single unit of work against an
explicitly passed-in ``DatabaseManager``.

Consumption is the only concurrency-sensitive operation. It locks the token
row, re-checks the consumability predicate against the locked values and
then writes the ledger entry and the counter increment in the same
transaction, so concurrent callers can never exceed ``usage_limit``.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..config import TokenConfig, get_config
from ..constants import MAX_PURPOSE_LENGTH
from ..context.operation_context import operation
from ..context.unit_of_work import UnitOfWork
from ..db.db_base import utc_now
from ..db.db_config import DatabaseManager
from ..db.db_token_models import RedeemableToken, TokenUsageRecord
from ..exceptions import (
    ConflictError,
    ContactMismatchError,
    ErrorCode,
    ExpiredError,
    InactiveError,
    LimitExceededError,
    ValidationError,
    not_found,
)
from ..schemas.token_schemas import (
    ConsumptionResult,
    DeletedToken,
    TokenCreate,
    TokenRead,
    TokenStatistics,
    UsageRecordRead,
    ValidationResult,
)
from ..utils.code_utils import backoff_delay, ensure_utc, generate_token_code
from ..utils.logger import get_logger


def _normalize_contact(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def check_consumable(
    token: RedeemableToken,
    restricted_contact: Optional[str] = None,
    now: Optional[datetime] = None,
    require_contact: bool = False,
) -> None:
    """
    Evaluate the consumability predicate, raising the first failure.

    Order: inactive, expired, limit reached, contact mismatch.

    Args:
        token: Token row to check
        restricted_contact: Contact supplied by the caller
        now: Evaluation time (defaults to the current UTC time)
        require_contact: When True a contact-restricted token also fails if the
            caller supplied no contact at all

    Raises:
        InactiveError, ExpiredError, LimitExceededError, ContactMismatchError
    """
    now = now or utc_now()

    if not token.is_active:
        raise InactiveError(f"Token {token.code} is inactive", code=token.code)

    expires_at = ensure_utc(token.expires_at)
    if expires_at is not None and expires_at < now:
        raise ExpiredError(
            f"Token {token.code} expired at {expires_at.isoformat()}",
            code=token.code,
            expires_at=expires_at.isoformat(),
        )

    if token.usage_count >= token.usage_limit:
        raise LimitExceededError(
            f"Token {token.code} has no remaining uses",
            code=token.code,
            usage_count=token.usage_count,
            usage_limit=token.usage_limit,
        )

    expected = _normalize_contact(token.restricted_contact)
    supplied = _normalize_contact(restricted_contact)
    if expected is not None:
        if supplied is None and not require_contact:
            return
        if supplied != expected:
            raise ContactMismatchError(
                f"Contact does not match the restriction on token {token.code}",
                code=token.code,
            )


class TokenService:
    """
    Service for the redeemable token lifecycle.

    The service holds no session of its own; every call opens a unit of work
    on ``db_manager``, so one instance can be shared across threads.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: Optional[TokenConfig] = None,
        code_generator: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the service.

        Args:
            db_manager: Store handle every operation runs against
            config: Token settings (defaults to the application config)
            code_generator: Optional override for generating token codes
        """
        self.db_manager = db_manager
        self.config = config or get_config().tokens
        self.code_generator = code_generator or (
            lambda: generate_token_code(self.config.code_prefix, self.config.code_length)
        )
        self.logger = get_logger()

    # ==================== HELPERS ====================

    @staticmethod
    def _normalize_code(code: Any) -> str:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError(
                "code must be a non-empty string",
                field="code",
                error_code=ErrorCode.MISSING_REQUIRED,
                value=str(code),
            )
        return code.strip()

    def _normalize_purpose(self, purpose: Any) -> str:
        if purpose is None:
            return self.config.default_purpose
        if not isinstance(purpose, str):
            raise ValidationError(
                "purpose must be a string",
                field="purpose",
                error_code=ErrorCode.INVALID_FORMAT,
                value=type(purpose).__name__,
            )
        purpose = purpose.strip() or self.config.default_purpose
        if len(purpose) > MAX_PURPOSE_LENGTH:
            raise ValidationError(
                f"purpose must be at most {MAX_PURPOSE_LENGTH} characters",
                field="purpose",
                error_code=ErrorCode.INVALID_FORMAT,
                length=len(purpose),
            )
        return purpose

    @staticmethod
    def _jsonable_payload(value: Any, field: str) -> Any:
        """Convert an opaque caller payload to JSON-compatible data."""
        if value is None:
            return None
        try:
            return to_jsonable_python(value)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise ValidationError(
                f"{field} must be JSON-serializable",
                field=field,
                error_code=ErrorCode.INVALID_FORMAT,
                cause=e,
            ) from e

    @staticmethod
    def _to_read(token: RedeemableToken, creator_name: Optional[str] = None) -> TokenRead:
        read = TokenRead.model_validate(token)
        read.creator_name = creator_name
        return read

    @staticmethod
    def _usage_to_read(
        record: TokenUsageRecord, username: Optional[str], user_email: Optional[str]
    ) -> UsageRecordRead:
        return UsageRecordRead(
            id=record.id,
            token_id=record.token_id,
            user_id=record.user_id,
            purpose=record.purpose,
            metadata=record.usage_metadata,
            user_info=record.user_info,
            used_at=record.used_at,
            username=username,
            user_email=user_email,
        )

    @staticmethod
    def _parse_create(data: Union[TokenCreate, Dict[str, Any]]) -> TokenCreate:
        if isinstance(data, TokenCreate):
            return data
        if not isinstance(data, dict):
            raise ValidationError(
                f"Token data must be a mapping, got {type(data).__name__}",
                error_code=ErrorCode.INVALID_FORMAT,
            )
        try:
            return TokenCreate.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['loc']}: {err['msg']}" for err in errors)
            raise ValidationError(
                f"Invalid token data: {summary}",
                field=errors[0]["loc"] if errors else None,
                cause=e,
                validation_errors=errors,
            ) from e

    # ==================== OPERATIONS ====================

    @operation()
    def create_token(self, data: Union[TokenCreate, Dict[str, Any]]) -> TokenRead:
        """
        Create a token with a freshly generated code.

        A code collision is retried with a new code and exponential backoff,
        up to ``max_code_attempts`` inserts.

        Args:
            data: ``TokenCreate`` or a dict of its fields

        Raises:
            ValidationError: If name is empty, usage_limit < 1 or expires_at is invalid
            ConflictError: If every attempt collided
            StoreError: If the store fails
        """
        token_data = self._parse_create(data)

        last_conflict: Optional[ConflictError] = None
        for attempt in range(self.config.max_code_attempts):
            code = self.code_generator()
            try:
                with UnitOfWork(self.db_manager, "create_token") as uow:
                    uow.tokens.create(
                        {
                            "code": code,
                            "name": token_data.name,
                            "description": token_data.description,
                            "usage_limit": token_data.usage_limit,
                            "usage_count": 0,
                            "expires_at": token_data.expires_at,
                            "restricted_contact": token_data.restricted_contact,
                            "is_active": True,
                            "creator_id": token_data.creator_id,
                        }
                    )
                    token, creator_name = uow.tokens.get_with_creator(code)
                    result = self._to_read(token, creator_name)
            except ConflictError as e:
                last_conflict = e
                if attempt + 1 >= self.config.max_code_attempts:
                    break
                delay = backoff_delay(
                    attempt,
                    self.config.code_retry_backoff_base,
                    self.config.code_retry_backoff_max,
                )
                self.logger.warning(
                    "Token code collision, retrying with a new code",
                    extra={"attempt": attempt + 1, "delay_seconds": delay},
                )
                time.sleep(delay)
                continue

            self.logger.info(
                "Token created",
                extra={
                    "token_id": result.id,
                    "code": result.code,
                    "usage_limit": result.usage_limit,
                    "expires_at": result.expires_at.isoformat() if result.expires_at else None,
                    "contact_restricted": result.restricted_contact is not None,
                },
            )
            return result

        raise last_conflict.add_context(attempts=self.config.max_code_attempts)

    @operation()
    def get_token(self, code: str) -> TokenRead:
        """
        Raises:
            NotFoundError: If no token has this code
        """
        code = self._normalize_code(code)
        with UnitOfWork(self.db_manager, "get_token") as uow:
            found = uow.tokens.get_with_creator(code)
            if found is None:
                raise not_found("RedeemableToken", code=code)
            return self._to_read(*found)

    @operation()
    def list_tokens(self) -> List[TokenRead]:
        """All tokens, newest first, with creator display names where known."""
        with UnitOfWork(self.db_manager, "list_tokens") as uow:
            return [
                self._to_read(token, creator_name)
                for token, creator_name in uow.tokens.list_with_creator()
            ]

    @operation()
    def validate_token(
        self, code: str, restricted_contact: Optional[str] = None
    ) -> ValidationResult:
        """
        Read-only consumability check. Never mutates state.

        The contact is only compared when both the token and the caller
        supply one; ``consume_token`` is stricter.

        Raises:
            NotFoundError, InactiveError, ExpiredError, LimitExceededError,
            ContactMismatchError
        """
        code = self._normalize_code(code)
        with UnitOfWork(self.db_manager, "validate_token") as uow:
            found = uow.tokens.get_with_creator(code)
            if found is None:
                raise not_found("RedeemableToken", code=code)
            token, creator_name = found

            check_consumable(token, restricted_contact, require_contact=False)

            read = self._to_read(token, creator_name)
            return ValidationResult(valid=True, token=read, remaining_uses=read.remaining_uses)

    @operation()
    def consume_token(
        self,
        code: str,
        purpose: Optional[str] = None,
        restricted_contact: Optional[str] = None,
        metadata: Optional[Any] = None,
        user_info: Optional[Any] = None,
    ) -> ConsumptionResult:
        """
        Atomically consume one use of a token.

        Locks the token row, re-evaluates the consumability predicate against
        the locked row, appends a usage record and increments the counter.
        Any failure rolls back both writes.

        Raises:
            ValidationError: If purpose, metadata or user_info is malformed
            NotFoundError, InactiveError, ExpiredError, LimitExceededError,
            ContactMismatchError, StoreError
        """
        code = self._normalize_code(code)
        effective_purpose = self._normalize_purpose(purpose)
        metadata = self._jsonable_payload(metadata, "metadata")
        user_info = self._jsonable_payload(user_info, "user_info")

        with UnitOfWork(self.db_manager, "consume_token") as uow:
            token = uow.tokens.get_by_code(code, for_update=True)
            if token is None:
                raise not_found("RedeemableToken", code=code)

            check_consumable(token, restricted_contact, now=utc_now(), require_contact=True)

            record = uow.usage_records.record_usage(
                token_id=token.id,
                purpose=effective_purpose,
                metadata=metadata,
                user_info=user_info,
                user_id=None,
            )
            uow.tokens.increment_usage(token)

            result = ConsumptionResult(
                code=token.code,
                usage_count=token.usage_count,
                usage_limit=token.usage_limit,
                remaining_uses=token.usage_limit - token.usage_count,
                usage_id=record.id,
                used_at=ensure_utc(record.used_at),
                purpose=effective_purpose,
            )

        self.logger.info(
            "Token consumed",
            extra={
                "code": result.code,
                "usage_id": result.usage_id,
                "usage_count": result.usage_count,
                "remaining_uses": result.remaining_uses,
                "purpose": result.purpose,
            },
        )
        return result

    @operation()
    def set_token_active(self, code: str, is_active: bool) -> TokenRead:
        """
        Activate or deactivate a token. Idempotent; usage_count is untouched.

        Takes the same row lock as consumption so the two never lose updates.

        Raises:
            ValidationError: If is_active is not a boolean
            NotFoundError: If no token has this code
        """
        code = self._normalize_code(code)
        if not isinstance(is_active, bool):
            raise ValidationError(
                "is_active must be a boolean",
                field="is_active",
                error_code=ErrorCode.INVALID_FORMAT,
                value=str(is_active),
            )

        with UnitOfWork(self.db_manager, "set_token_active") as uow:
            token = uow.tokens.get_by_code(code, for_update=True)
            if token is None:
                raise not_found("RedeemableToken", code=code)

            if token.is_active != is_active:
                uow.tokens.set_active(token, is_active)

            found = uow.tokens.get_with_creator(code)
            result = self._to_read(*found)

        self.logger.info(
            "Token activation updated", extra={"code": code, "is_active": is_active}
        )
        return result

    @operation()
    def delete_token(self, code: str) -> DeletedToken:
        """
        Delete a token and its whole usage ledger in one transaction.

        Raises:
            NotFoundError: If no token has this code (nothing is changed)
        """
        code = self._normalize_code(code)
        with UnitOfWork(self.db_manager, "delete_token") as uow:
            token = uow.tokens.get_by_code(code, for_update=True)
            if token is None:
                raise not_found("RedeemableToken", code=code)

            deleted_records = uow.usage_records.delete_for_token(token.id)
            uow.tokens.delete(token)
            result = DeletedToken(
                code=token.code, name=token.name, deleted_usage_records=deleted_records
            )

        self.logger.info(
            "Token deleted",
            extra={"code": result.code, "deleted_usage_records": result.deleted_usage_records},
        )
        return result

    @operation()
    def get_token_usage(self, code: str) -> List[UsageRecordRead]:
        """
        Usage history of a token, newest first, with consuming user identity.

        Raises:
            NotFoundError: If no token has this code
        """
        code = self._normalize_code(code)
        with UnitOfWork(self.db_manager, "get_token_usage") as uow:
            token = uow.tokens.get_by_code(code)
            if token is None:
                raise not_found("RedeemableToken", code=code)
            return [
                self._usage_to_read(record, username, email)
                for record, username, email in uow.usage_records.list_for_token(token.id)
            ]

    @operation()
    def get_token_statistics(self) -> TokenStatistics:
        with UnitOfWork(self.db_manager, "get_token_statistics") as uow:
            counts = uow.tokens.statistics()
            return TokenStatistics(**counts, total_usage_records=uow.usage_records.count_all())

    @operation()
    def deactivate_expired_tokens(self) -> int:
        """Deactivate every active token whose expiry has passed. Returns the count."""
        with UnitOfWork(self.db_manager, "deactivate_expired_tokens") as uow:
            deactivated = uow.tokens.deactivate_expired()

        self.logger.info("Expired tokens deactivated", extra={"deactivated_count": deactivated})
        return deactivated
