from .token_schemas import (
    ConsumptionResult,
    DeletedToken,
    TokenCreate,
    TokenRead,
    TokenStatistics,
    UsageRecordRead,
    ValidationResult,
)

__all__ = [
    "ConsumptionResult",
    "DeletedToken",
    "TokenCreate",
    "TokenRead",
    "TokenStatistics",
    "UsageRecordRead",
    "ValidationResult",
]
