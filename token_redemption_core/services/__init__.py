"""Service layer for business logic."""

from .token_service import TokenService, check_consumable

__all__ = [
    "TokenService",
    "check_consumable",
]
