"""
Shared domain-layer foundations: base service and repository patterns and
the domain exception hierarchy.
"""

from clicker.modules.shared.base_repository import BaseRepository
from clicker.modules.shared.base_service import BaseService
from clicker.modules.shared.exceptions import (
    ClickerDomainException,
    InvalidOperationError,
    NotFoundError,
    PurchaseDeniedError,
    RateLimitError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "BaseRepository",
    "ClickerDomainException",
    "NotFoundError",
    "ValidationError",
    "RateLimitError",
    "PurchaseDeniedError",
    "InvalidOperationError",
]
