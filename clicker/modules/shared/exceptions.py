"""
Domain exceptions for the upgrade engine.

Purpose
-------
Player-facing errors for business rule violations: malformed requests,
unknown upgrades, rate limiting, and purchase denials. Purchase flows report
these as result objects carrying the same `error_code`; the exceptions are
raised by read APIs and input validation where a result object would be
meaningless.

Design Notes
------------
- All domain exceptions inherit from `ClickerDomainException`.
- `ErrorSeverity` is shared with the infrastructure hierarchy.
- `PurchaseDeniedError` never carries the fraud signals that caused it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from clicker.core.exceptions import ErrorSeverity
from clicker.core.exceptions import get_error_severity as infrastructure_severity


class ClickerDomainException(Exception):
    """
    Base exception for all domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class NotFoundError(ClickerDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Upgrade", "Compensation")
        identifier: Optional identifier for the missing resource
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(ClickerDomainException):
    """
    Raised when caller input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class RateLimitError(ClickerDomainException):
    """
    Raised when a player exceeds an action rate limit.

    Args:
        action: Name of the rate-limited action
        retry_after: Seconds until the player can retry
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(self, action: str, retry_after: float) -> None:
        self.action = action
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {action}: retry after {retry_after:.1f}s",
            details={"action": action, "retry_after": retry_after},
            error_code="RATE_LIMITED",
        )


class PurchaseDeniedError(ClickerDomainException):
    """Hard denial of a purchase; the message is deliberately generic."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, message: str = "Purchase blocked due to suspicious activity") -> None:
        super().__init__(message, error_code="PURCHASE_DENIED")


class InvalidOperationError(ClickerDomainException):
    """
    Raised when an action violates game rules in the current state.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed
    """

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity of domain and infrastructure exceptions alike."""
    if isinstance(exc, ClickerDomainException):
        return exc.severity
    return infrastructure_severity(exc)
