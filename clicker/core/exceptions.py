"""
Infrastructure exceptions for the Clicker upgrade engine.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
database failures, configuration errors, the remote game session service
(GameCore) being unreachable, and data invariant violations that require
engineering attention.

Design Notes
------------
- All infrastructure exceptions inherit from `ClickerInfrastructureException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and a stable `error_code`.
- GameCore failures are never retried inside the purchase pipeline even when
  flagged transient: the remote deduction is not idempotent.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., rate limits)
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # Money-at-risk failures requiring immediate action


class ClickerInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation is safe to retry
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
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
        """Convert exception to dictionary for logging/serialization."""
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


class ConfigurationError(ClickerInfrastructureException):
    """Raised when a configuration key or data file is invalid or missing."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class DatabaseError(ClickerInfrastructureException):
    """
    Raised when local database operations fail.

    Args:
        operation: Description of the database operation that failed
        original_error: The underlying database exception
    """

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="DATABASE_ERROR",
        )


class GameCoreError(ClickerInfrastructureException):
    """
    Base error for calls to the remote game session service.

    Args:
        operation: Remote operation name (e.g. "deduct_score")
        message: Description of the failure
        status: HTTP status, when a response was received
    """

    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        message: str,
        status: Optional[int] = None,
        error_code: str = "GAME_CORE_ERROR",
    ) -> None:
        self.operation = operation
        self.status = status
        super().__init__(
            f"GameCore {operation} failed: {message}",
            details={"operation": operation, "status": status},
            error_code=error_code,
        )


class GameCoreUnavailableError(GameCoreError):
    """Connection refused, DNS failure, 5xx, or malformed response."""

    def __init__(self, operation: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(operation, message, status, error_code="GAME_CORE_UNAVAILABLE")


class GameCoreTimeoutError(GameCoreError):
    """
    A remote call exceeded its deadline.

    The remote side effect may or may not have happened; callers treat the
    outcome as unknown.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            operation,
            f"timed out after {timeout_seconds:.1f}s",
            error_code="GAME_CORE_TIMEOUT",
        )


class InvariantViolationError(ClickerInfrastructureException):
    """
    Raised or logged when stored or remote data breaks a hard invariant,
    such as a negative score or a duplicate ledger row.

    Args:
        invariant: Short name of the broken invariant
        message: Description of what was observed
        context: Identifiers needed to investigate
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR

    def __init__(
        self,
        invariant: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.invariant = invariant
        super().__init__(
            f"Invariant '{invariant}' violated: {message}",
            details={"invariant": invariant, **(context or {})},
            error_code="INVARIANT_VIOLATION",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """True when the exception marks a transient infrastructure failure."""
    if isinstance(exc, ClickerInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, ClickerInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR
