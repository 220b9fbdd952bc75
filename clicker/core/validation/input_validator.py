"""
Input validation for caller-supplied values.

All methods are stateless, return the normalized value on success and raise
`ValidationError` on failure (never silently coerce bad input).
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, NoReturn, Optional, Sequence

from clicker.core.logging.logger import get_logger
from clicker.domain.models.big_number import to_big
from clicker.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    logger.debug(
        "Input validation failed",
        extra={"field_name": field_name, "raw_value": repr(value)[:200], "reason": message},
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """Centralized validation for API inputs."""

    # =========================================================================
    # IDENTIFIERS
    # =========================================================================

    @staticmethod
    def validate_player_id(value: Any, field_name: str = "player_id") -> uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        try:
            return uuid.UUID(str(value))
        except ValueError:
            _raise_validation_error(field_name, value, f"Must be a UUID, got '{value}'")

    # =========================================================================
    # NUMBERS
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        if value is None or isinstance(value, bool):
            _raise_validation_error(field_name, value, "Value is required")
        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(field_name, int_value, f"Must be at least {min_value}, got {int_value}")
        if max_value is not None and int_value > max_value:
            _raise_validation_error(field_name, int_value, f"Cannot exceed {max_value}, got {int_value}")
        return int_value

    @staticmethod
    def validate_positive_integer(value: Any, field_name: str, max_value: Optional[int] = None) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=1, max_value=max_value)

    @staticmethod
    def validate_amount(value: Any, field_name: str, allow_zero: bool = True) -> Decimal:
        """Finite, non-negative decimal amount (budgets, spend limits)."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        try:
            amount = to_big(value)
        except ValueError:
            _raise_validation_error(field_name, value, f"Must be a number, got '{value}'")

        if not amount.is_finite():
            _raise_validation_error(field_name, value, "Must be a finite number")
        if amount < 0 or (not allow_zero and amount == 0):
            bound = "zero or greater" if allow_zero else "greater than zero"
            _raise_validation_error(field_name, value, f"Must be {bound}")
        return amount

    # =========================================================================
    # CHOICES
    # =========================================================================

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """Case-insensitive choice check; returns the canonical spelling."""
        lookup = {choice.lower(): choice for choice in valid_choices}
        str_value = str(value).strip().lower()
        if str_value not in lookup:
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{value}'. Must be one of: {', '.join(sorted(valid_choices))}",
            )
        return lookup[str_value]
