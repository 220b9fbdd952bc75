"""
Audit payload validation.

Enforces, before any audit event leaves the process:
- a 10KB size limit on the details payload
- required fields for known transaction types
- PII scrubbing (emails, IPs, tokens, secrets)

Monetary values are expected as strings (decimal text) so that arbitrary
magnitudes survive JSON serialization unchanged.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Set

from clicker.core.logging.logger import get_logger
from clicker.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


def _raise_validation_error(field_name: str, value: Any, message: str) -> None:
    logger.warning(
        "Audit payload validation failed",
        extra={"field_name": field_name, "raw_value": repr(value)[:200], "reason": message},
    )
    raise ValidationError(field_name, message)


class TransactionValidator:
    """Stateless validator for audit transaction payloads."""

    MAX_DETAILS_SIZE_BYTES: int = 10 * 1024

    TRANSACTION_SCHEMAS: Dict[str, Set[str]] = {
        "upgrade_purchase": {
            "upgrade_id", "levels", "old_level", "new_level", "cost",
            "original_score", "final_score", "risk_score", "flagged",
        },
        "upgrade_purchase_failed": {
            "upgrade_id", "levels", "cost", "stage", "reason",
        },
        "upgrade_compensation": {
            "upgrade_id", "amount", "reason", "outcome", "levels", "compensation_recorded",
        },
        "upgrade_compensation_resolved": {"upgrade_id", "amount", "note"},
        "upgrade_reset": {"records_deleted", "total_levels_removed", "reason"},
    }

    REQUIRED_FIELDS: Dict[str, Set[str]] = {
        "upgrade_purchase": {"upgrade_id", "levels", "new_level", "cost"},
        "upgrade_purchase_failed": {"upgrade_id", "stage", "reason"},
        "upgrade_compensation": {"upgrade_id", "amount", "reason"},
        "upgrade_compensation_resolved": {"amount", "note"},
        "upgrade_reset": {"records_deleted"},
    }

    PII_FIELDS: Set[str] = {
        "email",
        "ip_address",
        "password",
        "token",
        "api_key",
        "secret",
    }

    @staticmethod
    def validate_transaction(
        transaction_type: str,
        details: Dict[str, Any],
        allow_unknown_types: bool = True,
    ) -> Dict[str, Any]:
        """
        Validate and sanitize audit details.

        Raises:
            ValidationError: on missing type, oversize payload, missing
                required fields, or unknown type when not allowed
        """
        if not transaction_type or not isinstance(transaction_type, str):
            _raise_validation_error("transaction_type", transaction_type, "Transaction type is required")

        if len(transaction_type) > 100:
            _raise_validation_error(
                "transaction_type", transaction_type, "Transaction type too long (max 100 characters)"
            )

        if not isinstance(details, dict):
            _raise_validation_error("details", details, "Transaction details must be a dictionary")

        size_bytes = len(json.dumps(details, default=str).encode("utf-8"))
        if size_bytes > TransactionValidator.MAX_DETAILS_SIZE_BYTES:
            _raise_validation_error(
                "details",
                f"{size_bytes / 1024:.1f}KB",
                f"Transaction details too large ({size_bytes / 1024:.1f}KB exceeds 10KB limit)",
            )

        sanitized = TransactionValidator._scrub_pii(details)

        schema = TransactionValidator.TRANSACTION_SCHEMAS.get(transaction_type)
        if schema is not None:
            required = TransactionValidator.REQUIRED_FIELDS.get(transaction_type, set())
            missing = required - sanitized.keys()
            if missing:
                _raise_validation_error(
                    "details",
                    sorted(sanitized),
                    f"Missing required fields for {transaction_type}: {', '.join(sorted(missing))}",
                )

            unexpected = set(sanitized) - schema
            if unexpected:
                logger.warning(
                    "Transaction details contain unexpected fields",
                    extra={"transaction_type": transaction_type, "extra_fields": sorted(unexpected)},
                )
        elif not allow_unknown_types:
            _raise_validation_error(
                "transaction_type", transaction_type, f"Unknown transaction type: {transaction_type}"
            )

        return sanitized

    @staticmethod
    def _scrub_pii(details: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact PII-looking keys in dicts and lists of dicts."""
        sanitized: Dict[str, Any] = {}
        for key, value in details.items():
            if any(pii in key.lower() for pii in TransactionValidator.PII_FIELDS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = TransactionValidator._scrub_pii(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    TransactionValidator._scrub_pii(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value
        return sanitized

    @staticmethod
    def validate_context(context: Optional[str]) -> str:
        if context is None:
            return "unknown"
        if not isinstance(context, str):
            _raise_validation_error("context", context, "Context must be a string")
        if len(context) > 500:
            _raise_validation_error("context", context, "Context too long (max 500 characters)")
        return context

    @staticmethod
    def get_supported_transaction_types() -> List[str]:
        return sorted(TransactionValidator.TRANSACTION_SCHEMAS.keys())
