"""
Validation primitives:

- `InputValidator` for caller-supplied values
- `TransactionValidator` for audit payload safety
"""

from clicker.core.validation.input_validator import InputValidator
from clicker.core.validation.transaction_validator import TransactionValidator

__all__ = ["InputValidator", "TransactionValidator"]
