"""Transaction validation package."""

from pocketbook.validation.validator import (
    TransactionValidationError,
    TransactionValidator,
)

__all__ = ["TransactionValidationError", "TransactionValidator"]
