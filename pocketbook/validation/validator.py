"""
Two-Stage Transaction Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Format validation
- This catches empty and malformed form fields

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Implausibly old dates
- Category existence and type agreement
- This catches values that parse but make no sense

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
Every problem is reported against the form field it belongs to.
"""

from datetime import date
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from pocketbook.errors import PocketbookError
from pocketbook.models.finance import Category, TransactionInput


MIN_TRANSACTION_DATE = date(1900, 1, 1)

# Friendly messages per field for the most common schema failures
FIELD_MESSAGES = {
    "type": "Type is required",
    "amount": "Amount must be a positive number",
    "account_id": "Account is required",
    "category": "Category is required",
    "date": "Date is required",
    "description": "Description is too long",
    "recurring_interval": "Recurring interval is required for recurring transactions",
}


class TransactionValidationError(PocketbookError):
    """The submitted form has field errors."""

    user_message = "Please fix the highlighted fields."

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = field_errors
        summary = ", ".join(f"{k}: {v}" for k, v in field_errors.items())
        super().__init__(f"Invalid transaction: {summary}")


class TransactionValidator:
    """
    Validates a submitted transaction form through a two-stage pipeline.

    Stage 1: Schema validation (TransactionInput parsing)
    Stage 2: Semantic validation (dates, category/type agreement)
    """

    def __init__(self, today: Optional[date] = None):
        """
        Initialize validator.

        Args:
            today: Fixed "today" for the future-date check.
                   Defaults to the current date at validation time.
        """
        self._today = today

    def _validate_schema(self, payload: dict[str, Any]) -> tuple[Optional[TransactionInput], dict[str, str]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_input_or_None, field_errors)
        """
        try:
            return TransactionInput.model_validate(payload), {}
        except ValidationError as e:
            errors: dict[str, str] = {}
            for error in e.errors():
                loc = error.get("loc") or ()
                if loc:
                    field = str(loc[0])
                elif "interval" in error.get("msg", "").lower():
                    # Raised by the model-level recurrence check
                    field = "recurring_interval"
                else:
                    field = "form"
                errors.setdefault(field, FIELD_MESSAGES.get(field, error.get("msg", "Invalid value")))
            return None, errors

    def _validate_semantic(
        self,
        data: TransactionInput,
        categories: Optional[Sequence[Category]],
    ) -> dict[str, str]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Date is not in the future
        - Date is not before 1900-01-01
        - Category exists and matches the transaction type (when categories are known)
        """
        errors: dict[str, str] = {}
        today = self._today or date.today()

        if data.date > today:
            errors["date"] = "Date cannot be in the future"
        elif data.date < MIN_TRANSACTION_DATE:
            errors["date"] = "Date cannot be before 1900"

        if categories is not None:
            match = next((c for c in categories if c.id == data.category), None)
            if match is None:
                errors["category"] = "Category not found"
            elif match.type != data.type:
                errors["category"] = (
                    f"Category does not belong to {data.type.value.lower()} transactions"
                )

        return errors

    def validate(
        self,
        payload: dict[str, Any],
        categories: Optional[Sequence[Category]] = None,
    ) -> TransactionInput:
        """
        Run the full pipeline.

        Args:
            payload: Form values (see FormState.to_payload)
            categories: Known categories; the category check is skipped if None

        Returns:
            The parsed TransactionInput

        Raises:
            TransactionValidationError: With errors keyed by form field
        """
        data, errors = self._validate_schema(payload)
        if data is None:
            raise TransactionValidationError(errors)

        errors = self._validate_semantic(data, categories)
        if errors:
            raise TransactionValidationError(errors)

        return data
