"""Tests for the two-stage transaction validator."""

import pytest
from datetime import date
from decimal import Decimal

from pocketbook.models.finance import RecurringInterval, TransactionType
from pocketbook.validation import TransactionValidationError, TransactionValidator


TODAY = date(2024, 6, 15)


def payload(**overrides):
    values = {
        "type": TransactionType.EXPENSE,
        "amount": "12.50",
        "description": None,
        "account_id": "a1",
        "category": "c-food-expense",
        "date": TODAY,
        "is_recurring": False,
        "recurring_interval": None,
    }
    values.update(overrides)
    return values


@pytest.fixture
def validator():
    return TransactionValidator(today=TODAY)


class TestSchemaStage:

    def test_valid(self, validator, categories):
        data = validator.validate(payload(), categories)
        assert data.amount == Decimal("12.50")

    @pytest.mark.parametrize("field, value", [
        ("amount", None),
        ("amount", "-1"),
        ("amount", "abc"),
        ("account_id", ""),
        ("category", ""),
        ("date", None),
    ])
    def test_field_errors(self, validator, field, value):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(**{field: value}))
        assert field in exc.value.field_errors

    def test_recurring_without_interval(self, validator):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(is_recurring=True))
        assert exc.value.field_errors == {
            "recurring_interval": "Recurring interval is required for recurring transactions",
        }

    def test_recurring_with_interval(self, validator):
        data = validator.validate(
            payload(is_recurring=True, recurring_interval=RecurringInterval.MONTHLY)
        )
        assert data.recurring_interval == RecurringInterval.MONTHLY


class TestSemanticStage:

    def test_future_date(self, validator):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(date=date(2024, 6, 16)))
        assert exc.value.field_errors["date"] == "Date cannot be in the future"

    def test_before_1900(self, validator):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(date=date(1899, 12, 31)))
        assert "date" in exc.value.field_errors

    def test_unknown_category(self, validator, categories):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(category="nope"), categories)
        assert exc.value.field_errors["category"] == "Category not found"

    def test_category_of_other_type(self, validator, categories):
        with pytest.raises(TransactionValidationError) as exc:
            validator.validate(payload(category="c-salary"), categories)
        assert "category" in exc.value.field_errors

    def test_category_check_skipped_without_categories(self, validator):
        assert validator.validate(payload(category="anything")).category == "anything"
