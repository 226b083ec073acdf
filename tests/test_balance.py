"""Tests for balance ledger arithmetic and recurrence dates."""

import pytest
from datetime import date
from decimal import Decimal

from pocketbook.ledger import (
    add_months,
    apply_to_balance,
    balance_delta,
    from_cents,
    net_delta,
    next_recurring_date,
    revert_from_balance,
    to_cents,
)
from pocketbook.models.finance import Account, RecurringInterval, TransactionType


EXPENSE = TransactionType.EXPENSE
INCOME = TransactionType.INCOME


class TestDeltas:

    def test_expense_is_negative(self):
        assert balance_delta(EXPENSE, Decimal("100")) == Decimal("-100.00")
        assert balance_delta(INCOME, Decimal("100")) == Decimal("100.00")

    def test_apply_then_revert_restores_balance(self):
        account = Account(user_id="u1", name="Current", balance=Decimal("500.00"))
        for txn_type in (EXPENSE, INCOME):
            applied = apply_to_balance(account, txn_type, Decimal("123.45"))
            assert revert_from_balance(applied, txn_type, Decimal("123.45")) == Decimal("500.00")

    def test_edit_expense_to_income(self):
        # Balance 500 already includes EXPENSE/100; the edit makes it INCOME/30
        balance = Decimal("500.00")
        balance += net_delta(EXPENSE, Decimal("100"), INCOME, Decimal("30"))
        assert balance == Decimal("630.00")

    def test_final_balance_is_signed_sum(self):
        entries = [
            (INCOME, Decimal("1000.00")),
            (EXPENSE, Decimal("250.10")),
            (EXPENSE, Decimal("0.01")),
            (INCOME, Decimal("33.33")),
        ]
        balance = Decimal("0.00")
        for txn_type, amount in entries:
            balance += balance_delta(txn_type, amount)
        assert balance == Decimal("783.22")

    def test_cents_conversion(self):
        assert to_cents(Decimal("12.34")) == 1234
        assert to_cents(Decimal("-0.01")) == -1
        assert from_cents(1234) == Decimal("12.34")
        assert from_cents(-50) == Decimal("-0.50")


class TestRecurrence:

    @pytest.mark.parametrize("start, interval, expected", [
        (date(2024, 1, 1), RecurringInterval.DAILY, date(2024, 1, 2)),
        (date(2024, 12, 31), RecurringInterval.DAILY, date(2025, 1, 1)),
        (date(2024, 1, 1), RecurringInterval.WEEKLY, date(2024, 1, 8)),
        (date(2024, 1, 15), RecurringInterval.MONTHLY, date(2024, 2, 15)),
        (date(2024, 1, 31), RecurringInterval.MONTHLY, date(2024, 2, 29)),
        (date(2023, 1, 31), RecurringInterval.MONTHLY, date(2023, 2, 28)),
        (date(2024, 12, 15), RecurringInterval.MONTHLY, date(2025, 1, 15)),
        (date(2024, 2, 29), RecurringInterval.YEARLY, date(2025, 2, 28)),
        (date(2024, 6, 1), RecurringInterval.YEARLY, date(2025, 6, 1)),
    ])
    def test_next_recurring_date(self, start, interval, expected):
        assert next_recurring_date(start, interval) == expected

    def test_next_date_always_after_start(self):
        start = date(2024, 1, 31)
        for interval in RecurringInterval:
            assert next_recurring_date(start, interval) > start

    def test_add_months_negative(self):
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
