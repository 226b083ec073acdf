"""
Balance Ledger arithmetic.

Pure functions; the flows in pocketbook.orchestrator apply their results
inside a unit of work.

INVARIANT: an account's balance equals the signed sum of its
transactions, where EXPENSE counts negative and INCOME positive.
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from pocketbook.models.finance import Account, RecurringInterval, TransactionType


CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Decimal scaled to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(to_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def balance_delta(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Signed effect of one transaction on its account."""
    amount = to_money(amount)
    return -amount if transaction_type == TransactionType.EXPENSE else amount


def apply_to_balance(
    account: Account,
    transaction_type: TransactionType,
    amount: Decimal,
) -> Decimal:
    """New balance after recording a transaction on the account."""
    return to_money(account.balance) + balance_delta(transaction_type, amount)


def revert_from_balance(
    balance: Decimal,
    transaction_type: TransactionType,
    amount: Decimal,
) -> Decimal:
    """Balance after removing a transaction's effect."""
    return to_money(balance) - balance_delta(transaction_type, amount)


def net_delta(
    old_type: TransactionType,
    old_amount: Decimal,
    new_type: TransactionType,
    new_amount: Decimal,
) -> Decimal:
    """
    Balance change when a transaction is edited in place.

    Example: EXPENSE/100 edited to INCOME/30 gives +30 - (-100) = +130.
    """
    return balance_delta(new_type, new_amount) - balance_delta(old_type, old_amount)


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)


def next_recurring_date(start: date, interval: RecurringInterval) -> date:
    """
    One interval after start.

    Months and years clamp to the last day of the target month:
    Jan 31 + 1 month is Feb 28 (or 29), Feb 29 + 1 year is Feb 28.
    """
    interval = RecurringInterval(interval)
    if interval == RecurringInterval.DAILY:
        return start + timedelta(days=1)
    if interval == RecurringInterval.WEEKLY:
        return start + timedelta(weeks=1)
    if interval == RecurringInterval.MONTHLY:
        return add_months(start, 1)
    return add_months(start, 12)
