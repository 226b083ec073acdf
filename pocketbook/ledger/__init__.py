"""Balance ledger package."""

from pocketbook.ledger.balance import (
    add_months,
    apply_to_balance,
    balance_delta,
    from_cents,
    net_delta,
    next_recurring_date,
    revert_from_balance,
    to_cents,
    to_money,
)

__all__ = [
    "add_months",
    "apply_to_balance",
    "balance_delta",
    "from_cents",
    "net_delta",
    "next_recurring_date",
    "revert_from_balance",
    "to_cents",
    "to_money",
]
