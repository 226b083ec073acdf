"""
Category Resolver

Matches the model's free-text category suggestion against the user's
categories for a given transaction type.

DESIGN DECISION: Exact, case-insensitive matching only.
A wrong category on money data is worse than asking the user to pick
one, so "Grocery" does NOT match "Groceries".
"""

from typing import Iterable, Optional

from pocketbook.models.finance import Category, TransactionType


# Seeded into the store on first run.
DEFAULT_CATEGORIES = [
    # Income
    Category(id="salary", name="Salary", type=TransactionType.INCOME),
    Category(id="freelance", name="Freelance", type=TransactionType.INCOME),
    Category(id="investments", name="Investments", type=TransactionType.INCOME),
    Category(id="business", name="Business", type=TransactionType.INCOME),
    Category(id="rental", name="Rental", type=TransactionType.INCOME),
    Category(id="other-income", name="Other Income", type=TransactionType.INCOME),
    # Expense
    Category(id="housing", name="Housing", type=TransactionType.EXPENSE),
    Category(id="transportation", name="Transportation", type=TransactionType.EXPENSE),
    Category(id="groceries", name="Groceries", type=TransactionType.EXPENSE),
    Category(id="utilities", name="Utilities", type=TransactionType.EXPENSE),
    Category(id="entertainment", name="Entertainment", type=TransactionType.EXPENSE),
    Category(id="food", name="Food", type=TransactionType.EXPENSE),
    Category(id="shopping", name="Shopping", type=TransactionType.EXPENSE),
    Category(id="healthcare", name="Healthcare", type=TransactionType.EXPENSE),
    Category(id="education", name="Education", type=TransactionType.EXPENSE),
    Category(id="personal", name="Personal Care", type=TransactionType.EXPENSE),
    Category(id="travel", name="Travel", type=TransactionType.EXPENSE),
    Category(id="insurance", name="Insurance", type=TransactionType.EXPENSE),
    Category(id="gifts", name="Gifts & Donations", type=TransactionType.EXPENSE),
    Category(id="bills", name="Bills & Fees", type=TransactionType.EXPENSE),
    Category(id="other-expense", name="Other Expenses", type=TransactionType.EXPENSE),
]


def categories_for_type(
    candidates: Iterable[Category],
    transaction_type: TransactionType,
) -> list[Category]:
    """Categories the form may offer for this transaction type."""
    return [c for c in candidates if c.type == transaction_type]


def resolve_category(
    category_name: Optional[str],
    candidates: Iterable[Category],
    transaction_type: TransactionType,
) -> Optional[str]:
    """
    Resolve a suggested category name to a category id.

    Returns:
        The id of the first candidate of this type whose name matches,
        or None when the suggestion is empty or nothing matches.
        The caller must then clear the category field, never keep an
        old id.
    """
    wanted = (category_name or "").strip().casefold()
    if not wanted:
        return None

    for category in categories_for_type(candidates, transaction_type):
        if category.name.casefold() == wanted:
            return category.id

    return None
