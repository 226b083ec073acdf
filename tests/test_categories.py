"""Tests for the category resolver."""

import pytest

from pocketbook.models.finance import TransactionType
from pocketbook.reconciliation import (
    DEFAULT_CATEGORIES,
    categories_for_type,
    resolve_category,
)


class TestResolveCategory:

    def test_first_match_of_requested_type(self, categories):
        assert resolve_category("Food", categories, TransactionType.EXPENSE) == "c-food-expense"
        assert resolve_category("Food", categories, TransactionType.INCOME) == "c-food-income"

    @pytest.mark.parametrize("name", ["food", "FOOD", "  Food  "])
    def test_case_and_whitespace_insensitive(self, categories, name):
        assert resolve_category(name, categories, TransactionType.EXPENSE) == "c-food-expense"

    @pytest.mark.parametrize("name", ["Foo", "Foods", "Fo od", "", "   ", None])
    def test_unresolved(self, categories, name):
        assert resolve_category(name, categories, TransactionType.EXPENSE) is None

    def test_other_type_not_matched(self, categories):
        assert resolve_category("Salary", categories, TransactionType.EXPENSE) is None

    def test_no_candidates(self):
        assert resolve_category("Food", [], TransactionType.EXPENSE) is None


class TestDefaultCategories:

    def test_ids_are_unique(self):
        ids = [c.id for c in DEFAULT_CATEGORIES]
        assert len(ids) == len(set(ids))

    def test_both_types_seeded(self):
        assert categories_for_type(DEFAULT_CATEGORIES, TransactionType.INCOME)
        assert categories_for_type(DEFAULT_CATEGORIES, TransactionType.EXPENSE)

    def test_typical_receipt_suggestions_resolve(self):
        for name in ("Groceries", "Food", "Shopping"):
            assert resolve_category(name, DEFAULT_CATEGORIES, TransactionType.EXPENSE)
