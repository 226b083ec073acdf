"""Tests for the extraction normalizer."""

import json
import pytest
from datetime import date
from decimal import Decimal

from pocketbook.services.extraction import MalformedExtractionError, normalize_extraction


TODAY = date(2024, 6, 15)


def normalize(payload):
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    return normalize_extraction(raw, today=TODAY)


class TestTopLevel:

    @pytest.mark.parametrize("raw", ["not json", "", "[1, 2]", "42", '"text"', "null"])
    def test_non_object_is_malformed(self, raw):
        with pytest.raises(MalformedExtractionError) as exc:
            normalize_extraction(raw, today=TODAY)
        assert exc.value.user_message.startswith("Invalid response from AI")

    def test_empty_object_never_fails(self):
        result = normalize({})
        assert result.draft.amount is None
        assert result.draft.date == TODAY
        assert result.draft.description == "Receipt Transaction"
        assert result.draft.category_name == ""
        assert result.is_partial

    def test_full_receipt(self):
        result = normalize({
            "amount": 42.5,
            "description": "  Corner Shop ",
            "date": "2024-06-01",
            "category": " Groceries ",
        })
        assert result.draft.amount == Decimal("42.50")
        assert result.draft.date == date(2024, 6, 1)
        assert result.draft.description == "Corner Shop"
        assert result.draft.category_name == "Groceries"
        assert result.warnings == []


class TestAmount:

    @pytest.mark.parametrize("value, expected", [
        ("12.50", Decimal("12.50")),
        (12, Decimal("12.00")),
        (0.005, Decimal("0.01")),
        ("  7.1 ", Decimal("7.10")),
    ])
    def test_accepted(self, value, expected):
        assert normalize({"amount": value}).draft.amount == expected

    @pytest.mark.parametrize("value", [0, -5, "abc", True, None, "NaN", "Infinity", [], {}])
    def test_dropped_with_advisory(self, value):
        result = normalize({"amount": value})
        assert result.draft.amount is None
        assert any(w.field == "amount" for w in result.warnings)


class TestDate:

    @pytest.mark.parametrize("value", ["not-a-date", "06/01/2024", "", 20240601, None])
    def test_unmatched_uses_today(self, value):
        result = normalize({"date": value})
        assert result.draft.date == TODAY
        assert any(w.field == "date" for w in result.warnings)

    def test_impossible_calendar_day_is_left_absent(self):
        result = normalize({"date": "2024-02-30"})
        assert result.draft.date is None
        assert any("not a real date" in w.message for w in result.warnings)


class TestDescriptionAndCategory:

    @pytest.mark.parametrize("value", ["", "   ", None, 12])
    def test_placeholder_description(self, value):
        assert normalize({"description": value}).draft.description == "Receipt Transaction"

    def test_custom_placeholder(self):
        result = normalize_extraction("{}", today=TODAY, placeholder_description="Scanned")
        assert result.draft.description == "Scanned"

    @pytest.mark.parametrize("value", [None, 5, ["Food"]])
    def test_non_string_category_is_empty(self, value):
        assert normalize({"category": value}).draft.category_name == ""
