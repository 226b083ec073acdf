"""
Extraction Normalizer

Turns the model's raw text into a ReceiptDraft we can hand to the form.

DESIGN DECISION: Only the top-level parse can fail.
A receipt with an unreadable amount still has a useful date,
merchant and category, so field problems degrade to defaults plus an
advisory instead of throwing the whole scan away.

Field rules:
- amount: finite number > 0, otherwise dropped
- date: YYYY-MM-DD, otherwise today
- description: non-blank, otherwise the placeholder
- category: free text, resolved later against the user's categories
"""

import json
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from pocketbook.config import get_settings
from pocketbook.errors import PocketbookError
from pocketbook.models.finance import Advisory, ReceiptDraft, ScanResult


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CENT = Decimal("0.01")


class MalformedExtractionError(PocketbookError):
    """The model's answer is not a JSON object."""

    user_message = "Invalid response from AI. Please try again or enter manually."


def _coerce_amount(value: Any) -> Optional[Decimal]:
    """Coerce a raw amount to a positive Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return None
        # quantize raises for values beyond the context precision
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None
    if amount <= 0:
        return None
    return amount


def normalize_extraction(
    raw_text: str,
    today: Optional[date] = None,
    placeholder_description: Optional[str] = None,
) -> ScanResult:
    """
    Validate and coerce the raw extraction into a ReceiptDraft.

    Args:
        raw_text: JSON text from the extraction client
        today: The caller's local calendar date (defaults to date.today())
        placeholder_description: Used when no description is readable

    Returns:
        ScanResult with a complete draft and any advisories

    Raises:
        MalformedExtractionError: If raw_text is not a JSON object
    """
    today = today or date.today()
    if placeholder_description is None:
        placeholder_description = get_settings().app.receipt_placeholder_description

    try:
        data = json.loads(raw_text)
    except (TypeError, ValueError) as e:
        raise MalformedExtractionError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedExtractionError(
            f"Response is a JSON {type(data).__name__}, expected an object"
        )

    warnings = []

    # Amount
    amount = _coerce_amount(data.get("amount"))
    if amount is None:
        warnings.append(Advisory(
            field="amount",
            message="Could not extract amount from receipt. Please enter it manually.",
        ))

    # Date
    receipt_date: Optional[date] = today
    raw_date = data.get("date")
    if isinstance(raw_date, str) and DATE_PATTERN.match(raw_date.strip()):
        try:
            receipt_date = datetime.strptime(raw_date.strip(), "%Y-%m-%d").date()
        except ValueError:
            receipt_date = None
            warnings.append(Advisory(
                field="date",
                message=f"Receipt date {raw_date!r} is not a real date. Please check the date.",
            ))
    else:
        warnings.append(Advisory(
            field="date",
            message="No date found on the receipt, using today's date.",
        ))

    # Description
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = placeholder_description
    else:
        description = description.strip()

    # Category
    category_name = data.get("category")
    if not isinstance(category_name, str):
        category_name = ""

    draft = ReceiptDraft(
        amount=amount,
        date=receipt_date,
        description=description,
        category_name=category_name.strip(),
    )

    return ScanResult(draft=draft, warnings=warnings)
