"""
Core Data Models for Pocketbook

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Keep money as Decimal, scaled to cents

DESIGN DECISION: Extraction output (ReceiptDraft) and persisted data
(Transaction) are separate models. A draft is a SUGGESTION for the form;
only a validated TransactionInput ever reaches the ledger.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money for a transaction."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class RecurringInterval(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class AccountType(str, Enum):
    """Kind of financial account."""
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class User(BaseModel):
    """
    A user known to the store.

    identity_id is the opaque id handed to us by the identity provider.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    identity_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    email: Optional[str] = None


class Account(BaseModel):
    """
    A financial account.

    CRITICAL: balance is stored but derived. After every transaction
    create/update/delete it must equal the signed sum of the account's
    transactions. Only the ledger flows write it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.CURRENT
    balance: Decimal = Field(default=Decimal("0.00"), decimal_places=2)
    is_default: bool = False


class Category(BaseModel):
    """A transaction category, scoped to one transaction type."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


class Transaction(BaseModel):
    """
    A persisted transaction.

    Invariants:
    - recurring_interval is present iff is_recurring
    - next_recurring_date is present iff both are set, and is after date
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: date
    account_id: str
    category: str = Field(..., min_length=1)

    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    next_recurring_date: Optional[date] = None
    last_processed: Optional[date] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Transaction':
        """Validate the recurrence fields agree with each other."""
        if self.is_recurring != (self.recurring_interval is not None):
            raise ValueError(
                "Recurring interval must be set exactly when the transaction is recurring"
            )

        if self.next_recurring_date is not None:
            if not self.is_recurring:
                raise ValueError("Only recurring transactions have a next recurring date")
            if self.next_recurring_date <= self.date:
                raise ValueError("Next recurring date must be after the transaction date")
        elif self.is_recurring:
            raise ValueError("Recurring transactions need a next recurring date")

        return self


class TransactionInput(BaseModel):
    """
    What the transaction form submits.

    Mirrors the form fields one-to-one so that validation errors
    can be keyed by field name.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    account_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    date: date
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'TransactionInput':
        """A recurring transaction needs an interval; others never keep one."""
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring interval is required for recurring transactions")
        if not self.is_recurring:
            self.recurring_interval = None
        return self


# =============================================================================
# RECEIPT EXTRACTION MODELS
# =============================================================================

class Advisory(BaseModel):
    """
    A non-fatal notice shown to the user.

    Used when a field could not be auto-filled. It never blocks anything.
    """

    field: Optional[str] = Field(
        default=None,
        description="Form field the notice is about, if any"
    )
    message: str = Field(
        ...,
        min_length=1,
        description="Short, non-technical message"
    )


class ReceiptDraft(BaseModel):
    """
    Candidate transaction fields read from a receipt.

    CRITICAL: This is PROPOSED data, NOT verified.
    It is merged into the form once and then discarded; the user still
    reviews and submits the form.

    All fields are optional because the model might miss any of them.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    extraction_id: UUID = Field(
        default_factory=uuid4,
        description="Unique ID for this extraction attempt"
    )
    extracted_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When extraction was performed"
    )

    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    # dt.date: the field name shadows `date` inside the class body
    date: Optional[dt.date] = None
    description: Optional[str] = None
    category_name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True when the draft carries nothing the form could use."""
        return (
            self.amount is None
            and self.date is None
            and not self.description
            and not self.category_name
        )


class ScanResult(BaseModel):
    """A normalized draft plus the advisories raised while building it."""

    draft: ReceiptDraft
    warnings: list[Advisory] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        """Some field had to be dropped or defaulted."""
        return bool(self.warnings)
