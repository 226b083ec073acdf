"""
Data Models Package

This package contains all Pydantic models used in Pocketbook.
All data flowing through the system must conform to these schemas.
"""

from pocketbook.models.finance import (
    Account,
    AccountType,
    Advisory,
    Category,
    ReceiptDraft,
    RecurringInterval,
    ScanResult,
    Transaction,
    TransactionInput,
    TransactionType,
    User,
)
from pocketbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountType",
    "Advisory",
    "Category",
    "ReceiptDraft",
    "RecurringInterval",
    "ScanResult",
    "Transaction",
    "TransactionInput",
    "TransactionType",
    "User",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
