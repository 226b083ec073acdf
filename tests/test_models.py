"""
Tests for Pocketbook models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with a temporary SQLite file)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from pocketbook.models.finance import (
    Account,
    Advisory,
    ReceiptDraft,
    RecurringInterval,
    ScanResult,
    Transaction,
    TransactionInput,
    TransactionType,
)
from pocketbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModels:
    """Tests for ledger Pydantic models."""

    def test_account_defaults(self):
        account = Account(user_id="u1", name="  Current  ")
        assert account.name == "Current"
        assert account.balance == Decimal("0.00")
        assert account.is_default is False

    def test_transaction_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            Transaction(
                user_id="u1",
                type=TransactionType.EXPENSE,
                amount=Decimal("0"),
                date=date(2024, 1, 1),
                account_id="a1",
                category="food",
            )

    def test_transaction_rejects_sub_cent_amount(self):
        with pytest.raises(ValidationError):
            Transaction(
                user_id="u1",
                type=TransactionType.EXPENSE,
                amount=Decimal("1.001"),
                date=date(2024, 1, 1),
                account_id="a1",
                category="food",
            )

    def test_recurring_transaction_needs_interval_and_next_date(self):
        with pytest.raises(ValidationError):
            Transaction(
                user_id="u1",
                type=TransactionType.EXPENSE,
                amount=Decimal("10"),
                date=date(2024, 1, 1),
                account_id="a1",
                category="food",
                is_recurring=True,
            )

    def test_next_recurring_date_must_follow_date(self):
        with pytest.raises(ValidationError):
            Transaction(
                user_id="u1",
                type=TransactionType.EXPENSE,
                amount=Decimal("10"),
                date=date(2024, 1, 31),
                account_id="a1",
                category="food",
                is_recurring=True,
                recurring_interval=RecurringInterval.MONTHLY,
                next_recurring_date=date(2024, 1, 31),
            )

    def test_valid_recurring_transaction(self):
        txn = Transaction(
            user_id="u1",
            type=TransactionType.INCOME,
            amount=Decimal("2500.00"),
            date=date(2024, 1, 31),
            account_id="a1",
            category="salary",
            is_recurring=True,
            recurring_interval=RecurringInterval.MONTHLY,
            next_recurring_date=date(2024, 2, 29),
        )
        assert txn.next_recurring_date == date(2024, 2, 29)

    def test_input_requires_interval_when_recurring(self):
        with pytest.raises(ValidationError) as exc:
            TransactionInput(
                type=TransactionType.EXPENSE,
                amount="10",
                account_id="a1",
                category="food",
                date=date(2024, 1, 1),
                is_recurring=True,
            )
        assert "Recurring interval is required" in str(exc.value)

    def test_input_drops_interval_when_not_recurring(self):
        data = TransactionInput(
            type=TransactionType.EXPENSE,
            amount="10.50",
            account_id="a1",
            category="food",
            date=date(2024, 1, 1),
            is_recurring=False,
            recurring_interval=RecurringInterval.WEEKLY,
        )
        assert data.recurring_interval is None
        assert data.amount == Decimal("10.50")


class TestReceiptModels:
    """Tests for extraction result models."""

    def test_empty_draft(self):
        assert ReceiptDraft().is_empty
        assert not ReceiptDraft(category_name="Food").is_empty

    def test_draft_accepts_a_date(self):
        draft = ReceiptDraft(date=date(2024, 3, 1))
        assert draft.date == date(2024, 3, 1)
        assert not draft.is_empty

    def test_draft_is_frozen(self):
        draft = ReceiptDraft(amount=Decimal("1.00"))
        with pytest.raises(ValidationError):
            draft.amount = Decimal("2.00")

    def test_scan_result_partial(self):
        result = ScanResult(
            draft=ReceiptDraft(description="Shop"),
            warnings=[Advisory(field="amount", message="missing")],
        )
        assert result.is_partial
        assert not ScanResult(draft=ReceiptDraft(description="Shop")).is_partial


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created",
        )
        assert event.severity == AuditSeverity.INFO
        assert isinstance(event.timestamp, datetime)

    def test_audit_event_to_log_dict(self):
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.SCAN_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="bad response",
        )
        log = event.to_log_dict()
        assert log["event_type"] == "scan_failed"
        assert log["severity"] == "warning"
        assert log["correlation_id"] == str(correlation_id)

    def test_audit_event_row_round_trip(self):
        event = AuditEventBuilder.transaction_created(
            transaction_id="t1",
            account_id="a1",
            amount="100.00",
            balance_delta="-100.00",
            correlation_id=uuid4(),
        )
        row = event.to_row()
        assert len(row) == 11
        restored = AuditEvent.from_row(row)
        assert restored.event_id == event.event_id
        assert restored.details["balance_delta"] == "-100.00"
        assert restored.is_user_action is True

    def test_builder_scan_completed_partial(self):
        event = AuditEventBuilder.scan_completed(
            extraction_id=uuid4(),
            warnings=["No date found"],
            correlation_id=uuid4(),
        )
        assert event.details["partial"] is True
        assert "1 advisories" in event.description

    def test_builder_rate_limited(self):
        event = AuditEventBuilder.rate_limited(
            user_id="idp-1",
            reason="rate_limit",
            remaining=0,
            reset_in_seconds=360,
            correlation_id=uuid4(),
        )
        assert event.event_type == AuditEventType.RATE_LIMITED
        assert event.severity == AuditSeverity.WARNING
        assert event.details["reset_in_seconds"] == 360
