"""
Audit Models for Pocketbook

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when a scan goes wrong
3. Ability to reconstruct how an account reached its balance

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the scan and ledger flows has its own event type.
    """
    # Receipt scanning
    SCAN_STARTED = "scan_started"
    SCAN_COMPLETED = "scan_completed"
    SCAN_REJECTED = "scan_rejected"
    SCAN_FAILED = "scan_failed"

    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    RECURRING_PROCESSED = "recurring_processed"

    # Access control
    RATE_LIMITED = "rate_limited"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'receipt', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one scan and the save that followed)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit_events table.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            self.entity_id,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_message,
            int(self.is_user_action),
        )

    @classmethod
    def from_row(cls, row) -> "AuditEvent":
        """Inverse of to_row."""
        return cls(
            event_id=UUID(row[0]),
            timestamp=datetime.fromisoformat(row[1]),
            event_type=AuditEventType(row[2]),
            severity=AuditSeverity(row[3]),
            entity_type=row[4],
            entity_id=row[5],
            correlation_id=UUID(row[6]) if row[6] else None,
            description=row[7],
            details=json.loads(row[8]) if row[8] else {},
            error_message=row[9],
            is_user_action=bool(row[10]),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.scan_started(identity_id, mime_type, size, correlation_id)
        event = AuditEventBuilder.transaction_created(txn_id, ..., correlation_id)
    """

    @staticmethod
    def scan_started(
        user_id: str,
        mime_type: str,
        file_size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCAN_STARTED,
            entity_type="receipt",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Receipt scan requested",
            details={
                "mime_type": mime_type,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def scan_completed(
        extraction_id: UUID,
        warnings: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        partial = bool(warnings)
        return AuditEvent(
            event_type=AuditEventType.SCAN_COMPLETED,
            entity_type="receipt",
            entity_id=str(extraction_id),
            correlation_id=correlation_id,
            description=(
                f"Receipt scanned with {len(warnings)} advisories"
                if partial else "Receipt scanned"
            ),
            details={
                "partial": partial,
                "warnings": warnings,
            },
        )

    @staticmethod
    def scan_rejected(
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCAN_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt rejected before scanning",
            error_message=reason,
        )

    @staticmethod
    def scan_failed(
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCAN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt response could not be understood",
            error_message=reason,
        )

    @staticmethod
    def transaction_created(
        transaction_id: str,
        account_id: str,
        amount: str,
        balance_delta: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {amount}",
            details={
                "account_id": account_id,
                "amount": amount,
                "balance_delta": balance_delta,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        account_id: str,
        net_delta: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated, balance moved by {net_delta}",
            details={
                "account_id": account_id,
                "net_delta": net_delta,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        account_id: str,
        reverted_delta: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={
                "account_id": account_id,
                "reverted_delta": reverted_delta,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_processed(
        template_id: str,
        created_id: str,
        due_date: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_PROCESSED,
            entity_type="transaction",
            entity_id=created_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction materialised for {due_date}",
            details={
                "template_id": template_id,
                "due_date": due_date,
            },
        )

    @staticmethod
    def rate_limited(
        user_id: str,
        reason: str,
        remaining: int,
        reset_in_seconds: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Request denied: {reason}",
            details={
                "reason": reason,
                "remaining": remaining,
                "reset_in_seconds": reset_in_seconds,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
