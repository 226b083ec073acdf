"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability for scans that went wrong
3. Compliance readiness

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocketbook.models.audit import AuditEvent, AuditEventBuilder
from pocketbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_scan_started(
        self,
        user_id: str,
        mime_type: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.scan_started(
            user_id=user_id,
            mime_type=mime_type,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_scan_completed(
        self,
        extraction_id: UUID,
        warnings: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.scan_completed(
            extraction_id=extraction_id,
            warnings=warnings,
            correlation_id=correlation_id,
        ))

    async def log_scan_rejected(
        self,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log an upload refused before any model call."""
        await self.log(AuditEventBuilder.scan_rejected(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_scan_failed(
        self,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a model response that could not be parsed."""
        await self.log(AuditEventBuilder.scan_failed(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        transaction_id: str,
        account_id: str,
        amount: str,
        balance_delta: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            account_id=account_id,
            amount=amount,
            balance_delta=balance_delta,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: str,
        account_id: str,
        net_delta: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            account_id=account_id,
            net_delta=net_delta,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        account_id: str,
        reverted_delta: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            account_id=account_id,
            reverted_delta=reverted_delta,
            correlation_id=correlation_id,
        ))

    async def log_recurring_processed(
        self,
        template_id: str,
        created_id: str,
        due_date: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_processed(
            template_id=template_id,
            created_id=created_id,
            due_date=due_date,
            correlation_id=correlation_id,
        ))

    async def log_rate_limited(
        self,
        user_id: str,
        reason: str,
        remaining: int,
        reset_in_seconds: int,
        correlation_id: UUID,
    ) -> None:
        """Log a request denied by the rate limiter."""
        await self.log(AuditEventBuilder.rate_limited(
            user_id=user_id,
            reason=reason,
            remaining=remaining,
            reset_in_seconds=reset_in_seconds,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
