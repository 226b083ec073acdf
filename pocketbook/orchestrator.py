"""
Main Orchestrator for Pocketbook

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt scan (image → Gemini → normalize → draft for the form)
2. Ledger (form → validate → record + balance in one unit of work)
3. Recurring processing (due template → new transaction + schedule advance)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No ledger write without a signed-in identity that maps to a user
- No transaction creation once the rate limiter says no
- A record write and its balance change commit together or not at all
- Every step is audited

Audit events are written after a unit of work has committed, never
inside it.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from pocketbook.audit import AuditLogger, create_correlation_id
from pocketbook.errors import PocketbookError
from pocketbook.ledger.balance import balance_delta, net_delta, next_recurring_date
from pocketbook.models.finance import (
    Account,
    Category,
    ScanResult,
    Transaction,
    TransactionInput,
    User,
)
from pocketbook.reconciliation.form import FormState
from pocketbook.reconciliation.reconciler import ReceiptScanner
from pocketbook.services.access import (
    RateLimitedError,
    RateLimiterInterface,
    RequestBlockedError,
    TokenBucketRateLimiter,
    require_identity,
)
from pocketbook.services.extraction import (
    ExtractionServiceError,
    GeminiReceiptExtractor,
    InvalidInputError,
    MalformedExtractionError,
    normalize_extraction,
)
from pocketbook.services.storage import (
    DuplicateError,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    NotFoundError,
    SQLiteAuditStorage,
    SQLiteLedgerStorage,
)
from pocketbook.validation import TransactionValidationError, TransactionValidator


logger = structlog.get_logger(__name__)

RECURRING_SUFFIX = " (Recurring)"


class ReceiptScanFlow:
    """
    Orchestrates a receipt scan.

    Flow:
    1. Check identity
    2. Extract → Gemini call (rejects bad files before any call)
    3. Normalize → ReceiptDraft plus advisories

    The draft is only a proposal; it reaches the ledger only if the
    user submits the form.
    """

    def __init__(
        self,
        extractor: Optional[GeminiReceiptExtractor] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        # The Gemini client is created on first scan so the ledger
        # works without a Gemini key.
        self._extractor = extractor
        self._audit_logger = audit_logger

    @property
    def extractor(self) -> GeminiReceiptExtractor:
        if self._extractor is None:
            self._extractor = GeminiReceiptExtractor()
        return self._extractor

    async def scan(
        self,
        identity_id: Optional[str],
        image_bytes: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ScanResult:
        """
        Scan one receipt image.

        Raises:
            UnauthorizedError: If no identity was supplied
            InvalidInputError: If the file is empty, too large or not an image
            ExtractionServiceError: If the Gemini call fails
            MalformedExtractionError: If the answer is not a JSON object
        """
        identity_id = require_identity(identity_id)
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_scan_started(
                user_id=identity_id,
                mime_type=mime_type,
                file_size=len(image_bytes or b""),
                correlation_id=correlation_id,
            )

        try:
            raw_text = await self.extractor.extract(image_bytes, mime_type)
        except InvalidInputError as e:
            if self._audit_logger:
                await self._audit_logger.log_scan_rejected(
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise
        except ExtractionServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=e.upstream_message,
                    correlation_id=correlation_id,
                )
            raise

        try:
            result = normalize_extraction(raw_text, today=today)
        except MalformedExtractionError as e:
            if self._audit_logger:
                await self._audit_logger.log_scan_failed(
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_scan_completed(
                extraction_id=result.draft.extraction_id,
                warnings=[w.message for w in result.warnings],
                correlation_id=correlation_id,
            )

        return result

    def scanner_for(self, identity_id: Optional[str]) -> ReceiptScanner:
        """Bind an identity, giving the callable a DraftReconciler expects."""
        async def scanner(image_bytes: bytes, mime_type: str) -> ScanResult:
            return await self.scan(identity_id, image_bytes, mime_type)

        return scanner


class SubmissionResult(BaseModel):
    """Outcome of submitting the transaction form."""

    success: bool
    transaction: Optional[Transaction] = None
    redirect_to: Optional[str] = None
    field_errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


class TransactionFlow:
    """
    Orchestrates ledger mutations.

    Every mutation:
    1. Checks identity (and, for create, the rate limiter)
    2. Opens one unit of work
    3. Resolves the user, then the account/transaction scoped to that user
    4. Writes the record and moves the balance by a signed delta
    5. Commits, then audits

    If anything in 3-4 fails, nothing is written.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        rate_limiter: Optional[RateLimiterInterface] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._rate_limiter = rate_limiter or TokenBucketRateLimiter()
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger

    async def _get_user(self, uow: LedgerUnitOfWork, identity_id: str) -> User:
        user = await uow.get_user_by_identity(identity_id)
        if user is None:
            raise NotFoundError("User", identity_id)
        return user

    async def _get_account(
        self,
        uow: LedgerUnitOfWork,
        account_id: str,
        user: User,
    ) -> Account:
        account = await uow.get_account(account_id, user.id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    async def _get_transaction(
        self,
        uow: LedgerUnitOfWork,
        transaction_id: str,
        user: User,
    ) -> Transaction:
        transaction = await uow.get_transaction(transaction_id, user.id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    async def _check_rate_limit(self, identity_id: str, correlation_id: UUID) -> None:
        decision = await self._rate_limiter.protect(identity_id, requested=1)
        if decision.allowed:
            return

        if self._audit_logger:
            await self._audit_logger.log_rate_limited(
                user_id=identity_id,
                reason=decision.reason,
                remaining=decision.remaining,
                reset_in_seconds=decision.reset_in_seconds,
                correlation_id=correlation_id,
            )
        logger.warning(
            "rate_limit_exceeded",
            code="RATE_LIMIT_EXCEEDED",
            remaining=decision.remaining,
            reset_in_seconds=decision.reset_in_seconds,
        )

        if decision.is_rate_limit:
            raise RateLimitedError(decision.remaining, decision.reset_in_seconds)
        raise RequestBlockedError(f"Request blocked: {decision.reason}")

    @staticmethod
    def _build_transaction(
        user_id: str,
        data: TransactionInput,
        existing: Optional[Transaction] = None,
    ) -> Transaction:
        """A Transaction from validated form data, keeping identity on edit."""
        next_date = None
        if data.is_recurring and data.recurring_interval:
            next_date = next_recurring_date(data.date, data.recurring_interval)

        fields = dict(
            user_id=user_id,
            type=data.type,
            amount=data.amount,
            description=data.description,
            date=data.date,
            account_id=data.account_id,
            category=data.category,
            is_recurring=data.is_recurring,
            recurring_interval=data.recurring_interval,
            next_recurring_date=next_date,
        )
        if existing is not None:
            fields.update(
                id=existing.id,
                created_at=existing.created_at,
                updated_at=datetime.utcnow(),
                last_processed=existing.last_processed if data.is_recurring else None,
            )
        return Transaction(**fields)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        identity_id: Optional[str],
        data: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a transaction and move its account's balance.

        Raises:
            UnauthorizedError: If no identity was supplied
            RateLimitedError / RequestBlockedError: If the limiter denies
            NotFoundError: If the user or account doesn't exist
            PersistenceError: If the unit of work could not commit
        """
        identity_id = require_identity(identity_id)
        correlation_id = correlation_id or create_correlation_id()

        await self._check_rate_limit(identity_id, correlation_id)

        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            await self._get_account(uow, data.account_id, user)

            transaction = self._build_transaction(user.id, data)
            delta = balance_delta(transaction.type, transaction.amount)

            await uow.insert_transaction(transaction)
            await uow.increment_balance(transaction.account_id, delta)

        logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            account_id=transaction.account_id,
            delta=str(delta),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                account_id=transaction.account_id,
                amount=str(transaction.amount),
                balance_delta=str(delta),
                correlation_id=correlation_id,
            )

        return transaction

    async def update(
        self,
        identity_id: Optional[str],
        transaction_id: str,
        data: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a transaction in place.

        The balance moves by new_delta - old_delta. If the account
        changed, the old delta is reverted on the old account and the
        new delta applied to the new one.

        Raises:
            UnauthorizedError: If no identity was supplied
            NotFoundError: If the user, transaction or new account doesn't exist
            PersistenceError: If the unit of work could not commit
        """
        identity_id = require_identity(identity_id)
        correlation_id = correlation_id or create_correlation_id()

        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            original = await self._get_transaction(uow, transaction_id, user)
            await self._get_account(uow, data.account_id, user)

            updated = self._build_transaction(user.id, data, existing=original)
            await uow.update_transaction(updated)

            if original.account_id == updated.account_id:
                net = net_delta(original.type, original.amount, updated.type, updated.amount)
                await uow.increment_balance(updated.account_id, net)
            else:
                net = balance_delta(updated.type, updated.amount)
                await uow.increment_balance(
                    original.account_id,
                    -balance_delta(original.type, original.amount),
                )
                await uow.increment_balance(updated.account_id, net)

        logger.info(
            "transaction_updated",
            transaction_id=updated.id,
            account_id=updated.account_id,
            net_delta=str(net),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=updated.id,
                account_id=updated.account_id,
                net_delta=str(net),
                correlation_id=correlation_id,
            )

        return updated

    async def delete(
        self,
        identity_id: Optional[str],
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Delete a transaction and revert its effect on the balance.

        Returns the deleted transaction.
        """
        identity_id = require_identity(identity_id)
        correlation_id = correlation_id or create_correlation_id()

        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            transaction = await self._get_transaction(uow, transaction_id, user)
            reverted = -balance_delta(transaction.type, transaction.amount)

            await uow.delete_transaction(transaction.id)
            await uow.increment_balance(transaction.account_id, reverted)

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction.id,
                account_id=transaction.account_id,
                reverted_delta=str(reverted),
                correlation_id=correlation_id,
            )

        return transaction

    async def process_recurring(
        self,
        template: Transaction,
        as_of: date,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Materialise every occurrence of one template due on or before as_of.

        Each occurrence is its own unit of work: the new transaction,
        its balance change and the template's schedule advance commit
        together. The template is re-read inside each unit of work, so
        an occurrence processed elsewhere is not created twice.
        """
        correlation_id = correlation_id or create_correlation_id()
        created: list[Transaction] = []

        while True:
            async with self._storage.unit_of_work() as uow:
                current = await uow.get_transaction(template.id, template.user_id)
                if (
                    current is None
                    or not current.is_recurring
                    or current.next_recurring_date is None
                    or current.next_recurring_date > as_of
                ):
                    break

                due = current.next_recurring_date
                occurrence = Transaction(
                    user_id=current.user_id,
                    type=current.type,
                    amount=current.amount,
                    description=f"{current.description or ''}{RECURRING_SUFFIX}".strip(),
                    date=due,
                    account_id=current.account_id,
                    category=current.category,
                )
                advanced = current.model_copy(update={
                    "next_recurring_date": next_recurring_date(due, current.recurring_interval),
                    "last_processed": as_of,
                    "updated_at": datetime.utcnow(),
                })

                await uow.insert_transaction(occurrence)
                await uow.increment_balance(
                    occurrence.account_id,
                    balance_delta(occurrence.type, occurrence.amount),
                )
                await uow.update_transaction(advanced)

            created.append(occurrence)
            if self._audit_logger:
                await self._audit_logger.log_recurring_processed(
                    template_id=current.id,
                    created_id=occurrence.id,
                    due_date=due.isoformat(),
                    correlation_id=correlation_id,
                )

        return created

    async def process_due_recurring(
        self,
        as_of: Optional[date] = None,
    ) -> list[Transaction]:
        """
        Process every recurring transaction due on or before as_of (default today).

        A template that fails is logged and skipped; the others still run.
        """
        as_of = as_of or date.today()
        correlation_id = create_correlation_id()

        async with self._storage.unit_of_work() as uow:
            templates = await uow.list_due_recurring(as_of)

        created: list[Transaction] = []
        for template in templates:
            try:
                created.extend(
                    await self.process_recurring(template, as_of, correlation_id)
                )
            except PocketbookError as e:
                logger.error(
                    "recurring_processing_failed",
                    template_id=template.id,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="recurring_processing_failed",
                        error_message=str(e),
                        details={"template_id": template.id},
                        correlation_id=correlation_id,
                    )

        logger.info("recurring_processed", as_of=as_of.isoformat(), created=len(created))
        return created

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def ensure_ledger(
        self,
        identity_id: Optional[str],
        account_name: str = "Current",
    ) -> User:
        """
        Return the user for this identity, creating it and a default
        account on first visit. Existing users are found with a read,
        so repeat calls write nothing.
        """
        identity_id = require_identity(identity_id)
        async with self._storage.unit_of_work() as uow:
            user = await uow.get_user_by_identity(identity_id)
        if user is not None:
            return user

        try:
            user = await self._storage.create_user(User(identity_id=identity_id))
        except DuplicateError:
            # Created by a concurrent first visit
            async with self._storage.unit_of_work() as uow:
                return await self._get_user(uow, identity_id)

        await self._storage.create_account(Account(user_id=user.id, name=account_name))
        logger.info("ledger_created", user_id=user.id)
        return user

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, identity_id: Optional[str], transaction_id: str) -> Transaction:
        identity_id = require_identity(identity_id)
        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            return await self._get_transaction(uow, transaction_id, user)

    async def list_transactions(
        self,
        identity_id: Optional[str],
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        """The user's transactions, newest first, optionally for one account."""
        identity_id = require_identity(identity_id)
        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            return await uow.list_transactions(user.id, account_id)

    async def list_accounts(self, identity_id: Optional[str]) -> list[Account]:
        identity_id = require_identity(identity_id)
        async with self._storage.unit_of_work() as uow:
            user = await self._get_user(uow, identity_id)
            return await uow.list_accounts(user.id)

    async def list_categories(self) -> list[Category]:
        async with self._storage.unit_of_work() as uow:
            return await uow.list_categories()

    # ------------------------------------------------------------------
    # Form submission
    # ------------------------------------------------------------------

    async def submit_form(
        self,
        form: FormState,
        identity_id: Optional[str],
        transaction_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SubmissionResult:
        """
        Validate and save the form; create, or update when transaction_id is given.

        On success the form is reset and the caller is sent to the
        account's page. Errors never escape: they come back as field
        errors or a message the UI can show.
        """
        try:
            require_identity(identity_id)
            categories = await self.list_categories()
            data = self._validator.validate(form.to_payload(), categories)

            if transaction_id:
                transaction = await self.update(
                    identity_id, transaction_id, data, correlation_id
                )
                message = "Transaction updated successfully"
            else:
                transaction = await self.create(identity_id, data, correlation_id)
                message = "Transaction created successfully"
        except TransactionValidationError as e:
            return SubmissionResult(
                success=False,
                field_errors=e.field_errors,
                message=e.user_message,
            )
        except PocketbookError as e:
            logger.warning("submission_failed", error=str(e))
            return SubmissionResult(success=False, message=e.user_message)

        form.reset()
        return SubmissionResult(
            success=True,
            transaction=transaction,
            redirect_to=f"/account/{transaction.account_id}",
            message=message,
        )


async def create_app_components(
    use_storage: bool = True,
    database_path: Optional[str] = None,
) -> tuple[ReceiptScanFlow, Optional[TransactionFlow], Optional[SQLiteLedgerStorage]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to open the SQLite database.
                    Set to False to run scans without a ledger.
        database_path: Overrides DATABASE_PATH.

    Returns:
        (receipt_scan_flow, transaction_flow, storage)
    """
    storage = None
    transaction_flow = None
    audit_logger = AuditLogger()  # Local-only logging until storage is up

    if use_storage:
        storage = SQLiteLedgerStorage(database_path)
        await storage.connect()
        audit_logger = AuditLogger(SQLiteAuditStorage(storage))
        transaction_flow = TransactionFlow(storage, audit_logger=audit_logger)

    scan_flow = ReceiptScanFlow(audit_logger=audit_logger)

    return scan_flow, transaction_flow, storage
