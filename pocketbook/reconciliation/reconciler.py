"""
Draft Reconciler

Merges a ReceiptDraft into a live transaction form without corrupting
what the user (or an earlier draft) already put there.

STATES:
    IDLE → SCANNING → IDLE → APPLYING_DRAFT → IDLE

Only one scan may be in flight or being applied at a time. Anything
arriving while the reconciler is busy is dropped, never queued, so two
drafts can never interleave their field writes.

FIELD ORDER when applying a draft:
    1. amount (only if positive)
    2. date
    3. description (only if non-blank)
    4. type := EXPENSE (receipts are spending)
    5. category, resolved against the type written in step 4

Step 5 depends on step 4 because categories are type-scoped: a category
resolved for the wrong type would be hidden by the form's filtered
selector and would fail submission. Step 5 simply runs after step 4
returns.

INDEPENDENT RULE: when the type changes outside of draft application
(the user picked another type), the category is cleared. The rule is
suspended while APPLYING_DRAFT so it cannot undo step 5.
"""

from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from pocketbook.errors import PocketbookError
from pocketbook.models.finance import (
    Advisory,
    Category,
    ReceiptDraft,
    ScanResult,
    TransactionType,
)
from pocketbook.reconciliation.categories import resolve_category
from pocketbook.reconciliation.form import FormState


logger = structlog.get_logger(__name__)

ReceiptScanner = Callable[[bytes, str], Awaitable[ScanResult]]

MANUAL_ENTRY_MESSAGE = "Error processing receipt data. Please enter manually."


class ReconcilerState(str, Enum):
    """Where the reconciler is in the scan/apply cycle."""
    IDLE = "idle"
    SCANNING = "scanning"
    APPLYING_DRAFT = "applying_draft"


class ApplicationStatus(str, Enum):
    """Outcome of a scan or draft application."""
    APPLIED = "applied"    # Draft merged (possibly with advisories)
    DROPPED = "dropped"    # Ignored: busy, empty draft, or stale session
    FAILED = "failed"      # Scan or merge failed; user enters manually


class DraftApplication(BaseModel):
    """What happened to one scan or draft, for the UI to report."""

    status: ApplicationStatus
    advisories: list[Advisory] = Field(default_factory=list)
    extraction_warnings: list[Advisory] = Field(default_factory=list)
    category_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == ApplicationStatus.APPLIED


class DraftReconciler:
    """
    Per-session state machine around one FormState.

    The state field is the in-flight guard; it is the only place that
    says whether a scan is running or a draft is being applied.
    """

    def __init__(
        self,
        form: FormState,
        categories: Iterable[Category],
        scanner: Optional[ReceiptScanner] = None,
    ):
        """
        Args:
            form: The form this session edits
            categories: The user's categories (all types)
            scanner: async (image_bytes, mime_type) -> ScanResult.
                     Required only for scan().
        """
        self._form = form
        self._categories = list(categories)
        self._scanner = scanner
        self._state = ReconcilerState.IDLE
        self._closed = False
        self._unwatch_type = form.watch("type", self._on_type_changed)

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state != ReconcilerState.IDLE

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def form(self) -> FormState:
        return self._form

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def close(self) -> None:
        """The session is gone (user navigated away). Later results are dropped."""
        self._closed = True
        self._unwatch_type()

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def set_type(self, value: TransactionType) -> None:
        """User picked a transaction type. Clears the category if it changed."""
        self._form.set_value("type", value)

    def set_field(self, name: str, value) -> None:
        """Any other user edit."""
        self._form.set_value(name, value)

    def _on_type_changed(self, old, new) -> None:
        if self._state == ReconcilerState.APPLYING_DRAFT:
            return
        if old != new:
            self._form.set_value("category", "")

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def scan(self, image_bytes: bytes, mime_type: str) -> DraftApplication:
        """
        Scan a receipt and apply the resulting draft.

        Dropped if another scan is in flight or being applied. A result
        that arrives after close() or after the form was reset is
        discarded without touching the form.
        """
        if self._closed or self._state != ReconcilerState.IDLE:
            logger.info("scan_dropped", state=self._state.value, closed=self._closed)
            return DraftApplication(
                status=ApplicationStatus.DROPPED,
                advisories=[Advisory(message="A receipt is already being processed.")],
            )
        if self._scanner is None:
            raise RuntimeError("DraftReconciler has no scanner configured")

        generation = self._form.generation
        self._state = ReconcilerState.SCANNING
        try:
            result = await self._scanner(image_bytes, mime_type)
        except PocketbookError as e:
            logger.warning("scan_failed", error=str(e))
            return DraftApplication(
                status=ApplicationStatus.FAILED,
                advisories=[Advisory(message=e.user_message)],
            )
        except Exception:
            logger.exception("scan_failed")
            return DraftApplication(
                status=ApplicationStatus.FAILED,
                advisories=[Advisory(message=MANUAL_ENTRY_MESSAGE)],
            )
        finally:
            self._state = ReconcilerState.IDLE

        if self._closed or self._form.generation != generation:
            logger.info("scan_result_discarded", reason="stale_form")
            return DraftApplication(status=ApplicationStatus.DROPPED)

        application = self.apply_draft(result.draft)
        application.extraction_warnings = list(result.warnings)
        return application

    # ------------------------------------------------------------------
    # Draft application
    # ------------------------------------------------------------------

    def apply_draft(self, draft: Optional[ReceiptDraft]) -> DraftApplication:
        """
        Merge one draft into the form.

        Returns DROPPED without touching the form if the session is
        closed, another draft is being applied, or the draft is empty.
        On an unexpected error the writes made so far are kept and a
        generic advisory is returned.
        """
        if self._closed:
            logger.info("draft_dropped", reason="session_closed")
            return DraftApplication(status=ApplicationStatus.DROPPED)

        if self._state != ReconcilerState.IDLE:
            logger.info("draft_dropped", reason="busy", state=self._state.value)
            return DraftApplication(status=ApplicationStatus.DROPPED)

        if draft is None or draft.is_empty:
            logger.info("draft_dropped", reason="empty_draft")
            return DraftApplication(
                status=ApplicationStatus.DROPPED,
                advisories=[Advisory(message="Nothing could be read from the receipt.")],
            )

        self._state = ReconcilerState.APPLYING_DRAFT
        advisories: list[Advisory] = []
        try:
            self._apply_amount(draft, advisories)
            self._apply_date(draft)
            self._apply_description(draft)
            self._form.set_value("type", TransactionType.EXPENSE)
            category_id = self._apply_category(draft, advisories)
        except Exception:
            logger.exception("draft_apply_failed", extraction_id=str(draft.extraction_id))
            advisories.append(Advisory(message=MANUAL_ENTRY_MESSAGE))
            return DraftApplication(status=ApplicationStatus.FAILED, advisories=advisories)
        finally:
            self._state = ReconcilerState.IDLE

        for advisory in advisories:
            logger.info("draft_advisory", field=advisory.field, message=advisory.message)

        return DraftApplication(
            status=ApplicationStatus.APPLIED,
            advisories=advisories,
            category_id=category_id,
        )

    def _apply_amount(self, draft: ReceiptDraft, advisories: list[Advisory]) -> None:
        if draft.amount is not None and draft.amount > 0:
            self._form.set_value("amount", str(draft.amount))
        else:
            advisories.append(Advisory(
                field="amount",
                message="Could not auto-fill amount. Please enter manually.",
            ))

    def _apply_date(self, draft: ReceiptDraft) -> None:
        if draft.date is not None:
            self._form.set_value("date", draft.date)

    def _apply_description(self, draft: ReceiptDraft) -> None:
        if draft.description and draft.description.strip():
            self._form.set_value("description", draft.description.strip())

    def _apply_category(
        self,
        draft: ReceiptDraft,
        advisories: list[Advisory],
    ) -> Optional[str]:
        current_type = self._form.get("type")
        category_id = resolve_category(draft.category_name, self._categories, current_type)

        if category_id is not None:
            self._form.set_value("category", category_id)
            return category_id

        # Never leave an old (possibly wrong-type) category behind
        self._form.set_value("category", "")
        if draft.category_name:
            message = f'Could not match category "{draft.category_name}". Please select manually.'
        else:
            message = "Could not extract category from receipt. Please select manually."
        advisories.append(Advisory(field="category", message=message))
        return None
