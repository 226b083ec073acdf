"""Receipt-to-form reconciliation package."""

from pocketbook.reconciliation.categories import (
    DEFAULT_CATEGORIES,
    categories_for_type,
    resolve_category,
)
from pocketbook.reconciliation.form import (
    FORM_FIELDS,
    FormState,
    default_form_values,
    transaction_form_values,
)
from pocketbook.reconciliation.reconciler import (
    ApplicationStatus,
    DraftApplication,
    DraftReconciler,
    MANUAL_ENTRY_MESSAGE,
    ReconcilerState,
)

__all__ = [
    "ApplicationStatus",
    "DEFAULT_CATEGORIES",
    "DraftApplication",
    "DraftReconciler",
    "FORM_FIELDS",
    "FormState",
    "MANUAL_ENTRY_MESSAGE",
    "ReconcilerState",
    "categories_for_type",
    "default_form_values",
    "resolve_category",
    "transaction_form_values",
]
