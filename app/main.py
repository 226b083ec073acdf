"""
Streamlit Frontend for Pocketbook

The transaction form: add or edit a transaction, optionally auto-filled
from a receipt photo.

DESIGN PRINCIPLES:
1. The receipt only proposes values; the user reviews and submits
2. Clear advisories when something could not be read
3. Nothing is saved without an explicit "Save" action

Identity comes from the POCKETBOOK_IDENTITY environment variable or the
sidebar; signing in is handled outside this app.
"""

import asyncio
import os
from datetime import date

import streamlit as st

from pocketbook.models.finance import (
    RecurringInterval,
    TransactionType,
)
from pocketbook.orchestrator import create_app_components
from pocketbook.reconciliation import (
    DraftReconciler,
    FormState,
    categories_for_type,
)


st.set_page_config(
    page_title="Pocketbook",
    page_icon="💰",
    layout="centered",
)


@st.cache_resource
def get_event_loop():
    """One long-lived loop; the database connection outlives each rerun."""
    return asyncio.new_event_loop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run_until_complete(coro)


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return run_async(create_app_components(use_storage=True))
    except Exception as e:
        st.error(f"Failed to initialize storage: {e}")
        return run_async(create_app_components(use_storage=False))


def ensure_ledger(transaction_flow, identity_id: str) -> None:
    """First visit: create the user and a default account, once per session."""
    if st.session_state.get("ledger_ready_for") == identity_id:
        return
    run_async(transaction_flow.ensure_ledger(identity_id))
    st.session_state.ledger_ready_for = identity_id


def get_reconciler(scan_flow, transaction_flow, identity_id: str, transaction_id):
    """
    One form and reconciler per page session.

    Navigating to another transaction closes the old reconciler so a
    late receipt result cannot land in the new form.
    """
    session_key = (identity_id, transaction_id)
    if st.session_state.get("form_key") == session_key:
        return st.session_state.reconciler

    old = st.session_state.get("reconciler")
    if old is not None:
        old.close()

    if transaction_id:
        form = FormState.for_transaction(
            run_async(transaction_flow.get(identity_id, transaction_id))
        )
    else:
        form = FormState.for_new_transaction(
            run_async(transaction_flow.list_accounts(identity_id))
        )

    reconciler = DraftReconciler(
        form,
        run_async(transaction_flow.list_categories()),
        scanner=scan_flow.scanner_for(identity_id),
    )
    st.session_state.form_key = session_key
    st.session_state.reconciler = reconciler
    return reconciler


def render_scanner(reconciler: DraftReconciler):
    """Receipt upload; fills the form below."""
    st.subheader("📷 Scan a receipt")
    uploaded = st.file_uploader(
        "Receipt photo",
        type=["jpg", "jpeg", "png", "webp", "heic"],
        disabled=reconciler.is_busy,
    )
    if uploaded and st.button("Scan Receipt", disabled=reconciler.is_busy):
        with st.spinner("Reading your receipt..."):
            application = run_async(
                reconciler.scan(uploaded.getvalue(), uploaded.type or "image/jpeg")
            )
        if application.applied:
            st.success("Receipt scanned successfully")
        for advisory in application.extraction_warnings + application.advisories:
            st.warning(advisory.message)


def render_form(reconciler: DraftReconciler, transaction_flow, identity_id, transaction_id):
    form = reconciler.form
    accounts = run_async(transaction_flow.list_accounts(identity_id))

    types = [TransactionType.EXPENSE, TransactionType.INCOME]
    chosen_type = st.selectbox(
        "Type",
        types,
        index=types.index(form.get("type")),
        format_func=lambda t: t.value.title(),
    )
    reconciler.set_type(chosen_type)

    amount = st.text_input("Amount", value=form.get("amount"))
    reconciler.set_field("amount", amount)

    account_ids = [a.id for a in accounts]
    names = {a.id: f"{a.name} ({a.balance})" for a in accounts}
    if account_ids:
        current = form.get("account_id")
        account_id = st.selectbox(
            "Account",
            account_ids,
            index=account_ids.index(current) if current in account_ids else 0,
            format_func=names.get,
        )
        reconciler.set_field("account_id", account_id)

    categories = categories_for_type(reconciler.categories, form.get("type"))
    category_ids = [""] + [c.id for c in categories]
    labels = {c.id: c.name for c in categories}
    labels[""] = "Select category"
    current = form.get("category")
    category = st.selectbox(
        "Category",
        category_ids,
        index=category_ids.index(current) if current in category_ids else 0,
        format_func=labels.get,
    )
    reconciler.set_field("category", category)

    picked_date = st.date_input(
        "Date",
        value=form.get("date"),
        min_value=date(1900, 1, 1),
        max_value=date.today(),
    )
    reconciler.set_field("date", picked_date)

    description = st.text_input("Description", value=form.get("description"))
    reconciler.set_field("description", description)

    is_recurring = st.checkbox("Recurring transaction", value=form.get("is_recurring"))
    reconciler.set_field("is_recurring", is_recurring)
    if is_recurring:
        intervals = list(RecurringInterval)
        current = form.get("recurring_interval")
        interval = st.selectbox(
            "Recurring interval",
            intervals,
            index=intervals.index(current) if current in intervals else 2,
            format_func=lambda i: i.value.title(),
        )
        reconciler.set_field("recurring_interval", interval)

    label = "Update Transaction" if transaction_id else "Create Transaction"
    if st.button(label, type="primary", disabled=reconciler.is_busy):
        result = run_async(
            transaction_flow.submit_form(form, identity_id, transaction_id)
        )
        if result.success:
            st.success(result.message)
            st.session_state.pop("form_key", None)
            st.session_state.account_page = result.redirect_to
            st.rerun()
        else:
            if result.message:
                st.error(result.message)
            for field, message in result.field_errors.items():
                st.error(f"{field.replace('_', ' ').title()}: {message}")


def main():
    """Main application entry point."""
    scan_flow, transaction_flow, _storage = get_components()

    st.sidebar.title("💰 Pocketbook")
    identity_id = st.sidebar.text_input(
        "Signed in as",
        value=os.environ.get("POCKETBOOK_IDENTITY", ""),
    )
    transaction_id = st.query_params.get("edit") or None

    if not identity_id:
        st.info("Please sign in to continue.")
        return
    if transaction_flow is None:
        st.error("Storage is not available; transactions cannot be saved.")
        return

    ensure_ledger(transaction_flow, identity_id)

    if st.session_state.get("account_page"):
        st.sidebar.markdown(f"Last saved to `{st.session_state.account_page}`")

    st.title("Edit Transaction" if transaction_id else "Add Transaction")

    reconciler = get_reconciler(scan_flow, transaction_flow, identity_id, transaction_id)
    if not transaction_id:
        render_scanner(reconciler)
    render_form(reconciler, transaction_flow, identity_id, transaction_id)


if __name__ == "__main__":
    main()
