"""
Transaction Form State

The in-progress transaction form, owned by one UI session.

Values are kept the way the form widgets hold them (the amount is the
text in the amount box), and converted to a TransactionInput only on
submit. Field watchers fire on real changes made through set_value;
creating or resetting the form sets a new baseline and notifies nobody.
"""

from datetime import date
from typing import Any, Callable, Iterable, Optional

from pocketbook.models.finance import (
    Account,
    RecurringInterval,
    Transaction,
    TransactionType,
)


FORM_FIELDS = (
    "type",
    "amount",
    "description",
    "account_id",
    "category",
    "date",
    "is_recurring",
    "recurring_interval",
)

FieldWatcher = Callable[[Any, Any], None]


def default_form_values(
    accounts: Iterable[Account] = (),
    today: Optional[date] = None,
) -> dict[str, Any]:
    """Blank form: an expense on the user's default account, dated today."""
    default_account = next((a for a in accounts if a.is_default), None)
    return {
        "type": TransactionType.EXPENSE,
        "amount": "",
        "description": "",
        "account_id": default_account.id if default_account else "",
        "category": "",
        "date": today or date.today(),
        "is_recurring": False,
        "recurring_interval": None,
    }


def transaction_form_values(transaction: Transaction) -> dict[str, Any]:
    """Form values for editing an existing transaction."""
    return {
        "type": transaction.type,
        "amount": str(transaction.amount),
        "description": transaction.description or "",
        "account_id": transaction.account_id,
        "category": transaction.category,
        "date": transaction.date,
        "is_recurring": transaction.is_recurring,
        "recurring_interval": transaction.recurring_interval,
    }


class FormState:
    """
    Mutable form values with per-field change watchers.

    Usage:
        form = FormState.for_new_transaction(accounts)
        unwatch = form.watch("type", lambda old, new: ...)
        form.set_value("type", TransactionType.INCOME)
    """

    def __init__(self, values: Optional[dict[str, Any]] = None):
        self._values = default_form_values()
        self._values.update(self._coerce_all(values or {}))
        self._watchers: dict[str, list[FieldWatcher]] = {}
        self._generation = 0

    @classmethod
    def for_new_transaction(
        cls,
        accounts: Iterable[Account] = (),
        today: Optional[date] = None,
    ) -> "FormState":
        return cls(default_form_values(accounts, today))

    @classmethod
    def for_transaction(cls, transaction: Transaction) -> "FormState":
        """Edit mode: start from the persisted transaction."""
        return cls(transaction_form_values(transaction))

    @property
    def generation(self) -> int:
        """Bumped on every reset; lets late async results detect a new form."""
        return self._generation

    def get(self, name: str) -> Any:
        self._check_field(name)
        return self._values[name]

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def set_value(self, name: str, value: Any) -> None:
        """Write one field and notify its watchers if the value changed."""
        self._check_field(name)
        value = self._coerce(name, value)
        old = self._values[name]
        if old == value:
            return
        self._values[name] = value
        for watcher in list(self._watchers.get(name, ())):
            watcher(old, value)

    def watch(self, name: str, watcher: FieldWatcher) -> Callable[[], None]:
        """
        Call watcher(old, new) whenever the field changes.

        Returns a function that removes the watcher.
        """
        self._check_field(name)
        self._watchers.setdefault(name, []).append(watcher)

        def unwatch() -> None:
            if watcher in self._watchers.get(name, []):
                self._watchers[name].remove(watcher)

        return unwatch

    def reset(self, values: Optional[dict[str, Any]] = None) -> None:
        """Replace all values without notifying watchers (new baseline)."""
        fresh = default_form_values()
        fresh.update(self._coerce_all(values or {}))
        self._values = fresh
        self._generation += 1

    def to_payload(self) -> dict[str, Any]:
        """Values shaped for TransactionInput validation."""
        payload = self.values()
        amount = str(payload["amount"]).strip()
        payload["amount"] = amount or None
        payload["description"] = payload["description"] or None
        if not payload["is_recurring"]:
            payload["recurring_interval"] = None
        return payload

    @staticmethod
    def _check_field(name: str) -> None:
        if name not in FORM_FIELDS:
            raise KeyError(f"Unknown form field: {name}")

    @classmethod
    def _coerce_all(cls, values: dict[str, Any]) -> dict[str, Any]:
        coerced = {}
        for name, value in values.items():
            cls._check_field(name)
            coerced[name] = cls._coerce(name, value)
        return coerced

    @staticmethod
    def _coerce(name: str, value: Any) -> Any:
        if name == "type":
            return TransactionType(value)
        if name == "recurring_interval" and value is not None:
            return RecurringInterval(value)
        if name == "is_recurring":
            return bool(value)
        if name in ("amount", "description", "account_id", "category"):
            return "" if value is None else str(value)
        return value
