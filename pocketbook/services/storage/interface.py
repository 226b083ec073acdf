"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap SQLite for a server database later
2. Keep the ledger flows decoupled from SQL
3. Make atomicity explicit: every ledger write happens inside a unit of work

CRITICAL: A backend that cannot run a record write and a balance write
as one transaction cannot implement LedgerStorageInterface.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager, Optional
from uuid import UUID

from pocketbook.errors import PocketbookError
from pocketbook.models.audit import AuditEvent
from pocketbook.models.finance import Account, Category, Transaction, User


class LedgerUnitOfWork(ABC):
    """
    Operations available inside one database transaction.

    Everything done through a unit of work commits together when the
    `async with` block exits normally, and rolls back if it raises.
    """

    @abstractmethod
    async def get_user_by_identity(self, identity_id: str) -> Optional[User]:
        """Look up the user for an identity-provider id."""
        pass

    @abstractmethod
    async def get_account(self, account_id: str, user_id: str) -> Optional[Account]:
        """Fetch an account owned by user_id, or None."""
        pass

    @abstractmethod
    async def list_accounts(self, user_id: str) -> list[Account]:
        pass

    @abstractmethod
    async def increment_balance(self, account_id: str, delta) -> None:
        """
        Atomically add delta to the account balance.

        The increment is done by the store, not read-modify-written
        in Python, so concurrent writers cannot lose updates.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        transaction_id: str,
        user_id: str,
    ) -> Optional[Transaction]:
        """Fetch a transaction owned by user_id, or None."""
        pass

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> None:
        """
        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        """Transactions for a user, newest date first."""
        pass

    @abstractmethod
    async def list_due_recurring(self, as_of: date) -> list[Transaction]:
        """Recurring transactions whose next date is on or before as_of."""
        pass

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation must provide transactional units of work.
    """

    @abstractmethod
    def unit_of_work(self) -> AsyncContextManager[LedgerUnitOfWork]:
        """
        Start a unit of work.

        Usage:
            async with storage.unit_of_work() as uow:
                await uow.insert_transaction(txn)
                await uow.increment_balance(txn.account_id, delta)

        Raises:
            PersistenceError: If the work could not be committed
        """
        pass

    @abstractmethod
    async def create_user(self, user: User) -> User:
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Create an account.

        The user's first account becomes the default; a new default
        account takes the flag from the previous one.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(PocketbookError):
    """Base exception for storage operations."""

    user_message = "Could not reach your data. Please try again."


class NotFoundError(StorageError):
    """Entity not found in storage."""

    user_message = "Not found."

    def __init__(self, entity: str, entity_id: str = ""):
        self.entity = entity
        self.entity_id = entity_id
        detail = f"{entity} not found" + (f": {entity_id}" if entity_id else "")
        super().__init__(detail, user_message=f"{entity} not found")


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class PersistenceError(StorageError):
    """A unit of work could not be committed; nothing was written."""

    user_message = "Could not save your changes. Nothing was changed, please try again."
