"""
SQLite Storage Implementation

Implements the storage interfaces on a local SQLite database via aiosqlite.

DESIGN DECISION: SQLite because:
1. Real transactions: record + balance writes commit or roll back together
2. BEGIN IMMEDIATE takes the write lock before the first read, so two
   edits to the same account cannot lose each other's update
3. Zero setup for a single-household app

SCHEMA:
- Money is stored as INTEGER cents; balances move with
  `balance_cents = balance_cents + ?` inside the unit of work.
- Dates are ISO strings.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Optional
from uuid import UUID

import aiosqlite
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pocketbook.config import get_settings
from pocketbook.ledger.balance import from_cents, to_cents
from pocketbook.models.audit import AuditEvent
from pocketbook.models.finance import (
    Account,
    AccountType,
    Category,
    RecurringInterval,
    Transaction,
    TransactionType,
    User,
)
from pocketbook.reconciliation.categories import DEFAULT_CATEGORIES
from pocketbook.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    NotFoundError,
    PersistenceError,
    StorageError,
)


SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        identity_id TEXT NOT NULL UNIQUE,
        name TEXT,
        email TEXT,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        balance_cents INTEGER NOT NULL DEFAULT 0,
        is_default INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        type TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        type TEXT NOT NULL,
        amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
        description TEXT,
        date TEXT NOT NULL,
        account_id TEXT NOT NULL REFERENCES accounts(id),
        category TEXT NOT NULL,
        is_recurring INTEGER NOT NULL DEFAULT 0,
        recurring_interval TEXT,
        next_recurring_date TEXT,
        last_processed TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id)',
    'CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id)',
    '''
    CREATE TABLE IF NOT EXISTS audit_events (
        event_id TEXT PRIMARY KEY,
        timestamp TEXT NOT NULL,
        event_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        entity_type TEXT,
        entity_id TEXT,
        correlation_id TEXT,
        description TEXT NOT NULL,
        details_json TEXT,
        error_message TEXT,
        is_user_action INTEGER NOT NULL DEFAULT 0
    )
    ''',
]

TRANSACTION_COLUMNS = (
    "id, user_id, type, amount_cents, description, date, account_id, category, "
    "is_recurring, recurring_interval, next_recurring_date, last_processed, "
    "created_at, updated_at"
)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_account(row) -> Account:
    return Account(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        type=AccountType(row["type"]),
        balance=from_cents(row["balance_cents"]),
        is_default=bool(row["is_default"]),
    )


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        user_id=row["user_id"],
        type=TransactionType(row["type"]),
        amount=from_cents(row["amount_cents"]),
        description=row["description"],
        date=date.fromisoformat(row["date"]),
        account_id=row["account_id"],
        category=row["category"],
        is_recurring=bool(row["is_recurring"]),
        recurring_interval=(
            RecurringInterval(row["recurring_interval"])
            if row["recurring_interval"] else None
        ),
        next_recurring_date=(
            date.fromisoformat(row["next_recurring_date"])
            if row["next_recurring_date"] else None
        ),
        last_processed=(
            date.fromisoformat(row["last_processed"])
            if row["last_processed"] else None
        ),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _transaction_params(transaction: Transaction) -> tuple:
    return (
        transaction.id,
        transaction.user_id,
        transaction.type.value,
        to_cents(transaction.amount),
        transaction.description,
        transaction.date.isoformat(),
        transaction.account_id,
        transaction.category,
        int(transaction.is_recurring),
        transaction.recurring_interval.value if transaction.recurring_interval else None,
        _iso(transaction.next_recurring_date),
        _iso(transaction.last_processed),
        transaction.created_at.isoformat(),
        transaction.updated_at.isoformat(),
    )


class SQLiteUnitOfWork(LedgerUnitOfWork):
    """Unit of work bound to an open SQLite transaction."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def _fetchone(self, sql: str, params: tuple = ()):
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()):
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchall()

    async def get_user_by_identity(self, identity_id: str) -> Optional[User]:
        row = await self._fetchone(
            'SELECT id, identity_id, name, email FROM users WHERE identity_id = ?',
            (identity_id,),
        )
        if row is None:
            return None
        return User(
            id=row["id"],
            identity_id=row["identity_id"],
            name=row["name"],
            email=row["email"],
        )

    async def get_account(self, account_id: str, user_id: str) -> Optional[Account]:
        row = await self._fetchone(
            'SELECT * FROM accounts WHERE id = ? AND user_id = ?',
            (account_id, user_id),
        )
        return _row_to_account(row) if row else None

    async def list_accounts(self, user_id: str) -> list[Account]:
        rows = await self._fetchall(
            'SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at, rowid',
            (user_id,),
        )
        return [_row_to_account(row) for row in rows]

    async def insert_account(self, account: Account) -> None:
        now = datetime.utcnow().isoformat()
        await self._conn.execute(
            '''
            INSERT INTO accounts
                (id, user_id, name, type, balance_cents, is_default, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            (
                account.id,
                account.user_id,
                account.name,
                account.type.value,
                to_cents(account.balance),
                int(account.is_default),
                now,
                now,
            ),
        )

    async def clear_default_account(self, user_id: str) -> None:
        await self._conn.execute(
            'UPDATE accounts SET is_default = 0 WHERE user_id = ?',
            (user_id,),
        )

    async def increment_balance(self, account_id: str, delta) -> None:
        cursor = await self._conn.execute(
            '''
            UPDATE accounts
            SET balance_cents = balance_cents + ?, updated_at = ?
            WHERE id = ?
            ''',
            (to_cents(delta), datetime.utcnow().isoformat(), account_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Account", account_id)

    async def get_transaction(
        self,
        transaction_id: str,
        user_id: str,
    ) -> Optional[Transaction]:
        row = await self._fetchone(
            f'SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id = ? AND user_id = ?',
            (transaction_id, user_id),
        )
        return _row_to_transaction(row) if row else None

    async def insert_transaction(self, transaction: Transaction) -> None:
        await self._conn.execute(
            f'''
            INSERT INTO transactions ({TRANSACTION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            _transaction_params(transaction),
        )

    async def update_transaction(self, transaction: Transaction) -> None:
        params = _transaction_params(transaction)
        cursor = await self._conn.execute(
            '''
            UPDATE transactions SET
                user_id = ?, type = ?, amount_cents = ?, description = ?, date = ?,
                account_id = ?, category = ?, is_recurring = ?, recurring_interval = ?,
                next_recurring_date = ?, last_processed = ?, created_at = ?, updated_at = ?
            WHERE id = ?
            ''',
            params[1:] + (transaction.id,),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Transaction", transaction.id)

    async def delete_transaction(self, transaction_id: str) -> None:
        cursor = await self._conn.execute(
            'DELETE FROM transactions WHERE id = ?',
            (transaction_id,),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Transaction", transaction_id)

    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        sql = f'SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE user_id = ?'
        params: tuple = (user_id,)
        if account_id:
            sql += ' AND account_id = ?'
            params += (account_id,)
        sql += ' ORDER BY date DESC, created_at DESC'
        rows = await self._fetchall(sql, params)
        return [_row_to_transaction(row) for row in rows]

    async def list_due_recurring(self, as_of: date) -> list[Transaction]:
        rows = await self._fetchall(
            f'''
            SELECT {TRANSACTION_COLUMNS} FROM transactions
            WHERE is_recurring = 1
              AND next_recurring_date IS NOT NULL
              AND next_recurring_date <= ?
            ORDER BY next_recurring_date
            ''',
            (as_of.isoformat(),),
        )
        return [_row_to_transaction(row) for row in rows]

    async def list_categories(self) -> list[Category]:
        rows = await self._fetchall('SELECT id, name, type FROM categories ORDER BY type, name')
        return [
            Category(id=row["id"], name=row["name"], type=TransactionType(row["type"]))
            for row in rows
        ]


class SQLiteLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage on one aiosqlite connection.

    Units of work are serialized on the connection; across processes,
    BEGIN IMMEDIATE serializes writers on the database file.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = path or get_settings().database.path
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database, create the schema and seed categories."""
        if self._conn is not None:
            return
        try:
            self._conn = await aiosqlite.connect(self._path, isolation_level=None)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute('PRAGMA foreign_keys = ON')
            for statement in SCHEMA:
                await self._conn.execute(statement)
            await self._conn.executemany(
                'INSERT OR IGNORE INTO categories (id, name, type) VALUES (?, ?, ?)',
                [(c.id, c.name, c.type.value) for c in DEFAULT_CATEGORIES],
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self._path}: {e}") from e

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Storage is not connected; call connect() first")
        return self._conn

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(sqlite3.OperationalError),
        reraise=True,
    )
    async def _begin(self) -> None:
        await self.connection.execute('BEGIN IMMEDIATE')

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SQLiteUnitOfWork]:
        conn = self.connection
        async with self._lock:
            try:
                await self._begin()
            except sqlite3.Error as e:
                raise PersistenceError(f"Could not start transaction: {e}") from e

            try:
                yield SQLiteUnitOfWork(conn)
            except sqlite3.Error as e:
                await conn.execute('ROLLBACK')
                raise PersistenceError(f"Unit of work failed: {e}") from e
            except BaseException:
                await conn.execute('ROLLBACK')
                raise

            try:
                await conn.execute('COMMIT')
            except sqlite3.Error as e:
                await conn.execute('ROLLBACK')
                raise PersistenceError(f"Commit failed: {e}") from e

    async def create_user(self, user: User) -> User:
        try:
            async with self.unit_of_work():
                await self.connection.execute(
                    '''
                    INSERT INTO users (id, identity_id, name, email, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    ''',
                    (user.id, user.identity_id, user.name, user.email,
                     datetime.utcnow().isoformat()),
                )
        except PersistenceError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise DuplicateError(f"User already exists: {user.identity_id}") from e
            raise
        return user

    async def create_account(self, account: Account) -> Account:
        async with self.unit_of_work() as uow:
            existing = await uow.list_accounts(account.user_id)
            if not existing:
                account = account.model_copy(update={"is_default": True})
            if account.is_default:
                await uow.clear_default_account(account.user_id)
            await uow.insert_account(account)
        return account

    # Used by SQLiteAuditStorage; runs outside any unit of work.

    async def execute_write(self, sql: str, params: tuple = ()) -> None:
        async with self.unit_of_work():
            await self.connection.execute(sql, params)

    async def fetch_all(self, sql: str, params: tuple = ()) -> list:
        async with self._lock:
            async with self.connection.execute(sql, params) as cursor:
                return list(await cursor.fetchall())


class SQLiteAuditStorage(AuditStorageInterface):
    """
    Audit log in the audit_events table.

    Shares the ledger storage's connection.
    """

    def __init__(self, storage: SQLiteLedgerStorage):
        self._storage = storage

    async def append_event(self, event: AuditEvent) -> bool:
        await self._storage.execute_write(
            '''
            INSERT INTO audit_events
                (event_id, timestamp, event_type, severity, entity_type, entity_id,
                 correlation_id, description, details_json, error_message, is_user_action)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            event.to_row(),
        )
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        rows = await self._storage.fetch_all(
            'SELECT * FROM audit_events WHERE correlation_id = ? ORDER BY timestamp, rowid',
            (str(correlation_id),),
        )
        return [AuditEvent.from_row(tuple(row)) for row in rows]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        rows = await self._storage.fetch_all(
            'SELECT * FROM audit_events ORDER BY timestamp DESC, rowid DESC LIMIT ?',
            (limit,),
        )
        return [AuditEvent.from_row(tuple(row)) for row in rows]
