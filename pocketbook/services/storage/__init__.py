"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements SQLite as the backend, but designed to be swappable.
"""

from pocketbook.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LedgerUnitOfWork,
    NotFoundError,
    PersistenceError,
    StorageError,
)
from pocketbook.services.storage.sqlite_store import (
    SQLiteAuditStorage,
    SQLiteLedgerStorage,
    SQLiteUnitOfWork,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "LedgerUnitOfWork",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteLedgerStorage",
    "SQLiteUnitOfWork",
]
