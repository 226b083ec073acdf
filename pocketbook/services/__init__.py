"""Services package."""

from pocketbook.services.access import (
    RateLimitedError,
    RateLimiterInterface,
    RequestBlockedError,
    TokenBucketRateLimiter,
    UnauthorizedError,
)
from pocketbook.services.extraction import (
    ExtractionServiceError,
    GeminiReceiptExtractor,
    InvalidInputError,
    MalformedExtractionError,
)
from pocketbook.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PersistenceError,
    SQLiteAuditStorage,
    SQLiteLedgerStorage,
    StorageError,
)

__all__ = [
    # Access control
    "RateLimitedError",
    "RateLimiterInterface",
    "RequestBlockedError",
    "TokenBucketRateLimiter",
    "UnauthorizedError",
    # Receipt extraction
    "ExtractionServiceError",
    "GeminiReceiptExtractor",
    "InvalidInputError",
    "MalformedExtractionError",
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "LedgerStorageInterface",
    "NotFoundError",
    "PersistenceError",
    "SQLiteAuditStorage",
    "SQLiteLedgerStorage",
    "StorageError",
]
