"""Document store implementations for docmigrate."""

from docmigrate.stores.bulk_copy import BulkCopyRunner, RateLimiter
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.stores.interface import (
    BULK_LOAD_SETTINGS,
    STEADY_STATE_SETTINGS,
    BulkCopyRequest,
    BulkCopyResponse,
    BulkWriteOperation,
    BulkWriteResult,
    CollectionSettings,
    ConflictPolicy,
    DocumentFailure,
    DocumentStore,
    IndexResult,
    VersionMode,
)

# SQLite support is optional - only import if aiosqlite is available
try:
    from docmigrate.stores.sqlite import SQLiteDocumentStore  # noqa: F401

    _SQLITE_AVAILABLE = True
except ImportError:
    _SQLITE_AVAILABLE = False

__all__ = [
    # Data structures
    "BULK_LOAD_SETTINGS",
    "STEADY_STATE_SETTINGS",
    "BulkCopyRequest",
    "BulkCopyResponse",
    "BulkWriteOperation",
    "BulkWriteResult",
    "CollectionSettings",
    "ConflictPolicy",
    "DocumentFailure",
    "IndexResult",
    "VersionMode",
    # Abstract base classes
    "DocumentStore",
    # Concrete implementations
    "InMemoryDocumentStore",
    # Bulk copy engine
    "BulkCopyRunner",
    "RateLimiter",
]

# Add SQLiteDocumentStore to __all__ only if available
if _SQLITE_AVAILABLE:
    __all__.append("SQLiteDocumentStore")
