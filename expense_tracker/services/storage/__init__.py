"""
Storage Services Package

Provides the Record Store interface and its implementations: a local
SQLite file and a disposable in-memory store.
"""

from expense_tracker.errors import (
    DuplicateIdError,
    NotFoundError,
    StorageError,
    StorageFailureReason,
    StorageOperation,
)
from expense_tracker.services.storage.interface import ExpenseStorageInterface
from expense_tracker.services.storage.memory import InMemoryExpenseStorage
from expense_tracker.services.storage.sqlite_store import (
    SCHEMA_VERSION,
    SQLiteExpenseStorage,
)

__all__ = [
    # Interface
    "ExpenseStorageInterface",
    # Exceptions
    "DuplicateIdError",
    "NotFoundError",
    "StorageError",
    "StorageFailureReason",
    "StorageOperation",
    # Implementations
    "InMemoryExpenseStorage",
    "SCHEMA_VERSION",
    "SQLiteExpenseStorage",
]
