"""Services package."""

from expense_tracker.services.storage import (
    DuplicateIdError,
    ExpenseStorageInterface,
    InMemoryExpenseStorage,
    NotFoundError,
    SQLiteExpenseStorage,
    StorageError,
)

__all__ = [
    # Storage services
    "DuplicateIdError",
    "ExpenseStorageInterface",
    "InMemoryExpenseStorage",
    "NotFoundError",
    "SQLiteExpenseStorage",
    "StorageError",
]
