"""
Abstract Storage Interface

The Record Store contract. Every implementation (SQLite file, in-memory)
must honour these semantics:

- add fails with DuplicateIdError when the id exists
- get / delete raise NotFoundError for an unknown id
- put upserts
- get_all returns every record (no ordering guarantee)
- every write is atomic: it fully commits or has no effect
- reads return copies; mutating a returned record never touches storage
- failures raise StorageError immediately, nothing is retried internally
"""

from abc import ABC, abstractmethod

from expense_tracker.models.expense import ExpenseRecord


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense record storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def add(self, record: ExpenseRecord) -> None:
        """
        Insert a new record.

        Raises:
            DuplicateIdError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, record_id: str) -> ExpenseRecord:
        """
        Retrieve a record by its id.

        Raises:
            NotFoundError: If no record has this id
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def put(self, record: ExpenseRecord) -> None:
        """
        Insert or replace a record.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """
        Permanently remove a record.

        Raises:
            NotFoundError: If no record has this id
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def get_all(self) -> list[ExpenseRecord]:
        """
        Return a snapshot of every stored record.

        Raises:
            StorageError: If the read fails
        """
        pass

    async def close(self) -> None:
        """Release the store handle. Default is a no-op."""
        return None
