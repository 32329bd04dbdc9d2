"""
In-Memory Storage Implementation

A disposable Record Store with the same semantics as the SQLite store.
Used for tests and for sessions where no file can be written.

Records are deep-copied on the way in and on the way out, so callers can
never mutate stored state through a reference.
"""

from typing import Optional

from expense_tracker.errors import DuplicateIdError, NotFoundError
from expense_tracker.models.expense import ExpenseRecord
from expense_tracker.services.storage.interface import ExpenseStorageInterface


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """Dict-backed expense storage, insertion ordered."""

    def __init__(self, records: Optional[list[ExpenseRecord]] = None):
        self._records: dict[str, ExpenseRecord] = {}
        for record in records or []:
            self._records[record.id] = record.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._records)

    async def add(self, record: ExpenseRecord) -> None:
        if record.id in self._records:
            raise DuplicateIdError(record.id)
        self._records[record.id] = record.model_copy(deep=True)

    async def get(self, record_id: str) -> ExpenseRecord:
        try:
            return self._records[record_id].model_copy(deep=True)
        except KeyError:
            raise NotFoundError(record_id) from None

    async def put(self, record: ExpenseRecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    async def delete(self, record_id: str) -> None:
        try:
            del self._records[record_id]
        except KeyError:
            raise NotFoundError(record_id) from None

    async def get_all(self) -> list[ExpenseRecord]:
        return [record.model_copy(deep=True) for record in self._records.values()]

    async def close(self) -> None:
        self._records.clear()
