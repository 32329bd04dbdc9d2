"""
Shared fixtures.

Every store fixture is isolated: a fresh temporary SQLite file or a fresh
in-memory store per test. Time is pinned so date rules are deterministic.
"""

import itertools
from datetime import date, datetime, timezone
from decimal import Decimal

import anyio
import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.models.expense import ExpenseCategory, ExpenseRecord
from expense_tracker.mutations import MutationPipeline
from expense_tracker.queries import QueryEngine
from expense_tracker.services.storage import (
    InMemoryExpenseStorage,
    SQLiteExpenseStorage,
)
from expense_tracker.validation import ExpenseValidator


TODAY = date(2025, 1, 15)
NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_record():
    """Factory for valid ExpenseRecord objects with sequential ids."""
    counter = itertools.count(1)

    def _make(
        description="Lunch at the office",
        amount="12.50",
        category=ExpenseCategory.COMIDA,
        transaction_date=TODAY,
        created_at=NOW,
        record_id=None,
    ):
        return ExpenseRecord(
            id=record_id or f"rec-{next(counter)}",
            description=description,
            amount=Decimal(amount),
            category=category,
            transaction_date=transaction_date,
            created_at=created_at,
            updated_at=created_at,
        )

    return _make


@pytest.fixture
def valid_payload():
    return {
        "description": "Groceries",
        "amount": "45.90",
        "category": "Comida",
        "transaction_date": "2025-01-10",
    }


@pytest.fixture
def validator():
    return ExpenseValidator(today=lambda: TODAY)


@pytest.fixture
def memory_store():
    return InMemoryExpenseStorage()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteExpenseStorage(str(tmp_path / "expenses.db"))
    store.open()
    yield store
    anyio.run(store.close)


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def pipeline(memory_store, validator, audit_logger):
    ids = (f"exp-{n}" for n in itertools.count(1))
    return MutationPipeline(
        memory_store,
        validator=validator,
        audit_logger=audit_logger,
        clock=lambda: NOW,
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def query_engine(memory_store, audit_logger):
    return QueryEngine(memory_store, audit_logger=audit_logger, today=lambda: TODAY)
