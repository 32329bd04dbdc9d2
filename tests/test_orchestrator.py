"""
Tests for the orchestrator: component wiring, the end-to-end flows and the
retry around opening the store.
"""

from datetime import date, datetime, time
from decimal import Decimal

import anyio
import pytest

from expense_tracker.analytics import to_cents
from expense_tracker.config import Settings
from expense_tracker.errors import (
    StorageError,
    StorageFailureReason,
    StorageOperation,
)
from expense_tracker.models.expense import ChartMode, ChangeKind
from expense_tracker.orchestrator import create_app_components, open_with_retry
from expense_tracker.services.storage import (
    InMemoryExpenseStorage,
    SQLiteExpenseStorage,
)


class FlakyStore:
    """Stand-in store whose open() fails a set number of times."""

    location = "flaky.db"

    def __init__(self, failures, reason=StorageFailureReason.BLOCKED):
        self.failures = failures
        self.reason = reason
        self.calls = 0

    def open(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise StorageError("database is locked", StorageOperation.OPEN, reason=self.reason)
        return 1


class TestOpenWithRetry:
    """Caller-side retry of store opening."""

    def test_transient_lock_retried(self):
        store = FlakyStore(failures=2)
        assert open_with_retry(store, attempts=3, wait_seconds=0) == 1
        assert store.calls == 3

    def test_gives_up_after_attempts(self):
        store = FlakyStore(failures=5)
        with pytest.raises(StorageError) as exc_info:
            open_with_retry(store, attempts=2, wait_seconds=0)
        assert exc_info.value.is_blocked()
        assert store.calls == 2

    def test_unsupported_not_retried(self):
        store = FlakyStore(failures=5, reason=StorageFailureReason.UNSUPPORTED)
        with pytest.raises(StorageError):
            open_with_retry(store, attempts=3, wait_seconds=0)
        assert store.calls == 1


class TestCreateAppComponents:
    """Wiring and the end-to-end flows."""

    @pytest.fixture
    def sqlite_settings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EXPENSE_DB_PATH", str(tmp_path / "app" / "expenses.db"))
        monkeypatch.setenv("EXPENSE_DB_OPEN_RETRY_WAIT_SECONDS", "0")
        monkeypatch.setenv("DEFAULT_PAGE_SIZE", "2")
        return Settings()

    def test_sqlite_store_opened_from_settings(self, sqlite_settings, tmp_path):
        tracker = create_app_components(settings=sqlite_settings)
        try:
            assert tracker.storage.is_open
            assert (tmp_path / "app" / "expenses.db").exists()
        finally:
            anyio.run(tracker.close)

    def test_end_to_end(self, sqlite_settings):
        today = date.today()
        tracker = create_app_components(settings=sqlite_settings)
        changes = []
        tracker.subscribe(changes.append)

        try:
            first = anyio.run(tracker.create_expense, {
                "description": "Weekly groceries",
                "amount": "60.00",
                "category": "Comida",
                "transaction_date": today.isoformat(),
            })
            anyio.run(tracker.create_expense, {
                "description": "Bus pass",
                "amount": "40.00",
                "category": "Transporte",
                "transaction_date": today.isoformat(),
            })
            anyio.run(tracker.create_expense, {
                "description": "Movie night",
                "amount": "15.00",
                "category": "Entretenimiento",
                "transaction_date": today.isoformat(),
            })
            anyio.run(tracker.update_expense, first.id, {"amount": "65.00"})

            page = anyio.run(tracker.list_expenses)
            assert page.total_count == 3
            assert len(page.records) == 2
            assert page.has_more is True

            assert anyio.run(tracker.get_expense, first.id).amount == Decimal("65.00")

            metrics = anyio.run(
                tracker.monthly_metrics,
                datetime.combine(today, time(12, 0)),
            )
            assert metrics.total_spent == Decimal("120.00")
            assert metrics.average_daily_spend == to_cents(Decimal("120.00") / today.day)
            assert metrics.top_category.name.value == "Comida"

            points = list(anyio.run(tracker.chart, ChartMode.BY_CATEGORY))
            assert [p.label for p in points] == ["Comida", "Transporte", "Entretenimiento"]

            anyio.run(tracker.delete_expense, first.id)
            assert anyio.run(tracker.list_expenses).total_count == 2
        finally:
            anyio.run(tracker.close)

        assert [c.kind for c in changes] == [
            ChangeKind.CREATED,
            ChangeKind.CREATED,
            ChangeKind.CREATED,
            ChangeKind.UPDATED,
            ChangeKind.DELETED,
        ]

    def test_filter_state_drives_listing(self, sqlite_settings):
        today = date.today()
        storage = InMemoryExpenseStorage()
        tracker = create_app_components(settings=sqlite_settings, storage=storage)

        for description, category in [("Lunch", "Comida"), ("Taxi", "Transporte")]:
            anyio.run(tracker.create_expense, {
                "description": description,
                "amount": "9.99",
                "category": category,
                "transaction_date": today.isoformat(),
            })

        tracker.filters.set_categories(["Transporte"])
        result = anyio.run(tracker.list_expenses)
        assert [r.description for r in result.records] == ["Taxi"]

        tracker.filters.reset()
        assert anyio.run(tracker.list_expenses).total_count == 2

    def test_injected_store_not_reopened(self, sqlite_settings):
        storage = InMemoryExpenseStorage()
        tracker = create_app_components(settings=sqlite_settings, storage=storage)
        assert tracker.storage is storage

    def test_unopenable_store_raises(self, sqlite_settings, tmp_path):
        (tmp_path / "taken.db").mkdir()
        storage = SQLiteExpenseStorage(str(tmp_path / "taken.db"))

        with pytest.raises(StorageError) as exc_info:
            create_app_components(settings=sqlite_settings, storage=storage)
        assert exc_info.value.operation == StorageOperation.OPEN
        assert not storage.is_open
