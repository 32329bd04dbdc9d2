"""
Tests for the query engine: filter stages, sorting, pagination and error
propagation.
"""

from datetime import date, timedelta
from decimal import Decimal

import anyio
import pytest

from expense_tracker.errors import (
    NotFoundError,
    StorageError,
    StorageOperation,
    ValidationError,
)
from expense_tracker.models.expense import ExpenseCategory, FilterSpec
from expense_tracker.queries import QueryEngine, parse_filter_spec
from expense_tracker.services.storage import InMemoryExpenseStorage


TODAY = date(2025, 1, 15)


class CountingStorage(InMemoryExpenseStorage):
    def __init__(self, records=None):
        super().__init__(records)
        self.reads = 0

    async def get_all(self):
        self.reads += 1
        return await super().get_all()


class BrokenStorage(InMemoryExpenseStorage):
    error = StorageError("read failed", StorageOperation.READ)

    async def get_all(self):
        raise self.error


@pytest.fixture
def seeded(memory_store, make_record):
    """A small mixed data set, inserted in a known order."""
    records = [
        make_record(description="Supermarket run", amount="80.00",
                    category=ExpenseCategory.COMIDA, transaction_date=date(2025, 1, 10)),
        make_record(description="Metro card", amount="20.00",
                    category=ExpenseCategory.TRANSPORTE, transaction_date=date(2025, 1, 5)),
        make_record(description="Cinema tickets", amount="20.00",
                    category=ExpenseCategory.ENTRETENIMIENTO, transaction_date=date(2025, 1, 12)),
        make_record(description="COFFEE beans", amount="15.75",
                    category=ExpenseCategory.COMIDA, transaction_date=date(2025, 1, 1)),
        make_record(description="Coffee with friends", amount="6.40",
                    category=ExpenseCategory.COMIDA, transaction_date=date(2024, 12, 31)),
        make_record(description="Dentist", amount="120.00",
                    category=ExpenseCategory.SALUD, transaction_date=date(2024, 6, 2)),
    ]
    for record in records:
        anyio.run(memory_store.add, record)
    return records


def _descriptions(result):
    return [r.description for r in result.records]


class TestDateFilter:
    """Inclusive date range, defaulting to the current year."""

    def test_default_is_current_year(self, query_engine, seeded):
        result = anyio.run(query_engine.execute)
        assert result.total_count == 4
        assert all(r.transaction_date.year == 2025 for r in result.records)

    def test_inclusive_bounds(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {
            "date_from": date(2025, 1, 5),
            "date_to": date(2025, 1, 10),
        })
        assert sorted(_descriptions(result)) == ["Metro card", "Supermarket run"]

    def test_only_lower_bound(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {"date_from": date(2024, 12, 31)})
        assert result.total_count == 5

    def test_only_upper_bound(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {"date_to": date(2024, 12, 31)})
        assert sorted(_descriptions(result)) == ["Coffee with friends", "Dentist"]

    def test_iso_instant_bounds(self, query_engine, seeded):
        """Bounds given as ISO instants are compared by their date."""
        result = anyio.run(query_engine.execute, {
            "date_from": "2025-01-05T00:00:00.000Z",
            "date_to": "2025-01-10T23:59:59.999Z",
        })
        assert sorted(_descriptions(result)) == ["Metro card", "Supermarket run"]

    def test_blank_bound_is_open(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {"date_from": "", "date_to": "2024-12-31"})
        assert sorted(_descriptions(result)) == ["Coffee with friends", "Dentist"]


class TestCategoryAndSearch:
    """Category OR filter and case-insensitive search."""

    def test_categories_are_ored(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {
            "categories": ["Transporte", "Entretenimiento"],
        })
        assert sorted(_descriptions(result)) == ["Cinema tickets", "Metro card"]

    def test_search_is_trimmed_and_case_insensitive(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {
            "search_text": "  coffee ",
            "date_from": date(2024, 1, 1),
        })
        assert sorted(_descriptions(result)) == ["COFFEE beans", "Coffee with friends"]

    def test_combined_filters_satisfy_every_predicate(self, query_engine, seeded):
        spec = {
            "categories": ["Comida"],
            "search_text": "coffee",
            "date_from": date(2025, 1, 1),
            "date_to": date(2025, 1, 31),
        }
        result = anyio.run(query_engine.execute, spec)

        assert _descriptions(result) == ["COFFEE beans"]
        for record in result.records:
            assert record.category == ExpenseCategory.COMIDA
            assert "coffee" in record.description.lower()
            assert date(2025, 1, 1) <= record.transaction_date <= date(2025, 1, 31)

        # Dropping any filter never shrinks the result
        for keys in (
            ("categories",),
            ("search_text",),
            ("date_from",),
            ("date_to",),
            ("date_from", "date_to"),
        ):
            relaxed = {k: v for k, v in spec.items() if k not in keys}
            assert anyio.run(query_engine.count, relaxed) >= result.total_count

    def test_no_match(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {"search_text": "yacht"})
        assert result.records == []
        assert result.total_count == 0
        assert result.has_more is False


class TestSorting:
    """Stable sorting on date, amount and creation time."""

    def test_default_newest_date_first(self, query_engine, seeded):
        result = anyio.run(query_engine.execute)
        dates = [r.transaction_date for r in result.records]
        assert dates == sorted(dates, reverse=True)

    def test_amount_ascending(self, query_engine, seeded):
        result = anyio.run(query_engine.execute, {
            "sort_field": "amount",
            "sort_order": "asc",
        })
        amounts = [r.amount for r in result.records]
        assert amounts == sorted(amounts)

    @pytest.mark.parametrize("order", ["asc", "desc"])
    def test_ties_keep_insertion_order(self, query_engine, seeded, order):
        """Equal amounts keep their stored order in either direction."""
        result = anyio.run(query_engine.execute, {
            "sort_field": "amount",
            "sort_order": order,
        })
        tied = [r.description for r in result.records if r.amount == Decimal("20.00")]
        assert tied == ["Metro card", "Cinema tickets"]

    def test_created_at(self, memory_store, make_record, query_engine):
        base = make_record().created_at
        for offset in (2, 0, 1):
            anyio.run(memory_store.add, make_record(
                description=f"Item {offset}",
                created_at=base + timedelta(minutes=offset),
            ))
        result = anyio.run(query_engine.execute, {
            "sort_field": "created_at",
            "sort_order": "asc",
        })
        assert _descriptions(result) == ["Item 0", "Item 1", "Item 2"]


class TestPagination:
    """Slicing and has_more."""

    @pytest.fixture
    def many(self, memory_store, make_record):
        for i in range(45):
            anyio.run(memory_store.add, make_record(
                description=f"Expense {i:02d}",
                transaction_date=date(2025, 1, 1) + timedelta(days=i % 15),
            ))

    def test_pages_cover_every_match_once(self, query_engine, many):
        seen = []
        offset = 0
        pages = []
        while True:
            result = anyio.run(query_engine.execute, {"limit": 20, "offset": offset})
            pages.append((len(result.records), result.has_more))
            seen.extend(r.id for r in result.records)
            if not result.has_more:
                break
            offset += 20

        assert pages == [(20, True), (20, True), (5, False)]
        assert len(seen) == len(set(seen)) == 45

    def test_total_count_ignores_pagination(self, query_engine, many):
        result = anyio.run(query_engine.execute, {"limit": 10, "offset": 40})
        assert result.total_count == 45
        assert len(result.records) == 5
        assert result.offset == 40
        assert result.limit == 10

    def test_offset_past_end(self, query_engine, many):
        result = anyio.run(query_engine.execute, {"offset": 100})
        assert result.records == []
        assert result.has_more is False

    def test_all_matching_ignores_pagination(self, query_engine, many):
        records = anyio.run(query_engine.all_matching, {"limit": 5})
        assert len(records) == 45


class TestErrors:
    """Malformed criteria and storage failures."""

    @pytest.mark.parametrize(
        "filters",
        [
            {"date_from": date(2025, 2, 1), "date_to": date(2025, 1, 1)},
            {"limit": 0},
            {"limit": 101},
            {"offset": -1},
            {"categories": ["Rent"]},
            {"sort_field": "description"},
            {"date_to": "end of january"},
        ],
    )
    def test_rejected_before_store_access(self, filters):
        storage = CountingStorage()
        engine = QueryEngine(storage, today=lambda: TODAY)

        with pytest.raises(ValidationError):
            anyio.run(engine.execute, filters)
        assert storage.reads == 0

    def test_storage_error_propagates_unchanged(self):
        engine = QueryEngine(BrokenStorage(), today=lambda: TODAY)
        with pytest.raises(StorageError) as exc_info:
            anyio.run(engine.execute)
        assert exc_info.value is BrokenStorage.error

    def test_parse_filter_spec_passthrough(self):
        spec = FilterSpec(limit=5)
        assert parse_filter_spec(spec) is spec
        assert parse_filter_spec(None) == FilterSpec()


class TestSingleReads:
    """get and count."""

    def test_get(self, query_engine, seeded):
        assert anyio.run(query_engine.get, seeded[0].id) == seeded[0]

    def test_get_missing(self, query_engine):
        with pytest.raises(NotFoundError):
            anyio.run(query_engine.get, "nope")

    def test_count(self, query_engine, seeded):
        assert anyio.run(query_engine.count, {"categories": ["Comida"]}) == 2

    def test_snapshot_not_live(self, query_engine, memory_store, seeded, make_record):
        """A result obtained earlier is not changed by later writes."""
        before = anyio.run(query_engine.execute)
        anyio.run(memory_store.add, make_record(description="Late addition"))
        assert before.total_count == 4
        assert anyio.run(query_engine.execute).total_count == 5
