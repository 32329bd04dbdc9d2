"""Tests for the chart aggregator."""

from datetime import date
from decimal import Decimal
from types import GeneratorType

import pytest

from expense_tracker.analytics import ChartAggregator
from expense_tracker.errors import ValidationError
from expense_tracker.models.expense import ChartMode, ChartPoint, ExpenseCategory


@pytest.fixture
def charts():
    return ChartAggregator()


@pytest.fixture
def records(make_record):
    return [
        make_record(amount="10.00", category=ExpenseCategory.SALUD,
                    transaction_date=date(2025, 1, 3)),
        make_record(amount="5.50", category=ExpenseCategory.COMIDA,
                    transaction_date=date(2025, 1, 1)),
        make_record(amount="4.50", category=ExpenseCategory.COMIDA,
                    transaction_date=date(2025, 1, 3)),
        make_record(amount="10.00", category=ExpenseCategory.COMPRAS,
                    transaction_date=date(2025, 1, 2)),
    ]


class TestByDay:

    def test_chronological_sums(self, charts, records):
        assert list(charts.by_day(records)) == [
            ChartPoint(label="2025-01-01", amount=Decimal("5.50")),
            ChartPoint(label="2025-01-02", amount=Decimal("10.00")),
            ChartPoint(label="2025-01-03", amount=Decimal("14.50")),
        ]

    def test_empty(self, charts):
        assert list(charts.by_day([])) == []


class TestByCategory:

    def test_amount_descending_ties_alphabetical(self, charts, records):
        """Comida, Compras and Salud all total 10.00."""
        points = list(charts.by_category(records))
        assert [p.label for p in points] == ["Comida", "Compras", "Salud"]
        assert all(p.amount == Decimal("10.00") for p in points)

    def test_largest_first(self, charts, make_record):
        points = list(charts.by_category([
            make_record(amount="1.00", category=ExpenseCategory.OTROS),
            make_record(amount="9.00", category=ExpenseCategory.TRANSPORTE),
        ]))
        assert [p.label for p in points] == ["Transporte", "Otros"]


class TestAggregate:

    def test_returns_single_use_generator(self, charts, records):
        series = charts.aggregate(records, ChartMode.BY_DAY)
        assert isinstance(series, GeneratorType)
        assert len(list(series)) == 3
        assert list(series) == []

    def test_dispatch_by_mode_value(self, charts, records):
        points = list(charts.aggregate(records, "category"))
        assert points[0].label == "Comida"

    def test_consumes_one_shot_iterable(self, charts, records):
        points = list(charts.aggregate(iter(records), ChartMode.BY_CATEGORY))
        assert len(points) == 3

    def test_unknown_mode(self, charts, records):
        with pytest.raises(ValidationError) as exc_info:
            charts.aggregate(records, "week")
        assert exc_info.value.has_field_error("mode")
