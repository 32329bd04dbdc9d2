"""
Chart Aggregator

Groups expense records into chart-ready series. Both groupings are
generators: they consume the caller's records once and yield ChartPoint
objects. A generator cannot be restarted; call again for a fresh series.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from datetime import date
from decimal import Decimal

from expense_tracker.analytics.metrics import rank_by_amount, to_cents
from expense_tracker.errors import ValidationError
from expense_tracker.models.expense import (
    ChartMode,
    ChartPoint,
    ExpenseCategory,
    ExpenseRecord,
)


class ChartAggregator:
    """Builds by-day and by-category series."""

    def by_day(self, records: Iterable[ExpenseRecord]) -> Iterator[ChartPoint]:
        """Daily totals, oldest day first. Labels are ISO dates."""
        totals: dict[date, Decimal] = defaultdict(Decimal)
        for record in records:
            totals[record.transaction_date] += record.amount

        for day in sorted(totals):
            yield ChartPoint(label=day.isoformat(), amount=to_cents(totals[day]))

    def by_category(self, records: Iterable[ExpenseRecord]) -> Iterator[ChartPoint]:
        """Category totals, largest first, ties by label."""
        totals: dict[ExpenseCategory, Decimal] = defaultdict(Decimal)
        for record in records:
            totals[record.category] += record.amount

        for category, amount in rank_by_amount(totals):
            yield ChartPoint(label=category.value, amount=to_cents(amount))

    def aggregate(
        self,
        records: Iterable[ExpenseRecord],
        mode: ChartMode,
    ) -> Iterator[ChartPoint]:
        """
        Series for the given mode.

        Raises:
            ValidationError: If the mode is unknown
        """
        try:
            mode = ChartMode(mode)
        except ValueError:
            raise ValidationError(
                {"mode": ["Select a valid chart mode"]},
                message="Invalid chart mode",
            ) from None
        if mode == ChartMode.BY_CATEGORY:
            return self.by_category(records)
        return self.by_day(records)
