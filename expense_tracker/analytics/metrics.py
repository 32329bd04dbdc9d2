"""
Metrics Aggregator

Derives summary statistics from a set of expense records. Nothing here is
persisted; every figure is recomputed from the records it is given.

All arithmetic is done on exact Decimals and rounded half-up to cents at
the end, so sums never carry binary floating point error.
"""

from calendar import monthrange
from collections.abc import Iterable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from expense_tracker.models.expense import (
    CENT,
    CategorySummary,
    ExpenseCategory,
    ExpenseRecord,
    ExpenseSummary,
    MonthlyMetrics,
    TopCategory,
)
from expense_tracker.services.storage import ExpenseStorageInterface


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_cents(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def month_bounds(day: date) -> tuple[date, date]:
    """First and last calendar day of the month containing ``day``."""
    last = monthrange(day.year, day.month)[1]
    return date(day.year, day.month, 1), date(day.year, day.month, last)


def totals_by_category(
    records: Iterable[ExpenseRecord],
) -> dict[ExpenseCategory, tuple[Decimal, int]]:
    """Sum and count per category."""
    totals: dict[ExpenseCategory, tuple[Decimal, int]] = {}
    for record in records:
        total, count = totals.get(record.category, (ZERO, 0))
        totals[record.category] = (total + record.amount, count + 1)
    return totals


def rank_by_amount(
    totals: dict[ExpenseCategory, Decimal],
) -> list[tuple[ExpenseCategory, Decimal]]:
    """
    Order categories by amount, highest first.

    Equal amounts fall back to the ascending alphabetical label, so
    Comida ranks ahead of Transporte on a tie.
    """
    return sorted(totals.items(), key=lambda item: (-item[1], item[0].value))


class MetricsAggregator:
    """
    Computes monthly metrics and summaries over expense records.

    The storage handle is optional; it is only needed for
    ``monthly_metrics``, which reads its own snapshot.
    """

    def __init__(self, storage: Optional[ExpenseStorageInterface] = None):
        self._storage = storage

    def compute(
        self,
        records: Iterable[ExpenseRecord],
        now: datetime,
    ) -> MonthlyMetrics:
        """
        Compute metrics for the calendar month of ``now``.

        Records outside the month are ignored. The daily average divides by
        the day of month of ``now`` (days elapsed so far), not by the
        length of the month.

        Args:
            records: Any set of records, typically a full snapshot
            now: Reference moment; its date selects the month

        Returns:
            MonthlyMetrics. Empty month gives 0, 0, None, 0.
        """
        today = now.date() if isinstance(now, datetime) else now
        first, last = month_bounds(today)
        in_month = [r for r in records if first <= r.transaction_date <= last]

        if not in_month:
            return MonthlyMetrics()

        total = to_cents(sum((r.amount for r in in_month), ZERO))
        average = to_cents(total / today.day)

        ranked = rank_by_amount({
            category: amount
            for category, (amount, _) in totals_by_category(in_month).items()
        })
        top_name, top_amount = ranked[0]

        return MonthlyMetrics(
            total_spent=total,
            average_daily_spend=average,
            top_category=TopCategory(name=top_name, amount=to_cents(top_amount)),
            transaction_count=len(in_month),
        )

    async def monthly_metrics(self, now: datetime) -> MonthlyMetrics:
        """
        Read a snapshot from the store and compute metrics for ``now``.

        Raises:
            StorageError: If the snapshot cannot be read
        """
        if self._storage is None:
            raise RuntimeError("MetricsAggregator was created without storage")
        return self.compute(await self._storage.get_all(), now)

    def summarize(self, records: Iterable[ExpenseRecord]) -> ExpenseSummary:
        """Total, count, average, min and max over all given records."""
        amounts = [r.amount for r in records]
        if not amounts:
            return ExpenseSummary()

        total = sum(amounts, ZERO)
        return ExpenseSummary(
            total=to_cents(total),
            count=len(amounts),
            average=to_cents(total / len(amounts)),
            min=min(amounts),
            max=max(amounts),
        )

    def category_breakdown(
        self,
        records: Iterable[ExpenseRecord],
    ) -> list[CategorySummary]:
        """
        Per-category totals with their share of the overall total.

        Ordered by total descending, ties alphabetical. Categories with no
        records are left out.
        """
        totals = totals_by_category(records)
        grand_total = sum((total for total, _ in totals.values()), ZERO)
        if not grand_total:
            return []

        ranked = rank_by_amount({c: t for c, (t, _) in totals.items()})
        return [
            CategorySummary(
                category=category,
                total=to_cents(total),
                count=totals[category][1],
                percentage=to_cents(total / grand_total * HUNDRED),
            )
            for category, total in ranked
        ]
