"""Derived metrics and chart series."""

from expense_tracker.analytics.charts import ChartAggregator
from expense_tracker.analytics.metrics import MetricsAggregator, month_bounds, to_cents

__all__ = ["ChartAggregator", "MetricsAggregator", "month_bounds", "to_cents"]
