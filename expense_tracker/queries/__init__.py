"""Query engine and filter state."""

from expense_tracker.queries.executor import (
    QueryEngine,
    apply_filters,
    parse_filter_spec,
)
from expense_tracker.queries.filters import FilterState

__all__ = ["FilterState", "QueryEngine", "apply_filters", "parse_filter_spec"]
