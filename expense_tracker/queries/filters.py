"""
Filter State

Holds the filters a user is currently looking at (selected categories,
date range, search text and sort) and turns them into a FilterSpec for the
query engine.

Defaults: all categories, the current calendar year, empty search, newest
transaction date first.
"""

from collections.abc import Iterable
from datetime import date
from typing import Callable, Optional

from expense_tracker.errors import ValidationError
from expense_tracker.models.expense import (
    DEFAULT_PAGE_SIZE,
    ExpenseCategory,
    FilterSpec,
    SortField,
    SortOrder,
)


class FilterState:
    """Mutable filter selection with reset-to-defaults."""

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self.reset()

    def _default_range(self) -> tuple[date, date]:
        year = self._today().year
        return date(year, 1, 1), date(year, 12, 31)

    def _effective_range(self) -> tuple[Optional[date], Optional[date]]:
        # An unbounded selection falls back to the current year
        if self.date_from is None and self.date_to is None:
            return self._default_range()
        return self.date_from, self.date_to

    def set_categories(self, categories: Iterable[ExpenseCategory]) -> None:
        """
        Replace the selection. An empty selection means all categories.

        Raises:
            ValidationError: If any value is not a known category. The
                             current selection is left unchanged.
        """
        try:
            self.categories = frozenset(ExpenseCategory(c) for c in categories)
        except ValueError:
            raise ValidationError(
                {"categories": ["Select a valid category"]},
                message="Invalid filter criteria",
            ) from None

    def set_date_range(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> None:
        """
        Set the date range. Either bound may be None for an open end;
        clearing both falls back to the current year.

        Raises:
            ValidationError: If date_to is before date_from. The current
                             range is left unchanged.
        """
        if date_from is not None and date_to is not None and date_to < date_from:
            raise ValidationError(
                {"date_to": ["date_to cannot be before date_from"]},
                message="Invalid date range",
            )
        self.date_from = date_from
        self.date_to = date_to

    def set_search(self, text: str) -> None:
        self.search_text = text

    def set_sort(self, field: SortField, order: SortOrder) -> None:
        """
        Raises:
            ValidationError: If the field or order is unknown. The current
                             sort is left unchanged.
        """
        errors: dict[str, list[str]] = {}
        try:
            sort_field = SortField(field)
        except ValueError:
            errors["sort_field"] = ["Select a valid sort field"]
        try:
            sort_order = SortOrder(order)
        except ValueError:
            errors["sort_order"] = ["Select a valid sort order"]
        if errors:
            raise ValidationError(errors, message="Invalid filter criteria")
        self.sort_field = sort_field
        self.sort_order = sort_order

    def reset(self) -> None:
        """Restore every filter to its default."""
        self.categories: frozenset[ExpenseCategory] = frozenset()
        self.date_from, self.date_to = self._default_range()
        self.search_text = ""
        self.sort_field = SortField.DATE
        self.sort_order = SortOrder.DESC

    def has_active_filters(self) -> bool:
        """True when any filter differs from its default."""
        return (
            bool(self.categories)
            or self._effective_range() != self._default_range()
            or bool(self.search_text.strip())
            or self.sort_field != SortField.DATE
            or self.sort_order != SortOrder.DESC
        )

    def to_filter_spec(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> FilterSpec:
        """Build the immutable query criteria for the current state."""
        return FilterSpec(
            categories=self.categories,
            date_from=self.date_from,
            date_to=self.date_to,
            search_text=self.search_text,
            sort_field=self.sort_field,
            sort_order=self.sort_order,
            limit=limit,
            offset=offset,
        )
