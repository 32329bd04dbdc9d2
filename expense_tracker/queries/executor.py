"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
Every query works on a point-in-time snapshot of the store (``get_all``)
and applies the same fixed pipeline:

1. Date filter (inclusive, defaults to the current year)
2. Category filter (OR across the selected categories)
3. Search filter (case-insensitive substring of the description)
4. Stable sort
5. Pagination

The engine never writes and never retries. A snapshot taken before a
mutation commits does not see that mutation; callers re-query.
"""

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, Callable, Optional, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.errors import ValidationError, from_pydantic_error
from expense_tracker.models.expense import (
    ExpenseRecord,
    FilterSpec,
    QueryResult,
    SortField,
    SortOrder,
)
from expense_tracker.services.storage import ExpenseStorageInterface


FilterInput = Union[FilterSpec, Mapping[str, Any], None]

_SORT_KEYS: dict[SortField, Callable[[ExpenseRecord], Any]] = {
    SortField.DATE: lambda record: record.transaction_date,
    SortField.AMOUNT: lambda record: record.amount,
    SortField.CREATED_AT: lambda record: record.created_at,
}


def parse_filter_spec(filters: FilterInput) -> FilterSpec:
    """
    Build a FilterSpec from caller input.

    Accepts an existing FilterSpec, a mapping of its fields, or None for
    the defaults.

    Raises:
        ValidationError: If the criteria are malformed
    """
    if filters is None:
        return FilterSpec()
    if isinstance(filters, FilterSpec):
        return filters
    try:
        return FilterSpec.model_validate(dict(filters))
    except PydanticValidationError as e:
        raise from_pydantic_error(e, message="Invalid filter criteria") from None


def apply_filters(
    records: Iterable[ExpenseRecord],
    spec: FilterSpec,
    today: date,
) -> list[ExpenseRecord]:
    """
    Apply the filter stages and the sort, without pagination.

    All active stages are combined with AND. The sort is stable, so
    records with equal keys keep their snapshot order.
    """
    date_from, date_to = spec.resolve_date_range(today)
    search = spec.normalized_search

    matching = []
    for record in records:
        if date_from is not None and record.transaction_date < date_from:
            continue
        if date_to is not None and record.transaction_date > date_to:
            continue
        if spec.categories and record.category not in spec.categories:
            continue
        if search and search not in record.description.lower():
            continue
        matching.append(record)

    return sorted(
        matching,
        key=_SORT_KEYS[spec.sort_field],
        reverse=spec.sort_order == SortOrder.DESC,
    )


class QueryEngine:
    """
    Executes filter/sort/paginate queries against expense storage.

    GUARANTEES:
    - Only returns real data from storage
    - total_count counts matches before pagination
    - Walking the pages with offset += limit visits every match exactly once
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._today = today

    def _parse(
        self,
        filters: FilterInput,
        correlation_id: Optional[UUID],
    ) -> FilterSpec:
        try:
            return parse_filter_spec(filters)
        except ValidationError as e:
            self._audit_logger.log_query_rejected(
                field_errors=e.field_errors,
                correlation_id=correlation_id,
            )
            raise

    async def _matching(self, spec: FilterSpec) -> list[ExpenseRecord]:
        snapshot = await self._storage.get_all()
        return apply_filters(snapshot, spec, self._today())

    async def execute(
        self,
        filters: FilterInput = None,
        correlation_id: Optional[UUID] = None,
    ) -> QueryResult:
        """
        Return one page of records matching the filters.

        Raises:
            ValidationError: Malformed criteria (checked before any store access)
            StorageError: The snapshot could not be read
        """
        spec = self._parse(filters, correlation_id)
        matching = await self._matching(spec)

        total_count = len(matching)
        page = matching[spec.offset:spec.offset + spec.limit]

        self._audit_logger.log_query_executed(
            total_count=total_count,
            returned=len(page),
            filters=spec.model_dump(mode="json"),
            correlation_id=correlation_id,
        )

        return QueryResult(
            records=page,
            total_count=total_count,
            has_more=spec.offset + spec.limit < total_count,
            offset=spec.offset,
            limit=spec.limit,
        )

    async def get(self, expense_id: str) -> ExpenseRecord:
        """
        Read a single expense by id.

        Raises:
            NotFoundError: No expense with this id
        """
        return await self._storage.get(expense_id)

    async def count(self, filters: FilterInput = None) -> int:
        """Number of matches, ignoring pagination."""
        spec = self._parse(filters, None)
        return len(await self._matching(spec))

    async def all_matching(self, filters: FilterInput = None) -> list[ExpenseRecord]:
        """Every match, filtered and sorted, ignoring limit and offset."""
        spec = self._parse(filters, None)
        return await self._matching(spec)
