"""
Main Orchestrator for the Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Mutations (payload → validate → commit → audit → notify)
2. Queries (filters → snapshot → filter/sort/paginate)
3. Dashboard figures (snapshot → monthly metrics / chart series)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Records change only through the MutationPipeline
- Every query and aggregate reads a fresh snapshot from the store
- Every step is audited

It is also the only place that retries anything: opening the store is
retried with tenacity when the file is temporarily locked. Validation
failures and failed writes are never retried.
"""

from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.analytics import ChartAggregator, MetricsAggregator
from expense_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from expense_tracker.config import Settings, get_settings
from expense_tracker.errors import StorageError, StorageFailureReason, StorageOperation
from expense_tracker.models.expense import (
    DEFAULT_PAGE_SIZE,
    ChartMode,
    ChartPoint,
    ExpenseRecord,
    FilterSpec,
    MonthlyMetrics,
    QueryResult,
)
from expense_tracker.mutations import ChangeListener, MutationPipeline
from expense_tracker.queries import FilterState, QueryEngine
from expense_tracker.services.storage import (
    ExpenseStorageInterface,
    SQLiteExpenseStorage,
)
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

Payload = Union[dict[str, Any], BaseModel]
FilterInput = Union[FilterSpec, dict[str, Any], None]


def _is_retryable_open_failure(error: BaseException) -> bool:
    """Only a locked/busy store is worth another open attempt."""
    return (
        isinstance(error, StorageError)
        and error.operation == StorageOperation.OPEN
        and error.reason != StorageFailureReason.UNSUPPORTED
    )


def open_with_retry(
    storage: SQLiteExpenseStorage,
    attempts: int = 3,
    wait_seconds: float = 0.5,
) -> int:
    """
    Open the store, retrying transient open failures.

    Returns:
        The schema version of the opened store

    Raises:
        StorageError: The last failure once attempts are exhausted, or the
                      first failure that retrying cannot fix
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=wait_seconds, max=wait_seconds * 8),
        retry=retry_if_exception(_is_retryable_open_failure),
        before_sleep=lambda state: logger.warning(
            "expense_store_open_retry",
            attempt=state.attempt_number,
            location=storage.location,
        ),
        reraise=True,
    )
    return retrying(storage.open)


class ExpenseTracker:
    """
    Facade over the engine components.

    Mutations go through the pipeline; reads always take a new snapshot.
    A result obtained before a mutation is not updated by it, so callers
    re-query (or subscribe) after changing data.
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        pipeline: MutationPipeline,
        queries: QueryEngine,
        metrics: MetricsAggregator,
        charts: ChartAggregator,
        page_size: int = DEFAULT_PAGE_SIZE,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.pipeline = pipeline
        self.queries = queries
        self.metrics = metrics
        self.charts = charts
        self.filters = FilterState()
        self._page_size = page_size
        self._now = now

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_expense(
        self,
        payload: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        return await self.pipeline.create(
            payload,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def update_expense(
        self,
        expense_id: str,
        payload: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        return await self.pipeline.update(
            expense_id,
            payload,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def delete_expense(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.pipeline.delete(
            expense_id,
            correlation_id=correlation_id or create_correlation_id(),
        )

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self.pipeline.subscribe(listener)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_expense(self, expense_id: str) -> ExpenseRecord:
        return await self.queries.get(expense_id)

    async def list_expenses(
        self,
        filters: FilterInput = None,
        correlation_id: Optional[UUID] = None,
    ) -> QueryResult:
        """
        Run a query. Without explicit filters the current FilterState is used.
        """
        if filters is None:
            filters = self.filters.to_filter_spec(limit=self._page_size)
        return await self.queries.execute(filters, correlation_id=correlation_id)

    async def monthly_metrics(self, now: Optional[datetime] = None) -> MonthlyMetrics:
        """Metrics for the month of ``now`` (defaults to the current moment)."""
        return await self.metrics.monthly_metrics(now or self._now())

    async def chart(
        self,
        mode: ChartMode,
        filters: FilterInput = None,
    ) -> Iterator[ChartPoint]:
        """
        Chart series over every record matching the filters.

        Without explicit filters the current FilterState is used.
        """
        if filters is None:
            filters = self.filters.to_filter_spec()
        records = await self.queries.all_matching(filters)
        return self.charts.aggregate(records, mode)

    async def close(self) -> None:
        await self.storage.close()


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[ExpenseStorageInterface] = None,
) -> ExpenseTracker:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; defaults to get_settings()
        storage: Pre-built store. When omitted a SQLite store is created
                 from the storage settings and opened with retry.

    Returns:
        A ready-to-use ExpenseTracker

    Raises:
        StorageError: If the store cannot be opened
    """
    settings = settings or get_settings()
    app_settings = settings.app
    storage_settings = settings.storage

    configure_logging(app_settings.log_level)
    audit_logger = AuditLogger()

    if storage is None:
        storage = SQLiteExpenseStorage(
            path=storage_settings.path,
            busy_timeout_seconds=storage_settings.busy_timeout_seconds,
            audit_logger=audit_logger,
        )

    if isinstance(storage, SQLiteExpenseStorage) and not storage.is_open:
        try:
            version = open_with_retry(
                storage,
                attempts=storage_settings.open_retry_attempts,
                wait_seconds=storage_settings.open_retry_wait_seconds,
            )
        except StorageError as e:
            audit_logger.log_storage_failed(
                operation=e.operation.value,
                error_message=e.message,
                reason=e.reason.value if e.reason else None,
            )
            raise
        audit_logger.log_store_opened(storage.location, version)

    validator = ExpenseValidator()
    return ExpenseTracker(
        storage=storage,
        pipeline=MutationPipeline(storage, validator=validator, audit_logger=audit_logger),
        queries=QueryEngine(storage, audit_logger=audit_logger),
        metrics=MetricsAggregator(storage),
        charts=ChartAggregator(),
        page_size=app_settings.default_page_size,
    )
