"""
Mutation Pipeline

The only path by which expense records are created, changed or removed.

Flow for every mutation:
1. Pre-checks (existence for update/delete)
2. Validation (nothing is written if it fails)
3. Commit through the Record Store (one atomic operation)
4. Audit log + change notification

CRITICAL: Callers must re-query to observe the effect of a mutation. The
pipeline pushes nothing into existing query results. Components that want
to react to changes register a listener with ``subscribe``; listeners run
only after a successful commit and can never undo it.

Failures fall in two groups the caller must handle differently:
- ValidationError / NotFoundError: nothing was saved
- StorageError: a write was attempted and failed
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel

from expense_tracker.audit import AuditLogger
from expense_tracker.errors import (
    ExpenseError,
    NotFoundError,
    StorageError,
    StorageOperation,
    ValidationError,
)
from expense_tracker.models.expense import (
    ChangeKind,
    ExpenseRecord,
    RecordChange,
)
from expense_tracker.services.storage import ExpenseStorageInterface
from expense_tracker.validation import ExpenseValidator


ChangeListener = Callable[[RecordChange], None]
Payload = Union[dict[str, Any], BaseModel]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class MutationPipeline:
    """
    Orchestrates create / update / delete of expense records.

    The store handle is injected; the pipeline never opens storage on its
    own. The clock and id factory are injectable for deterministic tests.
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._storage = storage
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock
        self._id_factory = id_factory
        self._listeners: list[ChangeListener] = []

    # -------------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a callback invoked after every committed mutation.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: RecordChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                # The commit already happened; report and carry on
                self._audit_logger.log_listener_failed(
                    kind=change.kind.value,
                    expense_id=change.record_id,
                    error_message=str(e),
                )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _commit(
        self,
        operation: StorageOperation,
        write: Callable[[], Any],
        expense_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """
        Run a store write, logging failures.

        Driver errors that escaped the store untranslated are wrapped as
        StorageError so callers always see "write attempted and failed".
        """
        try:
            await write()
        except StorageError as e:
            self._audit_logger.log_storage_failed(
                operation=e.operation.value,
                error_message=e.message,
                reason=e.reason.value if e.reason else None,
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
            raise
        except ExpenseError:
            raise
        except Exception as e:
            self._audit_logger.log_storage_failed(
                operation=operation.value,
                error_message=str(e),
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
            raise StorageError(
                f"Failed to {operation.value} expense: {e}",
                operation,
                original_error=e,
                context={"record_id": expense_id},
            ) from e

    async def _fetch_existing(
        self,
        expense_id: str,
        operation: str,
        correlation_id: Optional[UUID],
    ) -> ExpenseRecord:
        try:
            return await self._storage.get(expense_id)
        except NotFoundError:
            self._audit_logger.log_not_found(
                operation=operation,
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
            raise

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(
        self,
        payload: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        """
        Create a new expense.

        Generates the id and timestamps, validates, then inserts.

        Returns:
            The committed record

        Raises:
            ValidationError: Invalid input, nothing was written
            StorageError: The insert was attempted and failed
        """
        now = self._clock()
        expense_id = self._id_factory()

        try:
            record = self._validator.validate_create(
                payload,
                record_id=expense_id,
                now=now,
            )
        except ValidationError as e:
            self._audit_logger.log_validation_failed(
                operation="create",
                field_errors=e.field_errors,
                correlation_id=correlation_id,
            )
            raise

        await self._commit(
            StorageOperation.WRITE,
            lambda: self._storage.add(record),
            expense_id,
            correlation_id,
        )

        self._audit_logger.log_expense_created(
            expense_id=record.id,
            category=record.category.value,
            amount=str(record.amount),
            correlation_id=correlation_id,
        )
        self._notify(RecordChange(
            kind=ChangeKind.CREATED,
            record_id=record.id,
            record=record,
        ))
        return record

    async def update(
        self,
        expense_id: str,
        payload: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseRecord:
        """
        Apply a partial update to an existing expense.

        The provided fields are shallow-merged over the stored record, the
        merged record is fully re-validated and ``updated_at`` is refreshed.

        Raises:
            NotFoundError: No expense with this id, nothing was written
            ValidationError: Invalid input, nothing was written
            StorageError: The write was attempted and failed
        """
        existing = await self._fetch_existing(expense_id, "update", correlation_id)

        try:
            record, changed = self._validator.validate_update(
                existing,
                payload,
                now=self._clock(),
            )
        except ValidationError as e:
            self._audit_logger.log_validation_failed(
                operation="update",
                field_errors=e.field_errors,
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
            raise

        await self._commit(
            StorageOperation.WRITE,
            lambda: self._storage.put(record),
            expense_id,
            correlation_id,
        )

        self._audit_logger.log_expense_updated(
            expense_id=expense_id,
            changed_fields=changed,
            correlation_id=correlation_id,
        )
        self._notify(RecordChange(
            kind=ChangeKind.UPDATED,
            record_id=expense_id,
            record=record,
        ))
        return record

    async def delete(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Permanently delete an expense. There is no recovery.

        Raises:
            NotFoundError: No expense with this id
            StorageError: The delete was attempted and failed
        """
        await self._fetch_existing(expense_id, "delete", correlation_id)

        await self._commit(
            StorageOperation.DELETE,
            lambda: self._storage.delete(expense_id),
            expense_id,
            correlation_id,
        )

        self._audit_logger.log_expense_deleted(
            expense_id=expense_id,
            correlation_id=correlation_id,
        )
        self._notify(RecordChange(
            kind=ChangeKind.DELETED,
            record_id=expense_id,
        ))
