"""
Audit Models for the Expense Tracker

Every mutation outcome, query execution and storage failure produces an
AuditEvent. Events are emitted as structured log lines; they are not
persisted next to the expense records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Mutations
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    VALIDATION_FAILED = "validation_failed"
    EXPENSE_NOT_FOUND = "expense_not_found"
    STORAGE_FAILED = "storage_failed"
    LISTENER_FAILED = "listener_failed"

    # Reads
    QUERY_EXECUTED = "query_executed"
    QUERY_REJECTED = "query_rejected"

    # Store lifecycle
    STORE_OPENED = "store_opened"
    SCHEMA_UPGRADED = "schema_upgraded"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'query', 'store')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one user action)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(expense_id, "Comida", "12.50")
        event = AuditEventBuilder.validation_failed("create", field_errors)
    """

    @staticmethod
    def expense_created(
        expense_id: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense created: {category} - {amount}",
            details={
                "category": category,
                "amount": amount,
            },
        )

    @staticmethod
    def expense_updated(
        expense_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense updated: {', '.join(changed_fields)}",
            details={
                "changed_fields": changed_fields,
            },
        )

    @staticmethod
    def expense_deleted(
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Expense permanently deleted",
        )

    @staticmethod
    def validation_failed(
        operation: str,
        field_errors: dict[str, list[str]],
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=(
                f"{operation.capitalize()} rejected with "
                f"{len(field_errors)} invalid field(s)"
            ),
            details={
                "operation": operation,
                "field_errors": field_errors,
            },
            error_code="EXPENSE_VALIDATION_ERROR",
        )

    @staticmethod
    def expense_not_found(
        operation: str,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Cannot {operation}: expense does not exist",
            details={
                "operation": operation,
            },
            error_code="EXPENSE_NOT_FOUND",
        )

    @staticmethod
    def storage_failed(
        operation: str,
        error_message: str,
        reason: Optional[str] = None,
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Storage {operation} failed",
            details={
                "operation": operation,
                "reason": reason,
            },
            error_code="STORAGE_ERROR",
            error_message=error_message,
        )

    @staticmethod
    def listener_failed(
        kind: str,
        expense_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LISTENER_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Change listener failed after {kind}",
            details={
                "kind": kind,
            },
            error_message=error_message,
        )

    @staticmethod
    def query_executed(
        total_count: int,
        returned: int,
        filters: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="query",
            correlation_id=correlation_id,
            description=f"Query matched {total_count} expenses, returned {returned}",
            details={
                "total_count": total_count,
                "returned": returned,
                "filters": filters,
            },
        )

    @staticmethod
    def query_rejected(
        field_errors: dict[str, list[str]],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="query",
            correlation_id=correlation_id,
            description="Query rejected before scanning: invalid filters",
            details={
                "field_errors": field_errors,
            },
            error_code="EXPENSE_VALIDATION_ERROR",
        )

    @staticmethod
    def store_opened(
        location: str,
        schema_version: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_OPENED,
            entity_type="store",
            entity_id=location,
            description=f"Expense store opened at schema version {schema_version}",
            details={
                "schema_version": schema_version,
            },
        )


    @staticmethod
    def schema_upgraded(
        location: str,
        from_version: int,
        to_version: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEMA_UPGRADED,
            entity_type="store",
            entity_id=location,
            description=f"Expense store upgraded from schema {from_version} to {to_version}",
            details={
                "from_version": from_version,
                "to_version": to_version,
            },
        )
