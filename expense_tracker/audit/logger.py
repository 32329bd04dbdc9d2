"""
Audit Logger

Every mutation outcome, query execution and storage failure in the engine
is logged as a structured event. This provides:
1. Traceability of every change to the expense records
2. Debugging capability
3. A clear record of failed writes versus rejected input

The audit logger only writes structured log lines. It never raises: a
logging problem must not turn a committed mutation into a failure.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structured logs to stderr at the given level.

    Call once from the host application. Library code only calls
    ``structlog.get_logger``.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log, one ``audit_event`` line per
    event, at the level matching the event severity.
    """

    def __init__(self, logger_name: str = "expense_tracker.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        log_dict = event.to_log_dict()

        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except (TypeError, ValueError) as e:
            # Unserializable details; keep the event without them
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )

    def log_expense_created(
        self,
        expense_id: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed create."""
        self.log(AuditEventBuilder.expense_created(
            expense_id=expense_id,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_expense_updated(
        self,
        expense_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed update."""
        self.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    def log_expense_deleted(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed hard delete."""
        self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        operation: str,
        field_errors: dict[str, list[str]],
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log rejected input."""
        self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            field_errors=field_errors,
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    def log_not_found(
        self,
        operation: str,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.expense_not_found(
            operation=operation,
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    def log_storage_failed(
        self,
        operation: str,
        error_message: str,
        reason: Optional[str] = None,
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage operation."""
        self.log(AuditEventBuilder.storage_failed(
            operation=operation,
            error_message=error_message,
            reason=reason,
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    def log_listener_failed(
        self,
        kind: str,
        expense_id: str,
        error_message: str,
    ) -> None:
        self.log(AuditEventBuilder.listener_failed(
            kind=kind,
            expense_id=expense_id,
            error_message=error_message,
        ))

    def log_query_executed(
        self,
        total_count: int,
        returned: int,
        filters: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log query execution."""
        self.log(AuditEventBuilder.query_executed(
            total_count=total_count,
            returned=returned,
            filters=filters,
            correlation_id=correlation_id,
        ))

    def log_query_rejected(
        self,
        field_errors: dict[str, list[str]],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.query_rejected(
            field_errors=field_errors,
            correlation_id=correlation_id,
        ))

    def log_store_opened(self, location: str, schema_version: int) -> None:
        self.log(AuditEventBuilder.store_opened(
            location=location,
            schema_version=schema_version,
        ))

    def log_schema_upgraded(
        self,
        location: str,
        from_version: int,
        to_version: int,
    ) -> None:
        """Log a committed schema upgrade."""
        self.log(AuditEventBuilder.schema_upgraded(
            location=location,
            from_version=from_version,
            to_version=to_version,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action and pass it through all
    subsequent operations.
    """
    return uuid4()
