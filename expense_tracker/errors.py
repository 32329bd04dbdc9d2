"""
Error Taxonomy for the Expense Tracker

Every failure the engine surfaces is an ExpenseError subclass:

- NotFoundError: the operation targets an id that does not exist
- ValidationError: one or more field-level violations (field -> messages)
- StorageError: open/read/write/delete failure, tagged with the operation
  and, when known, a reason (quota exceeded, blocked, unsupported)
- DuplicateIdError: id collision on insert; treated as fatal

Callers need to tell "nothing was saved" apart from "a write was attempted
and failed". ``write_attempted`` answers that for every error.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError


ROOT_FIELD = "__root__"


class StorageOperation(str, Enum):
    """Storage operation that failed."""
    OPEN = "open"
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class StorageFailureReason(str, Enum):
    """Known causes of a storage failure."""
    QUOTA_EXCEEDED = "quota_exceeded"
    BLOCKED = "blocked"
    UNSUPPORTED = "unsupported"


class ExpenseError(Exception):
    """Base exception for all expense engine errors."""

    write_attempted = False

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}


class NotFoundError(ExpenseError):
    """The requested expense does not exist."""

    def __init__(self, record_id: str, context: Optional[dict[str, Any]] = None):
        super().__init__(
            f'Expense with ID "{record_id}" not found',
            "EXPENSE_NOT_FOUND",
            {"record_id": record_id, **(context or {})},
        )
        self.record_id = record_id


class ValidationError(ExpenseError):
    """
    Expense data failed validation.

    Carries every offending field with its messages. Nothing was written.
    """

    def __init__(
        self,
        field_errors: dict[str, list[str]],
        message: str = "Validation failed",
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            "EXPENSE_VALIDATION_ERROR",
            {"field_errors": field_errors, **(context or {})},
        )
        self.field_errors = field_errors

    def get_field_errors(self, field: str) -> list[str]:
        return self.field_errors.get(field, [])

    def has_field_error(self, field: str) -> bool:
        return field in self.field_errors

    def all_messages(self) -> list[str]:
        return [
            message
            for messages in self.field_errors.values()
            for message in messages
        ]


class StorageError(ExpenseError):
    """
    The embedded store could not complete an operation.

    The original driver exception is chained as ``__cause__`` and kept on
    ``original_error``.
    """

    def __init__(
        self,
        message: str,
        operation: StorageOperation,
        reason: Optional[StorageFailureReason] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            "STORAGE_ERROR",
            {
                "operation": operation.value,
                "reason": reason.value if reason else None,
                "original_error": str(original_error) if original_error else None,
                **(context or {}),
            },
        )
        self.operation = operation
        self.reason = reason
        self.original_error = original_error

    @property
    def write_attempted(self) -> bool:
        return self.operation in (StorageOperation.WRITE, StorageOperation.DELETE)

    def is_quota_exceeded(self) -> bool:
        return self.reason == StorageFailureReason.QUOTA_EXCEEDED

    def is_blocked(self) -> bool:
        return self.reason == StorageFailureReason.BLOCKED

    def is_not_supported(self) -> bool:
        return self.reason == StorageFailureReason.UNSUPPORTED


class DuplicateIdError(StorageError):
    """An expense with this id already exists. Should never happen."""

    def __init__(self, record_id: str):
        super().__init__(
            f'Expense with ID "{record_id}" already exists',
            StorageOperation.WRITE,
            context={"record_id": record_id},
        )
        self.code = "DUPLICATE_ID"
        self.record_id = record_id


def from_pydantic_error(
    error: PydanticValidationError,
    message: str = "Validation failed",
) -> ValidationError:
    """
    Convert a pydantic ValidationError into the engine's ValidationError.

    Errors are keyed by top-level field name. Model-level errors land under
    ``__root__``.
    """
    field_errors: dict[str, list[str]] = {}

    for issue in error.errors():
        loc = issue.get("loc") or ()
        field = str(loc[0]) if loc else ROOT_FIELD
        messages = field_errors.setdefault(field, [])
        if issue["msg"] not in messages:
            messages.append(issue["msg"])

    return ValidationError(field_errors, message=message)


def user_friendly_message(error: BaseException) -> str:
    """
    Render an error as a short message for display.
    """
    if isinstance(error, NotFoundError):
        return "The expense was not found. It may have been deleted."

    if isinstance(error, ValidationError):
        messages = error.all_messages()
        return messages[0] if messages else "The data entered is not valid."

    if isinstance(error, StorageError):
        if error.is_quota_exceeded():
            return "Storage is full. Please delete some old expenses."
        if error.is_not_supported():
            return "Offline storage is not available on this device."
        if error.is_blocked():
            return "The database is in use by another session. Close it and try again."
        return "Could not access local storage. Please try again."

    if isinstance(error, ExpenseError):
        return error.message

    return "An unexpected error occurred. Please try again."
