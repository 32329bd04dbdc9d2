"""
Two-Stage Expense Validation

STAGE 1 - INPUT VALIDATION:
- The caller's payload against CreateExpenseInput / UpdateExpenseInput
- Unknown fields, missing fields, per-field rules
- An update must carry at least one field

STAGE 2 - RECORD VALIDATION:
- The complete candidate record (input merged with identity, timestamps
  and, for updates, the existing record) against ExpenseRecord
- Cross-field rules (updated_at >= created_at)

Both stages share the same "today" reference, so a future transaction_date
is rejected consistently.

IMPORTANT: Validation NEVER silently fixes issues. Amounts with more than
2 decimal places are rejected, not rounded. The only normalizations are
trimming the description and writing amounts with exactly 2 places.
The caller's payload is never mutated.
"""

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.errors import ROOT_FIELD, ValidationError, from_pydantic_error
from expense_tracker.models.expense import (
    CreateExpenseInput,
    ExpenseRecord,
    UpdateExpenseInput,
)


Payload = Union[Mapping[str, Any], BaseModel]


class ExpenseValidator:
    """
    Validates expense payloads before they reach the store.

    Returns normalized ExpenseRecord objects or raises ValidationError with
    a field -> messages map covering every offending field.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        """
        Initialize validator.

        Args:
            today: Returns the reference day for the "not in the future"
                   rule. Defaults to the local calendar day.
        """
        self._today = today or date.today

    def _context(self) -> dict[str, Any]:
        return {"today": self._today()}

    @staticmethod
    def _as_dict(payload: Payload) -> dict[str, Any]:
        """Copy the payload into a plain dict without touching the original."""
        if isinstance(payload, BaseModel):
            return payload.model_dump(exclude_unset=True)
        if isinstance(payload, Mapping):
            return dict(payload)
        raise ValidationError(
            {ROOT_FIELD: ["Expense data must be an object"]},
        )

    def validate_record(self, candidate: Mapping[str, Any]) -> ExpenseRecord:
        """
        Stage 2: validate a complete candidate record.

        Raises:
            ValidationError: If any field or cross-field rule fails
        """
        try:
            return ExpenseRecord.model_validate(dict(candidate), context=self._context())
        except PydanticValidationError as e:
            raise from_pydantic_error(e) from None

    def validate_create(
        self,
        payload: Payload,
        *,
        record_id: str,
        now: datetime,
    ) -> ExpenseRecord:
        """
        Validate a creation payload and build the record to insert.

        Args:
            payload: description, amount, category and transaction_date
            record_id: Freshly generated id
            now: Creation timestamp, used for created_at and updated_at

        Raises:
            ValidationError: If the payload is invalid
        """
        data = self._as_dict(payload)

        try:
            validated = CreateExpenseInput.model_validate(data, context=self._context())
        except PydanticValidationError as e:
            raise from_pydantic_error(e) from None

        return self.validate_record({
            **validated.model_dump(),
            "id": record_id,
            "created_at": now,
            "updated_at": now,
        })

    def validate_update(
        self,
        existing: ExpenseRecord,
        payload: Payload,
        *,
        now: datetime,
    ) -> tuple[ExpenseRecord, list[str]]:
        """
        Validate a partial update and merge it over the existing record.

        Returns:
            (merged_record, changed_field_names)

        Raises:
            ValidationError: If the payload or the merged record is invalid
        """
        data = self._as_dict(payload)

        try:
            validated = UpdateExpenseInput.model_validate(data, context=self._context())
        except PydanticValidationError as e:
            raise from_pydantic_error(e) from None

        changes = validated.changes()
        merged = {
            **existing.model_dump(),
            **changes,
            "updated_at": now,
        }
        return self.validate_record(merged), sorted(changes)
