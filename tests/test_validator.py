"""
Tests for the two-stage expense validator.

Boundary values come straight from the business rules: amounts must be
positive with at most 2 decimals, descriptions 3-200 characters after
trimming, dates between 1900-01-01 and today.
"""

import copy
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from expense_tracker.errors import ROOT_FIELD, ValidationError
from expense_tracker.models.expense import CreateExpenseInput, UpdateExpenseInput


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestValidateCreate:
    """Stage 1 + stage 2 for new expenses."""

    def test_valid_payload(self, validator, valid_payload):
        record = validator.validate_create(valid_payload, record_id="exp-1", now=NOW)
        assert record.id == "exp-1"
        assert record.amount == Decimal("45.90")
        assert record.created_at == record.updated_at == NOW

    def test_payload_not_mutated(self, validator, valid_payload):
        payload = {**valid_payload, "description": "  Groceries  "}
        snapshot = copy.deepcopy(payload)
        validator.validate_create(payload, record_id="exp-1", now=NOW)
        assert payload == snapshot

    def test_accepts_input_model(self, validator):
        payload = CreateExpenseInput(
            description="Pharmacy",
            amount="8.20",
            category="Salud",
            transaction_date=date(2025, 1, 2),
        )
        record = validator.validate_create(payload, record_id="exp-1", now=NOW)
        assert record.description == "Pharmacy"

    @pytest.mark.parametrize(
        "field,value,message",
        [
            ("amount", 0, "Amount must be greater than 0"),
            ("amount", -5, "Amount must be greater than 0"),
            ("amount", "12.345", "Amount must have at most 2 decimal places"),
            ("amount", "abc", "Amount must be a number"),
            ("amount", "1000000000.00", "Amount exceeds the allowed limit"),
            ("amount", None, "Amount is required"),
            ("description", "  ", "Description is required"),
            ("description", "ab", "Description must be at least 3 characters"),
            ("description", "x" * 201, "Description cannot exceed 200 characters"),
            ("category", "Rent", "Select a valid category"),
            ("transaction_date", "2025-01-16", "Date cannot be in the future"),
            ("transaction_date", "1899-12-31", "Date cannot be before 1900-01-01"),
            ("transaction_date", "yesterday", "Select a valid date"),
        ],
    )
    def test_rejected_values(self, validator, valid_payload, field, value, message):
        """Test each rejected boundary maps to its field and message."""
        payload = {**valid_payload, field: value}
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create(payload, record_id="exp-1", now=NOW)
        assert exc_info.value.get_field_errors(field) == [message]
        assert exc_info.value.write_attempted is False

    @pytest.mark.parametrize(
        "field,value",
        [
            ("amount", "0.01"),
            ("amount", "999999999.99"),
            ("description", "abc"),
            ("description", "x" * 200),
            ("transaction_date", "1900-01-01"),
            ("transaction_date", "2025-01-15"),
        ],
    )
    def test_accepted_boundaries(self, validator, valid_payload, field, value):
        payload = {**valid_payload, field: value}
        record = validator.validate_create(payload, record_id="exp-1", now=NOW)
        assert record.id == "exp-1"

    def test_missing_fields_reported(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create({}, record_id="exp-1", now=NOW)
        assert set(exc_info.value.field_errors) == {
            "description",
            "amount",
            "category",
            "transaction_date",
        }

    def test_non_mapping_rejected(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_create(["Groceries"], record_id="exp-1", now=NOW)
        assert exc_info.value.has_field_error(ROOT_FIELD)

    def test_today_is_injected(self, valid_payload):
        """Test that the reference day comes from the injected callable."""
        from expense_tracker.validation import ExpenseValidator

        late = ExpenseValidator(today=lambda: date(2025, 1, 9))
        with pytest.raises(ValidationError):
            late.validate_create(valid_payload, record_id="exp-1", now=NOW)


class TestValidateUpdate:
    """Partial updates merged over an existing record."""

    def test_merges_provided_fields(self, validator, make_record):
        existing = make_record(amount="12.50")
        later = NOW + timedelta(minutes=5)

        record, changed = validator.validate_update(
            existing, {"amount": "20"}, now=later,
        )

        assert record.amount == Decimal("20.00")
        assert record.description == existing.description
        assert record.created_at == existing.created_at
        assert record.updated_at == later
        assert changed == ["amount"]

    def test_empty_update_rejected(self, validator, make_record):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_update(make_record(), {}, now=NOW)
        assert "Provide at least one field to update" in exc_info.value.all_messages()

    def test_invalid_field_rejected(self, validator, make_record):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_update(make_record(), {"amount": "-1"}, now=NOW)
        assert exc_info.value.has_field_error("amount")

    def test_clock_going_backwards_rejected(self, validator, make_record):
        existing = make_record()
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_update(
                existing,
                {"description": "Dinner"},
                now=NOW - timedelta(days=1),
            )
        assert exc_info.value.has_field_error(ROOT_FIELD)

    def test_accepts_update_model(self, validator, make_record):
        record, changed = validator.validate_update(
            make_record(),
            UpdateExpenseInput(category="Otros"),
            now=NOW,
        )
        assert record.category.value == "Otros"
        assert changed == ["category"]
