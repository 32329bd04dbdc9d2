"""
Core Data Models for the Expense Tracker

These models define the strict schemas for all data flowing through the
engine. ExpenseRecord is the only persisted entity; every other model here
is transient (inputs, filters, query results and derived aggregates).

Business rules enforced at the schema level:
- description: trimmed, 3-200 characters, whitespace-only counts as missing
- amount: > 0, at most 2 decimal places, at most 999,999,999.99
- category: one of the 7 fixed labels
- transaction_date: not before 1900-01-01, not after "today"

NOTE: "today" is not read from the system clock here. It is supplied via
the pydantic validation context (``context={"today": ...}``) by the
Validator. Records loaded back from storage are validated without it.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    model_validator,
)
from pydantic_core import PydanticCustomError


# =============================================================================
# CONSTANTS
# =============================================================================

DESCRIPTION_MIN_LENGTH = 3
DESCRIPTION_MAX_LENGTH = 200
MAX_AMOUNT = Decimal("999999999.99")
CENT = Decimal("0.01")
MIN_TRANSACTION_DATE = date(1900, 1, 1)
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    The labels are the stored values. Alphabetical tie-breaks in the
    aggregations compare these labels.
    """
    COMIDA = "Comida"
    TRANSPORTE = "Transporte"
    ENTRETENIMIENTO = "Entretenimiento"
    SALUD = "Salud"
    COMPRAS = "Compras"
    SERVICIOS = "Servicios"
    OTROS = "Otros"


EXPENSE_CATEGORIES: tuple[ExpenseCategory, ...] = tuple(ExpenseCategory)


class SortField(str, Enum):
    """Fields a query result can be sorted by."""
    DATE = "date"
    AMOUNT = "amount"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    """Sort direction."""
    ASC = "asc"
    DESC = "desc"


class ChartMode(str, Enum):
    """Grouping used by the chart aggregator."""
    BY_DAY = "day"
    BY_CATEGORY = "category"


class ChangeKind(str, Enum):
    """Kind of committed mutation reported to change listeners."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


# =============================================================================
# FIELD VALIDATORS - shared by the record and the input models
# =============================================================================

def _normalize_description(value: Any) -> str:
    """Trim the description, then apply the required/length rules."""
    if not isinstance(value, str) or not value.strip():
        raise PydanticCustomError(
            "description_required",
            "Description is required",
        )
    trimmed = value.strip()
    if len(trimmed) < DESCRIPTION_MIN_LENGTH:
        raise PydanticCustomError(
            "description_too_short",
            "Description must be at least {min_length} characters",
            {"min_length": DESCRIPTION_MIN_LENGTH},
        )
    if len(trimmed) > DESCRIPTION_MAX_LENGTH:
        raise PydanticCustomError(
            "description_too_long",
            "Description cannot exceed {max_length} characters",
            {"max_length": DESCRIPTION_MAX_LENGTH},
        )
    return trimmed


def _parse_amount(value: Any) -> Decimal:
    """
    Convert the raw amount to an exact Decimal and check it.

    Floats are read through their shortest repr, so 25.5 is 25.5 and not
    the binary approximation. More than 2 decimal places is rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("amount_required", "Amount is required")
    if isinstance(value, bool):
        raise PydanticCustomError("amount_type", "Amount must be a number")

    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, float):
            amount = Decimal(repr(value))
        elif isinstance(value, (int, str)):
            amount = Decimal(str(value).strip())
        else:
            raise PydanticCustomError("amount_type", "Amount must be a number")
    except InvalidOperation:
        raise PydanticCustomError("amount_type", "Amount must be a number")

    if not amount.is_finite():
        raise PydanticCustomError("amount_type", "Amount must be a number")
    if amount <= 0:
        raise PydanticCustomError(
            "amount_not_positive",
            "Amount must be greater than 0",
        )
    if amount > MAX_AMOUNT:
        raise PydanticCustomError(
            "amount_too_large",
            "Amount exceeds the allowed limit",
        )
    if amount != amount.quantize(CENT):
        raise PydanticCustomError(
            "amount_precision",
            "Amount must have at most 2 decimal places",
        )
    return amount.quantize(CENT)


def _parse_category(value: Any) -> ExpenseCategory:
    try:
        return ExpenseCategory(value)
    except ValueError:
        raise PydanticCustomError("category_invalid", "Select a valid category")


def _parse_date(value: Any) -> date:
    """Accept a date, a datetime or an ISO 8601 date/datetime string."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("date_required", "Date is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise PydanticCustomError("date_invalid", "Select a valid date")


def _parse_range_bound(value: Any) -> Optional[date]:
    """Filter bounds are optional; an ISO instant is cut to its date."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _parse_date(value)


def _check_date_bounds(value: date, info: ValidationInfo) -> date:
    if value < MIN_TRANSACTION_DATE:
        raise PydanticCustomError(
            "date_too_old",
            "Date cannot be before {min_date}",
            {"min_date": MIN_TRANSACTION_DATE.isoformat()},
        )
    today = (info.context or {}).get("today")
    if today is not None and value > today:
        raise PydanticCustomError("date_in_future", "Date cannot be in the future")
    return value


Description = Annotated[str, BeforeValidator(_normalize_description)]
Amount = Annotated[Decimal, BeforeValidator(_parse_amount)]
Category = Annotated[ExpenseCategory, BeforeValidator(_parse_category)]
TransactionDate = Annotated[
    date,
    BeforeValidator(_parse_date),
    AfterValidator(_check_date_bounds),
]
RangeBound = Annotated[Optional[date], BeforeValidator(_parse_range_bound)]


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class ExpenseRecord(BaseModel):
    """
    A single persisted expense.

    CRITICAL: Records are created and changed only through the
    MutationPipeline. Everything else works on copies read from storage.
    """
    model_config = ConfigDict(extra="ignore")

    # Identity
    id: str = Field(
        ...,
        min_length=1,
        description="Opaque unique identifier (uuid4 text)"
    )

    description: Description = Field(
        ...,
        description="What the money was spent on"
    )
    amount: Amount = Field(
        ...,
        description="Positive amount with at most 2 decimal places"
    )
    category: Category = Field(
        ...,
        description="One of the fixed expense categories"
    )
    transaction_date: TransactionDate = Field(
        ...,
        description="Calendar date of the expense"
    )

    # Timestamps
    created_at: datetime = Field(
        ...,
        description="Set once at creation"
    )
    updated_at: datetime = Field(
        ...,
        description="Refreshed on every update"
    )

    @model_validator(mode="after")
    def validate_timestamps(self) -> "ExpenseRecord":
        """updated_at can never precede created_at."""
        if self.updated_at < self.created_at:
            raise PydanticCustomError(
                "timestamps_inconsistent",
                "updated_at cannot be before created_at",
            )
        return self


class CreateExpenseInput(BaseModel):
    """Fields a caller supplies to create an expense."""
    model_config = ConfigDict(extra="forbid")

    description: Description
    amount: Amount
    category: Category
    transaction_date: TransactionDate


class UpdateExpenseInput(BaseModel):
    """
    Partial update payload.

    Only the provided fields are merged over the existing record.
    Identity and timestamps cannot be changed through an update.
    """
    model_config = ConfigDict(extra="forbid")

    description: Optional[Description] = None
    amount: Optional[Amount] = None
    category: Optional[Category] = None
    transaction_date: Optional[TransactionDate] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "UpdateExpenseInput":
        if not self.changes():
            raise PydanticCustomError(
                "update_empty",
                "Provide at least one field to update",
            )
        return self

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller actually provided."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


# =============================================================================
# QUERY MODELS
# =============================================================================

class FilterSpec(BaseModel):
    """
    Filter, sort and pagination criteria for one query.

    Constructed once per query and immutable afterwards. An inverted date
    range is rejected here, before any storage access.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    categories: frozenset[ExpenseCategory] = Field(
        default_factory=frozenset,
        description="Categories to keep (OR). Empty means all categories."
    )
    date_from: RangeBound = Field(
        default=None,
        description="Inclusive lower bound on transaction_date"
    )
    date_to: RangeBound = Field(
        default=None,
        description="Inclusive upper bound on transaction_date"
    )
    search_text: str = Field(
        default="",
        description="Case-insensitive substring searched in descriptions"
    )
    sort_field: SortField = SortField.DATE
    sort_order: SortOrder = SortOrder.DESC
    limit: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
    )
    offset: int = Field(
        default=0,
        ge=0,
    )

    @model_validator(mode="after")
    def validate_date_range(self) -> "FilterSpec":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise PydanticCustomError(
                "date_range_inverted",
                "date_to cannot be before date_from",
            )
        return self

    @property
    def normalized_search(self) -> str:
        return self.search_text.strip().lower()

    def resolve_date_range(
        self,
        today: date,
    ) -> tuple[Optional[date], Optional[date]]:
        """
        Return the effective inclusive date bounds.

        With neither bound given, the range is Jan 1 - Dec 31 of the
        year of ``today``. A single bound is kept as-is.
        """
        if self.date_from is None and self.date_to is None:
            return date(today.year, 1, 1), date(today.year, 12, 31)
        return self.date_from, self.date_to


class QueryResult(BaseModel):
    """One page of query results plus pagination metadata."""

    records: list[ExpenseRecord] = Field(default_factory=list)
    total_count: int = Field(
        ge=0,
        description="Matches after filtering, before pagination"
    )
    has_more: bool
    offset: int = Field(ge=0)
    limit: int = Field(ge=1)


# =============================================================================
# AGGREGATE MODELS
# =============================================================================

class TopCategory(BaseModel):
    """Category with the highest spend in a period."""

    name: ExpenseCategory
    amount: Decimal


class MonthlyMetrics(BaseModel):
    """
    Summary statistics for one calendar month.

    Derived on demand, never persisted.
    """

    total_spent: Decimal = Decimal("0")
    average_daily_spend: Decimal = Decimal("0")
    top_category: Optional[TopCategory] = None
    transaction_count: int = Field(default=0, ge=0)


class ExpenseSummary(BaseModel):
    """Totals and spread over an arbitrary set of records."""

    total: Decimal = Decimal("0")
    count: int = 0
    average: Decimal = Decimal("0")
    min: Decimal = Decimal("0")
    max: Decimal = Decimal("0")


class CategorySummary(BaseModel):
    """Spend for one category within a record set."""

    category: ExpenseCategory
    total: Decimal
    count: int
    percentage: Decimal = Field(
        ...,
        description="Share of the set's total, 0-100"
    )


class ChartPoint(BaseModel):
    """A single chart-ready data point."""
    model_config = ConfigDict(frozen=True)

    label: str
    amount: Decimal


class RecordChange(BaseModel):
    """Notification sent to change listeners after a committed mutation."""

    kind: ChangeKind
    record_id: str
    record: Optional[ExpenseRecord] = Field(
        default=None,
        description="The record as committed. None for deletions."
    )
