"""
Data Models Package

This package contains all Pydantic models used by the expense tracker.
All data flowing through the engine must conform to these schemas.
"""

from expense_tracker.models.expense import (
    EXPENSE_CATEGORIES,
    CategorySummary,
    ChangeKind,
    ChartMode,
    ChartPoint,
    CreateExpenseInput,
    ExpenseCategory,
    ExpenseRecord,
    ExpenseSummary,
    FilterSpec,
    MonthlyMetrics,
    QueryResult,
    RecordChange,
    SortField,
    SortOrder,
    TopCategory,
    UpdateExpenseInput,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "EXPENSE_CATEGORIES",
    "CategorySummary",
    "ChangeKind",
    "ChartMode",
    "ChartPoint",
    "CreateExpenseInput",
    "ExpenseCategory",
    "ExpenseRecord",
    "ExpenseSummary",
    "FilterSpec",
    "MonthlyMetrics",
    "QueryResult",
    "RecordChange",
    "SortField",
    "SortOrder",
    "TopCategory",
    "UpdateExpenseInput",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
