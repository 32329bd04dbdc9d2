"""
SQLite Storage Implementation

Expenses live in a single local SQLite file, one row per record:

    expenses(id TEXT PRIMARY KEY, description, amount, category,
             transaction_date, created_at, updated_at)

with secondary indexes on transaction_date, category and created_at.
Amounts are stored as exact decimal text, dates and timestamps as ISO 8601.

The schema version is kept in ``PRAGMA user_version``. Opening the store
runs every pending upgrade step in one transaction; a step must preserve
existing rows. A file written by a newer version is refused.

Every write runs inside ``BEGIN IMMEDIATE ... COMMIT`` and is rolled back
as a unit on any failure. A locked database fails immediately (busy
timeout defaults to 0) and nothing is retried here.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.errors import (
    DuplicateIdError,
    NotFoundError,
    StorageError,
    StorageFailureReason,
    StorageOperation,
)
from expense_tracker.models.expense import ExpenseRecord
from expense_tracker.services.storage.interface import ExpenseStorageInterface


logger = structlog.get_logger(__name__)

TABLE_NAME = "expenses"

COLUMNS = [
    "id",
    "description",
    "amount",
    "category",
    "transaction_date",
    "created_at",
    "updated_at",
]


def _create_expenses_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            id TEXT PRIMARY KEY,
            description TEXT NOT NULL,
            amount TEXT NOT NULL,
            category TEXT NOT NULL,
            transaction_date TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        f"CREATE INDEX IF NOT EXISTS idx_expenses_transaction_date "
        f"ON {TABLE_NAME} (transaction_date)"
    )
    conn.execute(
        f"CREATE INDEX IF NOT EXISTS idx_expenses_category "
        f"ON {TABLE_NAME} (category)"
    )
    conn.execute(
        f"CREATE INDEX IF NOT EXISTS idx_expenses_created_at "
        f"ON {TABLE_NAME} (created_at)"
    )


# Upgrade step that brings a database *to* the given version.
MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _create_expenses_table,
}
SCHEMA_VERSION = 1


def _failure_reason(error: sqlite3.Error) -> Optional[StorageFailureReason]:
    """Classify a driver error into one of the known failure reasons."""
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        # extended result codes carry the primary code in the low byte
        code &= 0xFF
    message = str(error).lower()

    if code == getattr(sqlite3, "SQLITE_FULL", 13) or "disk is full" in message:
        return StorageFailureReason.QUOTA_EXCEEDED
    if code in (
        getattr(sqlite3, "SQLITE_BUSY", 5),
        getattr(sqlite3, "SQLITE_LOCKED", 6),
    ) or "locked" in message or "busy" in message:
        return StorageFailureReason.BLOCKED
    if (
        "unable to open" in message
        or "not a database" in message
        or "readonly" in message
    ):
        return StorageFailureReason.UNSUPPORTED
    return None


class SQLiteExpenseStorage(ExpenseStorageInterface):
    """
    SQLite implementation of the expense Record Store.

    One instance is one explicit store handle. Construct it once and pass
    it to the components that need it; tests create a fresh one per case.
    """

    def __init__(
        self,
        path: str = "expenses.db",
        busy_timeout_seconds: float = 0.0,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._path = path
        self._busy_timeout = busy_timeout_seconds
        self._audit_logger = audit_logger or AuditLogger()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def location(self) -> str:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> int:
        """
        Open the database file and apply pending upgrades.

        Returns the schema version the store is at.

        Raises:
            StorageError: tagged ``open`` if the file cannot be used
        """
        if self._conn is not None:
            return self.schema_version()

        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self._path,
                timeout=self._busy_timeout,
                isolation_level=None,
            )
        except (sqlite3.Error, OSError) as e:
            raise StorageError(
                f"Failed to open expense store: {e}",
                StorageOperation.OPEN,
                reason=StorageFailureReason.UNSUPPORTED,
                original_error=e,
                context={"path": self._path},
            ) from e

        conn.row_factory = sqlite3.Row
        try:
            if self._path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            version = self._upgrade(conn)
        except StorageError:
            conn.close()
            raise
        except sqlite3.Error as e:
            conn.close()
            raise StorageError(
                f"Failed to open expense store: {e}",
                StorageOperation.OPEN,
                reason=_failure_reason(e),
                original_error=e,
                context={"path": self._path},
            ) from e

        self._conn = conn
        logger.info("expense_store_opened", path=self._path, schema_version=version)
        return version

    def _upgrade(self, conn: sqlite3.Connection) -> int:
        conn.execute("BEGIN IMMEDIATE")
        try:
            current = conn.execute("PRAGMA user_version").fetchone()[0]
            if current > SCHEMA_VERSION:
                raise StorageError(
                    f"Expense store was written by a newer version "
                    f"(schema {current}, supported {SCHEMA_VERSION})",
                    StorageOperation.OPEN,
                    reason=StorageFailureReason.UNSUPPORTED,
                    context={"path": self._path, "schema_version": current},
                )
            for version in range(current + 1, SCHEMA_VERSION + 1):
                MIGRATIONS[version](conn)
            if current != SCHEMA_VERSION:
                conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)}")
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        if current != SCHEMA_VERSION:
            self._audit_logger.log_schema_upgraded(self._path, current, SCHEMA_VERSION)
        return SCHEMA_VERSION

    def schema_version(self) -> int:
        return self._connection().execute("PRAGMA user_version").fetchone()[0]

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("expense_store_closed", path=self._path)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        return self._conn

    @contextmanager
    def _transaction(self, operation: StorageOperation) -> Iterator[sqlite3.Connection]:
        """Run the block as one atomic write transaction."""
        conn = self._connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StorageError(
                f"Expense store {operation.value} failed: {e}",
                operation,
                reason=_failure_reason(e),
                original_error=e,
            ) from e
        except BaseException:
            self._rollback(conn)
            raise

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _record_to_row(self, record: ExpenseRecord) -> tuple:
        """Convert an ExpenseRecord to a table row."""
        return (
            record.id,
            record.description,
            str(record.amount),
            record.category.value,
            record.transaction_date.isoformat(),
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        )

    def _row_to_record(self, row: sqlite3.Row) -> ExpenseRecord:
        """Convert a table row back to an ExpenseRecord."""
        try:
            return ExpenseRecord.model_validate(dict(zip(COLUMNS, tuple(row))))
        except PydanticValidationError as e:
            raise StorageError(
                f"Stored expense {row[0]!r} is unreadable",
                StorageOperation.READ,
                original_error=e,
                context={"record_id": row[0]},
            ) from e

    # -------------------------------------------------------------------------
    # Record Store operations
    # -------------------------------------------------------------------------

    async def add(self, record: ExpenseRecord) -> None:
        """Insert a new expense."""
        with self._transaction(StorageOperation.WRITE) as conn:
            try:
                conn.execute(
                    f"INSERT INTO {TABLE_NAME} ({', '.join(COLUMNS)}) "
                    f"VALUES (?, ?, ?, ?, ?, ?, ?)",
                    self._record_to_row(record),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateIdError(record.id) from e

    async def get(self, record_id: str) -> ExpenseRecord:
        """Retrieve an expense by its id."""
        try:
            row = self._connection().execute(
                f"SELECT {', '.join(COLUMNS)} FROM {TABLE_NAME} WHERE id = ?",
                (record_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to get expense: {e}",
                StorageOperation.READ,
                reason=_failure_reason(e),
                original_error=e,
                context={"record_id": record_id},
            ) from e

        if row is None:
            raise NotFoundError(record_id)
        return self._row_to_record(row)

    async def put(self, record: ExpenseRecord) -> None:
        """Insert or replace an expense, keeping its original row position."""
        updates = ", ".join(f"{col} = excluded.{col}" for col in COLUMNS[1:])
        with self._transaction(StorageOperation.WRITE) as conn:
            conn.execute(
                f"INSERT INTO {TABLE_NAME} ({', '.join(COLUMNS)}) "
                f"VALUES (?, ?, ?, ?, ?, ?, ?) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                self._record_to_row(record),
            )

    async def delete(self, record_id: str) -> None:
        """Hard delete an expense."""
        with self._transaction(StorageOperation.DELETE) as conn:
            cursor = conn.execute(
                f"DELETE FROM {TABLE_NAME} WHERE id = ?",
                (record_id,),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(record_id)

    async def get_all(self) -> list[ExpenseRecord]:
        """Return every stored expense in insertion order."""
        try:
            rows = self._connection().execute(
                f"SELECT {', '.join(COLUMNS)} FROM {TABLE_NAME} ORDER BY rowid"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to list expenses: {e}",
                StorageOperation.READ,
                reason=_failure_reason(e),
                original_error=e,
            ) from e
        return [self._row_to_record(row) for row in rows]
