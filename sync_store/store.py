"""
SQLite-backed row store for provided_data, current_data and sync_result.

Stateless between runs: each input table is truncated and bulk-inserted
once per run, and sync_result is truncated and repopulated by the
reconciliation step. Reads return rows in insertion order (by surrogate id).
Set-based questions (duplicate keys, action filters, action counts) are
answered with SQL rather than by walking rows in Python.
"""

import os
import sqlite3
from typing import TYPE_CHECKING, Any, Iterable, Optional, Sequence

from shared.log import create_logger
from sync_store.schema import ALL_TABLES, drop_statements, quote, schema_statements
from validation.config import RESULT_TABLE, SYNC_ACTION_COLUMN
from validation.errors import DataConsistencyError, external_operation

if TYPE_CHECKING:
    from reconciliation.engine import SyncResultRow
    from validation.config import StaffSyncConfig

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Store")

Row = dict[str, Any]

MEMORY_DB = ':memory:'


class RowStore:
    """
    Relational store for the three sync tables.

    Args:
        db_path: SQLite database file, or ":memory:"
        config: Validated StaffSyncConfig describing the table schemas

    Usage:
        with RowStore("data/staff_sync.db", config) as store:
            store.replace_rows("provided_data", rows)
            store.check_unique_keys("provided_data")
            rows = store.fetch_rows("provided_data")
    """

    def __init__(self, db_path: str, config: "StaffSyncConfig"):
        self.db_path = db_path
        self.config = config
        self._conn: Optional[sqlite3.Connection] = None

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def open(self) -> 'RowStore':
        if self._conn is not None:
            return self
        with external_operation("open_store", self.db_path):
            if self.db_path != MEMORY_DB:
                parent = os.path.dirname(os.path.abspath(self.db_path))
                os.makedirs(parent, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            if self.db_path != MEMORY_DB:
                conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn
            self._ensure_schema()
        log_debug("Opened row store", database=self.db_path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> 'RowStore':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("RowStore is not open")
        return self._conn

    def _existing_columns(self, table: str) -> list[str]:
        cursor = self.conn.execute(f"PRAGMA table_info({quote(table)})")
        return [row[1] for row in cursor.fetchall()]

    def _ensure_schema(self) -> None:
        """Create the tables, recreating them if the declared columns changed."""
        stale = []
        for table in ALL_TABLES:
            existing = self._existing_columns(table)
            if existing and [c for c in existing if c not in ('id', 'created_at', 'updated_at')] != self.columns(table):
                stale.append(table)
        with self.conn:
            if stale:
                log_warn("Table layout changed; recreating sync tables", tables=stale)
                for statement in drop_statements():
                    self.conn.execute(statement)
            for statement in schema_statements(self.config):
                self.conn.execute(statement)

    # =========================================================================
    # Row sink / source
    # =========================================================================

    def columns(self, table: str) -> list[str]:
        """Columns a row of this table carries (sync_result adds sync_action)."""
        names = self.config.tables.get(table).column_names
        if table == RESULT_TABLE:
            names = names + [SYNC_ACTION_COLUMN]
        return names

    def replace_rows(self, table: str, rows: Iterable[Row]) -> int:
        """
        Truncate table and bulk-insert rows in one transaction.

        Returns:
            Number of rows inserted

        Raises:
            ExternalError: the store rejected the write
        """
        columns = self.columns(table)
        params = [tuple(row.get(col) for col in columns) for row in rows]
        sql = (
            f"INSERT INTO {quote(table)} ({', '.join(quote(c) for c in columns)}) "
            f"VALUES ({', '.join('?' * len(columns))})"
        )
        with external_operation("replace_rows", table):
            with self.conn:
                self.conn.execute(f"DELETE FROM {quote(table)}")
                self.conn.execute("DELETE FROM sqlite_sequence WHERE name = ?", (table,))
                self.conn.executemany(sql, params)
        log_debug("Replaced table contents", table=table, rows=len(params))
        return len(params)

    def write_results(self, results: Sequence["SyncResultRow"]) -> int:
        """Truncate sync_result and insert classified rows in order."""
        return self.replace_rows(RESULT_TABLE, [result.as_record() for result in results])

    def fetch_rows(self, table: str, action_codes: Optional[Sequence[str]] = None) -> list[Row]:
        """
        Read all rows of a table in insertion order.

        Args:
            table: Table name
            action_codes: sync_result only; keep rows whose sync_action is in
                this list. An empty list matches nothing.
        """
        columns = self.columns(table)
        sql = f"SELECT {', '.join(quote(c) for c in columns)} FROM {quote(table)}"
        params: list[Any] = []
        if action_codes is not None:
            if table != RESULT_TABLE:
                raise ValueError("action_codes filter applies to sync_result only")
            if action_codes:
                sql += f" WHERE {quote(SYNC_ACTION_COLUMN)} IN ({', '.join('?' * len(action_codes))})"
                params.extend(action_codes)
            else:
                sql += " WHERE 0"
        sql += " ORDER BY id"
        with external_operation("fetch_rows", table):
            cursor = self.conn.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]

    # =========================================================================
    # Set-based queries
    # =========================================================================

    def count(self, table: str) -> int:
        with external_operation("count", table):
            return self.conn.execute(f"SELECT COUNT(*) FROM {quote(table)}").fetchone()[0]

    def count_by_action(self) -> dict[str, int]:
        """sync_result row count per sync_action code."""
        sql = (
            f"SELECT {quote(SYNC_ACTION_COLUMN)} AS code, COUNT(*) AS n "
            f"FROM {quote(RESULT_TABLE)} GROUP BY {quote(SYNC_ACTION_COLUMN)}"
        )
        with external_operation("count_by_action", RESULT_TABLE):
            return {row['code']: row['n'] for row in self.conn.execute(sql).fetchall()}

    def find_duplicate_keys(self, table: str) -> list[tuple[tuple, int]]:
        """
        Key tuples occurring more than once, with their counts.

        Results are ordered by first occurrence.
        """
        keys = self.config.tables.get(table).key_columns
        key_sql = ', '.join(quote(k) for k in keys)
        sql = (
            f"SELECT {key_sql}, COUNT(*) AS occurrences FROM {quote(table)} "
            f"GROUP BY {key_sql} HAVING COUNT(*) > 1 ORDER BY MIN(id)"
        )
        with external_operation("find_duplicate_keys", table):
            rows = self.conn.execute(sql).fetchall()
        return [(tuple(row[k] for k in keys), row['occurrences']) for row in rows]

    def check_unique_keys(self, table: str) -> None:
        """
        Enforce key uniqueness for a table.

        Raises:
            DataConsistencyError: listing every duplicated key and its count
        """
        duplicates = self.find_duplicate_keys(table)
        if duplicates:
            log_error(
                "Duplicate keys found",
                table=table,
                duplicates=[{'key': list(key), 'count': count} for key, count in duplicates],
            )
            raise DataConsistencyError.for_duplicates(table, duplicates)
        log_trace("Key uniqueness verified", table=table)
