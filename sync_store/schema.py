"""
DDL generation for the three sync tables.

Every table gets a surrogate ``id`` (insertion order), the declared columns,
and ``created_at``. Input tables also carry ``updated_at`` maintained by an
AFTER UPDATE trigger; ``sync_result`` carries ``sync_action``. Key columns
are indexed but not declared UNIQUE: duplicates are reported by the
consistency check with their counts instead of failing the bulk insert.
"""

from typing import TYPE_CHECKING

from validation.config import CURRENT_TABLE, PROVIDED_TABLE, RESULT_TABLE, SYNC_ACTION_COLUMN

if TYPE_CHECKING:
    from validation.config import StaffSyncConfig, TableConfig

SQL_TYPES = {
    'TEXT': 'TEXT',
    'INTEGER': 'INTEGER',
    'DATE': 'DATE',
}

INPUT_TABLES = (PROVIDED_TABLE, CURRENT_TABLE)
ALL_TABLES = (PROVIDED_TABLE, CURRENT_TABLE, RESULT_TABLE)


def quote(identifier: str) -> str:
    """Quote an identifier (names are validated as [A-Za-z_][A-Za-z0-9_]* at config load)."""
    return '"' + identifier.replace('"', '""') + '"'


def table_ddl(table: str, table_config: "TableConfig") -> list[str]:
    """CREATE statements (table, key index, optional trigger) for one table."""
    lines = ['id INTEGER PRIMARY KEY AUTOINCREMENT']
    for column in table_config.columns:
        not_null = ' NOT NULL' if table_config.is_required(column.name) else ''
        lines.append(f"{quote(column.name)} {SQL_TYPES[column.type]}{not_null}")
    if table == RESULT_TABLE:
        lines.append(f"{quote(SYNC_ACTION_COLUMN)} TEXT NOT NULL")
    lines.append('created_at DATETIME DEFAULT CURRENT_TIMESTAMP')
    if table in INPUT_TABLES:
        lines.append('updated_at DATETIME DEFAULT CURRENT_TIMESTAMP')

    body = ',\n    '.join(lines)
    keys = ', '.join(quote(k) for k in table_config.key_columns)
    statements = [
        f"CREATE TABLE IF NOT EXISTS {quote(table)} (\n    {body}\n)",
        f"CREATE INDEX IF NOT EXISTS {quote('idx_' + table + '_key')} ON {quote(table)} ({keys})",
    ]
    if table in INPUT_TABLES:
        statements.append(
            f"CREATE TRIGGER IF NOT EXISTS {quote('update_' + table + '_timestamp')}\n"
            f"    AFTER UPDATE ON {quote(table)}\n"
            f"BEGIN\n"
            f"    UPDATE {quote(table)} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;\n"
            f"END"
        )
    if table == RESULT_TABLE:
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {quote('idx_' + table + '_action')} "
            f"ON {quote(table)} ({quote(SYNC_ACTION_COLUMN)})"
        )
    return statements


def schema_statements(config: "StaffSyncConfig") -> list[str]:
    """All DDL for provided_data, current_data and sync_result."""
    statements: list[str] = []
    for table in ALL_TABLES:
        statements.extend(table_ddl(table, config.tables.get(table)))
    return statements


def drop_statements() -> list[str]:
    """Drop the sync tables so a changed column layout is recreated cleanly."""
    return [f"DROP TABLE IF EXISTS {quote(table)}" for table in ALL_TABLES]
