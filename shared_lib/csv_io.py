"""
shared_lib.csv_io — Typed CSV ingestion for input snapshots.

Reads a provided/current CSV into ordered rows keyed by declared column name.
Empty cells become None, INTEGER columns become int, and DATE columns are
normalized to ISO ``YYYY-MM-DD`` text so that string equality compares
dates correctly.
"""
from __future__ import annotations

import csv
import re
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from shared.log import create_logger
from validation.errors import ConfigurationError, DataConsistencyError, external_operation

if TYPE_CHECKING:
    from validation.config import ColumnSpec, TableConfig

log_trace, log_debug, log_info, log_warn, log_error = create_logger("CSV")

Row = dict[str, Any]

_DATE_RE = re.compile(r"^(\d{4})[-/.]?(\d{1,2})[-/.]?(\d{1,2})$")


def parse_date(raw: str) -> str:
    """Normalize YYYY-MM-DD, YYYY/MM/DD, YYYY.MM.DD or YYYYMMDD to ISO text.

    Raises:
        ValueError: not a recognizable calendar date
    """
    m = _DATE_RE.match(raw)
    if not m:
        raise ValueError(f"unrecognized date {raw!r}")
    year, month, day = (int(part) for part in m.groups())
    return date(year, month, day).isoformat()


def convert_value(raw: Optional[str], column: "ColumnSpec") -> Any:
    """Convert a raw cell to the column's type. Blank cells become None."""
    if raw is None:
        return None
    value = raw.strip()
    if value == "":
        return None
    if column.type == "INTEGER":
        return int(value)
    if column.type == "DATE":
        return parse_date(value)
    return value


def _resolve_positions(header: list[str], table_config: "TableConfig", path: Path) -> list[int]:
    """Map each declared column to its header position (exact, then case-insensitive)."""
    exact = {h: i for i, h in enumerate(header)}
    folded = {h.casefold(): i for i, h in enumerate(header)}
    positions = []
    missing = []
    for column in table_config.columns:
        label = column.csv_header or column.name
        if label in exact:
            positions.append(exact[label])
        elif label.casefold() in folded:
            positions.append(folded[label.casefold()])
        else:
            missing.append(label)
    if missing:
        raise ConfigurationError(
            f"Columns {missing} not found in header of {path}. Available: {header}"
        )
    return positions


def read_rows(path: Union[str, Path], table_config: "TableConfig", table: str) -> list[Row]:
    """
    Read a CSV file into typed rows in file order.

    Args:
        path: CSV file to read
        table_config: Declared schema (columns, keys, CSV layout)
        table: Table name used in error messages

    Returns:
        List of dicts with one entry per declared column, in declared order

    Raises:
        ConfigurationError: a declared column is missing from the header
        DataConsistencyError: a value fails type conversion, or a key/required
            column is null
        ExternalError: the file cannot be read
    """
    path = Path(path)
    try:
        rows = _read(path, table_config, table)
    except UnicodeDecodeError as e:
        raise DataConsistencyError(
            f"{table}: {path} is not valid {table_config.csv.encoding}: {e}",
            table=table,
        ) from e

    log_info("Read input file", table=table, file=str(path), rows=len(rows))
    return rows


def _read(path: Path, table_config: "TableConfig", table: str) -> list[Row]:
    settings = table_config.csv
    columns = table_config.columns
    rows: list[Row] = []

    with external_operation("read_csv", str(path)):
        with path.open("r", newline="", encoding=settings.encoding) as f:
            reader = csv.reader(f, delimiter=settings.delimiter)

            if settings.has_header:
                try:
                    header = next(reader)
                except StopIteration:
                    log_warn("Input file is empty", table=table, file=str(path))
                    return rows
                # Strip UTF-8 BOM if the encoding left one behind
                if header and header[0].startswith("\ufeff"):
                    header[0] = header[0].lstrip("\ufeff")
                header = [h.strip() for h in header]
                positions = _resolve_positions(header, table_config, path)
            else:
                positions = list(range(len(columns)))

            for cells in reader:
                if not any(cell.strip() for cell in cells):
                    continue
                line = reader.line_num
                row: Row = {}
                for column, pos in zip(columns, positions):
                    raw = cells[pos] if pos < len(cells) else None
                    try:
                        row[column.name] = convert_value(raw, column)
                    except ValueError as e:
                        raise DataConsistencyError(
                            f"{table} line {line}: column {column.name!r} ({column.type}): {e}",
                            table=table,
                            row_number=line,
                        ) from e
                    if row[column.name] is None and table_config.is_required(column.name):
                        raise DataConsistencyError(
                            f"{table} line {line}: required column {column.name!r} is empty",
                            table=table,
                            row_number=line,
                        )
                rows.append(row)
    return rows
