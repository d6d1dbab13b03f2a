"""
Centralized error taxonomy and classification for sync runs.

Three families of failure abort a run:

- ConfigurationError: invalid settings detected before any row is processed
  (missing column mappings, non-injective action codes, malformed globs).
- DataConsistencyError: input data violating an invariant (duplicate keys,
  null keys, unparseable typed values). Raised mid-pipeline, never retried.
- ExternalError: the store or filesystem failed. Carries the operation name
  and the affected table/file so the caller can decide what to do.

classify_exception maps any exception onto this taxonomy so that the CLI
reports every failure the same way.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Optional, Type

from pydantic import ValidationError

logger = logging.getLogger(__name__)


class StaffSyncError(Exception):
    """Base class for all StaffSync failures."""
    pass


class ConfigurationError(StaffSyncError, ValueError):
    """Invalid configuration. Fatal, raised before execution.

    Subclasses ValueError so pydantic validators surface it as a regular
    validation error.
    """
    pass


class GlobPatternError(ConfigurationError):
    """A filter rule glob pattern could not be compiled."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Malformed glob pattern {pattern!r}: {reason}")


class DataConsistencyError(StaffSyncError):
    """
    Input data violates an invariant.

    Attributes:
        table: Table the offending rows belong to
        duplicates: List of (key_tuple, occurrence_count) for duplicate keys
        row_number: 1-based data row number for per-row failures, if known
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        duplicates: Optional[list[tuple[tuple, int]]] = None,
        row_number: Optional[int] = None,
    ):
        super().__init__(message)
        self.table = table
        self.duplicates = duplicates or []
        self.row_number = row_number

    @classmethod
    def for_duplicates(cls, table: str, duplicates: list[tuple[tuple, int]]) -> "DataConsistencyError":
        listed = ", ".join(
            f"{_format_key(key)} (count {count})" for key, count in duplicates
        )
        return cls(
            f"Duplicate keys in {table}: {listed}",
            table=table,
            duplicates=duplicates,
        )


class ExternalError(StaffSyncError):
    """
    Store or filesystem failure.

    Attributes:
        operation: Name of the operation that failed (e.g., "replace_rows")
        target: Affected table name or file path
    """

    def __init__(self, message: str, operation: str, target: Any = None):
        super().__init__(message)
        self.operation = operation
        self.target = target


def _format_key(key: tuple) -> str:
    if len(key) == 1:
        return str(key[0])
    return "(" + ", ".join(str(part) for part in key) + ")"


@contextmanager
def external_operation(operation: str, target: Any = None):
    """
    Wrap sqlite3 and OS failures raised inside the block as ExternalError.

    Example:
        >>> with external_operation("replace_rows", "provided_data"):
        ...     conn.executemany(sql, params)
    """
    try:
        yield
    except (sqlite3.Error, OSError) as e:
        raise ExternalError(
            f"{operation} failed for {target}: {e}",
            operation=operation,
            target=target,
        ) from e


# CLI exit codes per failure family
EXIT_CODES = {
    ConfigurationError: 2,
    DataConsistencyError: 3,
    ExternalError: 4,
}


def classify_exception(exc: Exception) -> Type[Exception]:
    """
    Classify an exception into the StaffSync error taxonomy.

    Handles:
    - Already classified: return the matching family
    - pydantic ValidationError: ConfigurationError
    - sqlite3 and OS errors: ExternalError
    - Unknown: the exception's own type (reported as an unexpected failure)

    Args:
        exc: The exception to classify

    Returns:
        ConfigurationError, DataConsistencyError, ExternalError, or type(exc)
    """
    for family in (ConfigurationError, DataConsistencyError, ExternalError):
        if isinstance(exc, family):
            logger.debug(f"Exception already {family.__name__}: {exc}")
            return family

    if isinstance(exc, ValidationError):
        logger.debug("pydantic ValidationError classified as configuration error")
        return ConfigurationError

    if isinstance(exc, (sqlite3.Error, OSError)):
        logger.debug(f"{type(exc).__name__} classified as external error")
        return ExternalError

    logger.debug(f"Unknown exception left unclassified: {type(exc).__name__}")
    return type(exc)


def exit_code_for(exc: Exception) -> int:
    """Return the CLI exit code for an exception (1 when unclassified)."""
    return EXIT_CODES.get(classify_exception(exc), 1)
