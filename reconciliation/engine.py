"""
Reconciliation engine classifying keyed rows into sync actions.

Operates on pre-loaded rows (no store or file access) and computes a full
outer join of provided and current rows on their mapped key columns:

1. Provided rows with no current counterpart -> ADD
2. Provided rows whose mapped comparison columns all equal the current
   row -> KEEP, otherwise UPDATE
3. Current rows no provided row matched -> DELETE
4. Optionally, current rows dropped by the exclusion filter -> KEEP

Every output column is resolved through the field-source chain configured
for the row's action.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence, TYPE_CHECKING

from reconciliation.field_sources import resolve_row
from shared.log import create_logger
from validation.actions import SyncAction
from validation.config import CURRENT_TABLE, PROVIDED_TABLE, RESULT_TABLE, SYNC_ACTION_COLUMN
from validation.errors import ConfigurationError, DataConsistencyError

if TYPE_CHECKING:
    from validation.config import StaffSyncConfig

_, log_debug, log_info, log_warn, _ = create_logger("Engine")

Row = dict[str, Any]


@dataclass
class SyncResultRow:
    """One classified row bound for sync_result.

    Attributes:
        action: The sync action
        code: External string code of the action
        key: Normalized key tuple the row was classified under
        fields: Output column values, in sync_result column order
        readmitted: True for current rows re-admitted after filtering
    """
    action: SyncAction
    code: str
    key: tuple
    fields: Row = field(default_factory=dict)
    readmitted: bool = False

    def as_record(self) -> Row:
        """Output columns plus the sync_action code."""
        return {**self.fields, SYNC_ACTION_COLUMN: self.code}


def normalize_value(value: Any) -> Optional[str]:
    """Comparison form of a scalar: None stays None, everything else becomes str."""
    if value is None:
        return None
    return str(value)


def values_equal(left: Any, right: Any) -> bool:
    """Null equals null, null differs from any value, otherwise string equality."""
    return normalize_value(left) == normalize_value(right)


def count_actions(rows: Iterable[SyncResultRow]) -> dict[SyncAction, int]:
    """Count result rows per action (every action present, zero if unused)."""
    counts = {action: 0 for action in SyncAction}
    for row in rows:
        counts[row.action] += 1
    return counts


def _require_columns(rows: Sequence[Row], required: Sequence[str], table: str) -> None:
    """Fail before classification if any row lacks a key or comparison column."""
    missing: set[str] = set()
    for row in rows:
        missing.update(col for col in required if col not in row)
    if missing:
        raise ConfigurationError(
            f"{table} rows are missing required comparison columns: {sorted(missing)}"
        )


class ReconciliationEngine:
    """Classifies provided/current rows into ADD/UPDATE/DELETE/KEEP.

    Args:
        config: Validated StaffSyncConfig (key columns, mappings, chains, codes)
    """

    def __init__(self, config: "StaffSyncConfig"):
        self.config = config
        self.codes = config.action_codes
        self.provided_keys = list(config.tables.provided_data.key_columns)
        self.current_keys = config.current_key_columns
        self.comparisons = config.comparison_columns
        result_table = config.tables.sync_result
        self.required_columns = [c for c in result_table.column_names if result_table.is_required(c)]

    def key_of(self, row: Row, columns: Sequence[str], table: str) -> tuple:
        key = tuple(normalize_value(row.get(col)) for col in columns)
        if any(part is None for part in key):
            raise DataConsistencyError(
                f"{table} row has a null key: {dict(zip(columns, key))}",
                table=table,
            )
        return key

    def changed_columns(self, provided: Row, current: Row) -> list[str]:
        """Provided-side names of mapped columns whose values differ."""
        return [
            p_col for p_col, c_col in self.comparisons
            if not values_equal(provided.get(p_col), current.get(c_col))
        ]

    def classify(self, provided: Optional[Row], current: Optional[Row]) -> SyncAction:
        if current is None:
            return SyncAction.ADD
        if provided is None:
            return SyncAction.DELETE
        return SyncAction.UPDATE if self.changed_columns(provided, current) else SyncAction.KEEP

    def _keys(self, rows: Sequence[Row], columns: Sequence[str], table: str) -> list[tuple]:
        keys = [self.key_of(row, columns, table) for row in rows]
        duplicates = [(key, count) for key, count in Counter(keys).items() if count > 1]
        if duplicates:
            raise DataConsistencyError.for_duplicates(table, duplicates)
        return keys

    def _build(self, action: SyncAction, key: tuple, provided: Optional[Row], current: Optional[Row],
               readmitted: bool = False) -> SyncResultRow:
        fields = resolve_row(self.config.chains_for(action), provided, current)
        missing = [c for c in self.required_columns if fields.get(c) is None]
        if missing:
            raise DataConsistencyError(
                f"{action.value} row for key {list(key)} resolved no value for required "
                f"sync_result columns: {missing}",
                table=RESULT_TABLE,
            )
        return SyncResultRow(
            action=action,
            code=self.codes.code(action),
            key=key,
            fields=fields,
            readmitted=readmitted,
        )

    def reconcile(
        self,
        provided: Sequence[Row],
        current: Sequence[Row],
        excluded_current: Sequence[Row] = (),
    ) -> list[SyncResultRow]:
        """
        Classify every key and resolve output rows.

        Args:
            provided: Filtered provided_data rows, in file order
            current: Filtered current_data rows, in file order
            excluded_current: current_data rows dropped by the exclusion
                filter; re-admitted as KEEP only when output_excluded_as_keep
                is enabled for current_data

        Returns:
            SyncResultRow list: provided-driven rows (ADD/UPDATE/KEEP) in
            provided order, then DELETE rows in current order, then
            re-admitted KEEP rows

        Raises:
            ConfigurationError: rows lack a key or comparison column
            DataConsistencyError: duplicate or null keys on either side, or a
                required sync_result column resolves to null
        """
        _require_columns(provided, self.provided_keys + [p for p, _ in self.comparisons], PROVIDED_TABLE)
        _require_columns(current, self.current_keys + [c for _, c in self.comparisons], CURRENT_TABLE)

        provided_keys = self._keys(provided, self.provided_keys, PROVIDED_TABLE)
        current_keys = self._keys(current, self.current_keys, CURRENT_TABLE)
        index = dict(zip(current_keys, current))

        results: list[SyncResultRow] = []
        matched: set[tuple] = set()

        for key, row in zip(provided_keys, provided):
            counterpart = index.get(key)
            if counterpart is not None:
                matched.add(key)
            action = self.classify(row, counterpart)
            results.append(self._build(action, key, row, counterpart))

        for key, row in zip(current_keys, current):
            if key not in matched:
                results.append(self._build(SyncAction.DELETE, key, None, row))

        readmitted = 0
        if excluded_current and self.config.output_excluded_as_keep:
            provided_key_set = set(provided_keys)
            for row in excluded_current:
                key = tuple(normalize_value(row.get(col)) for col in self.current_keys)
                if key in provided_key_set:
                    log_warn("Re-admitted current row shares its key with a provided row", key=list(key))
                results.append(self._build(SyncAction.KEEP, key, None, row, readmitted=True))
                readmitted += 1

        counts = count_actions(results)
        log_info(
            "Reconciliation complete",
            provided=len(provided),
            current=len(current),
            added=counts[SyncAction.ADD],
            updated=counts[SyncAction.UPDATE],
            deleted=counts[SyncAction.DELETE],
            kept=counts[SyncAction.KEEP],
            readmitted=readmitted,
        )
        return results


def reconcile(
    provided: Sequence[Row],
    current: Sequence[Row],
    config: "StaffSyncConfig",
    excluded_current: Sequence[Row] = (),
) -> list[SyncResultRow]:
    """Functional entry point: ReconciliationEngine(config).reconcile(...)."""
    return ReconciliationEngine(config).reconcile(provided, current, excluded_current)
