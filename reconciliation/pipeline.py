"""
Sync pipeline orchestrator.

Connects the pure filter and reconciliation logic to infrastructure
(CSV ingestion, the SQLite row store, the CSV exporter, history archiving)
and runs one batch end to end:

    ingest + filter -> key uniqueness check -> reconcile -> export

Phases run strictly in sequence. Any failure aborts the run; the returned
SyncRunResult only reports completed=True after the export and history copy
have succeeded.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, TYPE_CHECKING, Union

from reconciliation.engine import ReconciliationEngine, SyncResultRow
from reconciliation.filter import FilterResult, FilterStats, filter_rows
from shared.log import create_logger
from shared_lib.csv_io import read_rows
from shared_lib.history import HistoryArchiver
from sync_export.exporter import ExportResult, ResultExporter
from validation.config import CURRENT_TABLE, PROVIDED_TABLE

if TYPE_CHECKING:
    from sync_store.store import RowStore
    from validation.config import StaffSyncConfig

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Pipeline")

Row = dict[str, Any]


@dataclass
class SyncRunResult:
    """Result summary from one sync run.

    Attributes:
        provided_stats: Filter counts for provided_data
        current_stats: Filter counts for current_data
        action_counts: sync_result rows per action name (from the store)
        result_rows: Total rows written to sync_result
        exported_count: Rows written to the output CSV
        output_path: Output CSV path
        history_path: Archived copy of the output CSV, if any
        archived_inputs: Archived copies of the input files, if any
        completed: True only once every phase has succeeded
    """
    provided_stats: FilterStats = field(default_factory=FilterStats)
    current_stats: FilterStats = field(default_factory=FilterStats)
    action_counts: dict[str, int] = field(default_factory=dict)
    result_rows: int = 0
    exported_count: int = 0
    output_path: Optional[str] = None
    history_path: Optional[str] = None
    archived_inputs: list[str] = field(default_factory=list)
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            'status': 'completed' if self.completed else 'incomplete',
            'provided_data': self.provided_stats.to_dict(),
            'current_data': self.current_stats.to_dict(),
            'action_counts': dict(self.action_counts),
            'result_rows': self.result_rows,
            'exported_count': self.exported_count,
            'output_path': self.output_path,
            'history_path': self.history_path,
            'archived_inputs': list(self.archived_inputs),
        }


class SyncPipeline:
    """
    Runs filter -> reconcile -> export against a RowStore.

    Args:
        config: Validated StaffSyncConfig
        store: Open RowStore
        exporter: Optional ResultExporter (built from config if omitted)
        archiver: Optional HistoryArchiver for input files; built from
            output.history when archive_inputs is enabled
    """

    def __init__(
        self,
        config: "StaffSyncConfig",
        store: "RowStore",
        exporter: Optional[ResultExporter] = None,
        archiver: Optional[HistoryArchiver] = None,
    ):
        self.config = config
        self.store = store
        self.exporter = exporter or ResultExporter(config)
        history = config.output.history
        if archiver is None and history.archive_inputs and history.directory:
            archiver = HistoryArchiver(history.directory)
        self.input_archiver = archiver
        self.engine = ReconciliationEngine(config)
        self._excluded_current: list[Row] = []

    # =========================================================================
    # Phases
    # =========================================================================

    def ingest(self, table: str, rows: Iterable[Row]) -> FilterResult:
        """Filter rows and replace the table's contents with the survivors."""
        result = filter_rows(rows, self.config.filter_rules(table), table=table)
        self.store.replace_rows(table, result.filtered)
        if table == CURRENT_TABLE:
            self._excluded_current = list(result.excluded)
        return result

    def ingest_file(self, table: str, path: Union[str, Path]) -> tuple[FilterResult, Optional[Path]]:
        """Read a CSV, archive it if configured, then ingest it."""
        archived = None
        if self.input_archiver is not None:
            archived = self.input_archiver.archive(path)
        rows = read_rows(path, self.config.tables.get(table), table)
        return self.ingest(table, rows), archived

    def check_consistency(self) -> None:
        """Key uniqueness for both input tables, before reconciliation reads them."""
        for table in (PROVIDED_TABLE, CURRENT_TABLE):
            self.store.check_unique_keys(table)

    def reconcile(self) -> list[SyncResultRow]:
        """Read filtered inputs from the store, classify, and rewrite sync_result."""
        provided = self.store.fetch_rows(PROVIDED_TABLE)
        current = self.store.fetch_rows(CURRENT_TABLE)
        results = self.engine.reconcile(provided, current, self._excluded_current)
        self.store.write_results(results)
        return results

    def action_counts(self) -> dict[str, int]:
        """sync_result row count per action name, every action included."""
        by_code = self.store.count_by_action()
        codes = self.config.action_codes
        return {action.value: by_code.get(codes.code(action), 0) for action in codes.enablement}

    def export(self, output_path: Union[str, Path]) -> ExportResult:
        return self.exporter.export_from_store(self.store, output_path)

    # =========================================================================
    # Full runs
    # =========================================================================

    def run(
        self,
        provided_path: Union[str, Path],
        current_path: Union[str, Path],
        output_path: Union[str, Path],
    ) -> SyncRunResult:
        """Run the whole batch from input CSVs to the exported CSV."""
        result = SyncRunResult()
        provided, archived = self.ingest_file(PROVIDED_TABLE, provided_path)
        if archived:
            result.archived_inputs.append(str(archived))
        current, archived = self.ingest_file(CURRENT_TABLE, current_path)
        if archived:
            result.archived_inputs.append(str(archived))
        return self._finish(result, provided, current, output_path)

    def run_rows(
        self,
        provided_rows: Iterable[Row],
        current_rows: Iterable[Row],
        output_path: Union[str, Path],
    ) -> SyncRunResult:
        """Run the batch from in-memory rows (no input CSVs)."""
        provided = self.ingest(PROVIDED_TABLE, provided_rows)
        current = self.ingest(CURRENT_TABLE, current_rows)
        return self._finish(SyncRunResult(), provided, current, output_path)

    def _finish(
        self,
        result: SyncRunResult,
        provided: FilterResult,
        current: FilterResult,
        output_path: Union[str, Path],
    ) -> SyncRunResult:
        result.provided_stats = provided.stats
        result.current_stats = current.stats

        self.check_consistency()
        rows = self.reconcile()
        result.result_rows = len(rows)
        result.action_counts = self.action_counts()
        log_info("sync_result written", rows=result.result_rows, **result.action_counts)

        exported = self.export(output_path)
        result.exported_count = exported.row_count
        result.output_path = str(exported.output_path)
        result.history_path = str(exported.history_path) if exported.history_path else None

        result.completed = True
        log_info("Sync run completed", **result.to_dict())
        return result
