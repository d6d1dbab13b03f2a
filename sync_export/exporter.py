"""
Result exporter writing sync_result to CSV.

Only rows whose sync_action code belongs to an enabled action are written.
The CSV is written to a temporary file and moved into place, so a failed
export never leaves a truncated file at the output path. After a successful
write the file is copied into the history directory when one is configured.
"""

import csv
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Union

from shared.log import create_logger
from shared_lib.history import HistoryArchiver
from validation.actions import SyncAction
from validation.config import SYNC_ACTION_COLUMN
from validation.errors import DataConsistencyError, external_operation

if TYPE_CHECKING:
    from sync_store.store import RowStore
    from validation.config import StaffSyncConfig

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Export")

Row = dict[str, Any]


@dataclass
class ExportResult:
    """Outcome of one export.

    Attributes:
        output_path: CSV written
        row_count: Data rows written (header excluded)
        enabled_codes: sync_action codes the predicate accepted
        history_path: Archived copy, if a history directory is configured
    """
    output_path: Path
    row_count: int = 0
    enabled_codes: list[str] = field(default_factory=list)
    history_path: Optional[Path] = None


class ResultExporter:
    """
    Filters sync_result rows by enabled action and serializes them to CSV.

    Args:
        config: Validated StaffSyncConfig (action codes, output settings)
        archiver: Optional HistoryArchiver; defaults to one built from
            output.history.directory when that is set
    """

    def __init__(self, config: "StaffSyncConfig", archiver: Optional[HistoryArchiver] = None):
        self.config = config
        self.output = config.output
        if archiver is None and self.output.history.directory:
            archiver = HistoryArchiver(self.output.history.directory)
        self.archiver = archiver

    def enabled_codes(self, action_enablement: Optional[Mapping[SyncAction, bool]] = None) -> list[str]:
        """Codes accepted by the export predicate (configured enablement by default)."""
        codes = self.config.action_codes.enabled_codes(action_enablement)
        if not codes:
            log_warn("All sync actions are disabled; exporting header only")
        return codes

    def export(
        self,
        rows: Iterable[Any],
        action_enablement: Optional[Mapping[SyncAction, bool]],
        out_path: Union[str, Path],
    ) -> int:
        """
        Export in-memory sync_result rows.

        Args:
            rows: SyncResultRow objects or sync_result records (dicts with sync_action)
            action_enablement: Per-action flags; None uses the configured flags
            out_path: Destination CSV

        Returns:
            Number of data rows written
        """
        codes = self.enabled_codes(action_enablement)
        accepted = set(codes)
        records = []
        for row in rows:
            record = row.as_record() if hasattr(row, 'as_record') else row
            if record.get(SYNC_ACTION_COLUMN) in accepted:
                records.append(record)
        return self._finish(records, codes, out_path).row_count

    def export_from_store(
        self,
        store: "RowStore",
        out_path: Union[str, Path],
        action_enablement: Optional[Mapping[SyncAction, bool]] = None,
    ) -> ExportResult:
        """Export sync_result using a SQL predicate on sync_action."""
        codes = self.enabled_codes(action_enablement)
        records = store.fetch_rows('sync_result', action_codes=codes)
        return self._finish(records, codes, out_path)

    def _finish(self, records: list[Row], codes: list[str], out_path: Union[str, Path]) -> ExportResult:
        path = Path(out_path)
        count = self.write_csv(records, path)
        result = ExportResult(output_path=path, row_count=count, enabled_codes=list(codes))
        if self.archiver is not None:
            result.history_path = self.archiver.archive(path)
        log_info(
            "Exported sync results",
            file=str(path),
            rows=count,
            codes=list(codes),
            history=str(result.history_path) if result.history_path else None,
        )
        return result

    def write_csv(self, records: Iterable[Row], path: Path) -> int:
        """
        Write records with the configured columns, header labels, delimiter
        and encoding. Atomic: tmp file + os.replace.

        Raises:
            DataConsistencyError: a value cannot be represented in the encoding
            ExternalError: the file cannot be written
        """
        columns = self.config.output_columns
        tmp_path = path.with_name(path.name + '.tmp')
        count = 0
        with external_operation("write_csv", str(path)):
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with open(tmp_path, 'w', newline='', encoding=self.output.encoding) as f:
                    writer = csv.writer(f, delimiter=self.output.delimiter)
                    if self.output.include_header:
                        writer.writerow([self.output.headers.get(c, c) for c in columns])
                    for record in records:
                        writer.writerow(['' if record.get(c) is None else record.get(c) for c in columns])
                        count += 1
            except UnicodeEncodeError as e:
                tmp_path.unlink(missing_ok=True)
                raise DataConsistencyError(
                    f"sync_result row {count + 1} cannot be encoded as {self.output.encoding}: {e}",
                    table='sync_result',
                    row_number=count + 1,
                ) from e
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise
            os.replace(tmp_path, path)
        return count
