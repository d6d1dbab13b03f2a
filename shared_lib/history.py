"""
shared_lib.history — Timestamped history copies of input and output files.

Each archived file lands in the history directory as
``<stem>_<YYYYMMDD_HHMMSS><suffix>``. A second copy within the same second
gets ``_1``, ``_2``, … appended so an earlier copy is never overwritten.
"""
from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from shared.log import create_logger
from validation.errors import external_operation

log_trace, log_debug, log_info, log_warn, log_error = create_logger("History")

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class HistoryArchiver:
    """
    Copies files into a history directory under collision-free names.

    Args:
        history_dir: Destination directory (created on first archive)
        clock: Callable returning the current datetime (injectable for tests)

    Usage:
        archiver = HistoryArchiver("output/history")
        archived = archiver.archive("output/sync_result.csv")
        # -> output/history/sync_result_20261018_093000.csv
    """

    def __init__(self, history_dir: Union[str, Path], clock: Optional[Callable[[], datetime]] = None):
        self.history_dir = Path(history_dir)
        self._clock = clock or datetime.now

    def archive_path_for(self, source: Path) -> Path:
        """Pick the first unused timestamped name for source."""
        stamp = self._clock().strftime(TIMESTAMP_FORMAT)
        candidate = self.history_dir / f"{source.stem}_{stamp}{source.suffix}"
        counter = 1
        while candidate.exists():
            candidate = self.history_dir / f"{source.stem}_{stamp}_{counter}{source.suffix}"
            counter += 1
        return candidate

    def archive(self, path: Union[str, Path]) -> Path:
        """
        Copy path into the history directory.

        Returns:
            Path of the archived copy

        Raises:
            ExternalError: the directory cannot be created or the copy fails
        """
        source = Path(path)
        with external_operation("archive_history", str(source)):
            self.history_dir.mkdir(parents=True, exist_ok=True)
            target = self.archive_path_for(source)
            shutil.copy2(source, target)
        log_info("Archived file to history", file=str(source), archived=str(target))
        return target
