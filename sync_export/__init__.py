"""CSV export of sync_result with action filtering and history retention."""

from sync_export.exporter import ExportResult, ResultExporter

__all__ = ['ExportResult', 'ResultExporter']
