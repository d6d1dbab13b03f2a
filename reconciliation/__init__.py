"""Reconciliation package: exclusion filtering, action classification and the sync pipeline."""
from reconciliation.filter import ExclusionFilter, FilterResult, FilterStats, filter_rows
from reconciliation.field_sources import resolve_field, resolve_row
from reconciliation.engine import ReconciliationEngine, SyncResultRow, count_actions, reconcile
from reconciliation.pipeline import SyncPipeline, SyncRunResult

__all__ = [
    'ExclusionFilter',
    'FilterResult',
    'FilterStats',
    'filter_rows',
    'resolve_field',
    'resolve_row',
    'ReconciliationEngine',
    'SyncResultRow',
    'count_actions',
    'reconcile',
    'SyncPipeline',
    'SyncRunResult',
]
