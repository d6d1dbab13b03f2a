"""
Relational store for StaffSync.

Holds provided_data, current_data and sync_result in SQLite and answers
set-based queries (duplicate keys, action filters, action counts).
"""

from sync_store.store import RowStore
from sync_store.schema import schema_statements

__all__ = ['RowStore', 'schema_statements']
