"""
Shared pytest fixtures for StaffSync tests.

Provides reusable fixtures for:
- Configuration dictionaries and validated StaffSyncConfig objects
- Sample staff rows for provided/current snapshots
- In-memory RowStore instances
- CSV file helpers

Tables in these fixtures use a small staff schema (employee_id, name,
department) so expected rows stay readable.
"""

import copy
import csv

import pytest

from validation.config import StaffSyncConfig


STAFF_COLUMNS = ['employee_id', 'name', 'department']
TABLES = ('provided_data', 'current_data', 'sync_result')


def staff(employee_id, name, department=None):
    """Build a staff row in the small test schema."""
    return {'employee_id': employee_id, 'name': name, 'department': department}


def _table(columns=STAFF_COLUMNS, key=('employee_id',), required=('name',)):
    return {
        'key_columns': list(key),
        'columns': [{'name': column, 'required': column in required} for column in columns],
    }


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def config_dict():
    """
    Minimal valid configuration dictionary.

    Provides:
        - three tables with employee_id/name/department
        - identity column mappings
        - default action codes (1/2/3/9, all enabled)
    """
    return {
        'tables': {table: _table() for table in TABLES},
        'column_mappings': {column: column for column in STAFF_COLUMNS},
    }


@pytest.fixture
def make_config(config_dict):
    """
    Factory building a StaffSyncConfig from config_dict plus section overrides.

    Usage:
        def test_x(make_config):
            config = make_config(sync_actions={'ADD': {'enabled': False}})
    """
    def _make(**sections):
        data = copy.deepcopy(config_dict)
        data.update(sections)
        return StaffSyncConfig(**data)
    return _make


@pytest.fixture
def config(make_config):
    """Validated StaffSyncConfig with defaults."""
    return make_config()


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def provided_rows():
    """Incoming snapshot: E1 unchanged, E2 moved department, E4 new."""
    return [
        staff('E1', 'Alice', 'Sales'),
        staff('E2', 'Bob', 'Support'),
        staff('E4', 'Dana', 'Sales'),
    ]


@pytest.fixture
def current_rows():
    """Master snapshot: E1 unchanged, E2 in Sales, E3 gone from the incoming list."""
    return [
        staff('E1', 'Alice', 'Sales'),
        staff('E2', 'Bob', 'Sales'),
        staff('E3', 'Carol', 'HR'),
    ]


# =============================================================================
# Store and File Fixtures
# =============================================================================

@pytest.fixture
def memory_store(config):
    """Open in-memory RowStore for the default config."""
    from sync_store.store import RowStore
    store = RowStore(':memory:', config).open()
    yield store
    store.close()


@pytest.fixture
def write_csv(tmp_path):
    """
    Write rows to a CSV under tmp_path and return its path.

    Usage:
        path = write_csv('staff.csv', ['employee_id', 'name'], [['E1', 'Alice']])
    """
    def _write(name, header, rows, delimiter=',', encoding='utf-8'):
        path = tmp_path / name
        with open(path, 'w', newline='', encoding=encoding) as f:
            writer = csv.writer(f, delimiter=delimiter)
            if header is not None:
                writer.writerow(header)
            writer.writerows(rows)
        return path
    return _write


def read_csv(path, delimiter=','):
    """Read a CSV back as a list of lists."""
    with open(path, newline='', encoding='utf-8') as f:
        return list(csv.reader(f, delimiter=delimiter))
