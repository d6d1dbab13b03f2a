"""
Tests for ReconciliationEngine classification and output resolution.

Covers the four single-row scenarios (ADD, KEEP, UPDATE, DELETE), duplicate
and null keys, mixed batches, ordering, partition completeness,
idempotence, column mappings, composite keys, and re-admission of
excluded current rows as KEEP.
"""

import logging

import pytest

from conftest import staff
from reconciliation.engine import (
    ReconciliationEngine,
    SyncResultRow,
    count_actions,
    normalize_value,
    reconcile,
    values_equal,
)
from validation.actions import SyncAction
from validation.errors import ConfigurationError, DataConsistencyError


def actions(results):
    return [(r.key[0], r.action) for r in results]


# =============================================================================
# Value comparison
# =============================================================================

class TestValueComparison:
    """Tests for normalize_value and values_equal."""

    def test_none_stays_none(self):
        assert normalize_value(None) is None

    def test_scalars_become_text(self):
        assert normalize_value(7) == '7'

    @pytest.mark.parametrize("left,right,expected", [
        (None, None, True),
        (None, '', False),
        ('a', None, False),
        (1, '1', True),
        ('Alice', 'alice', False),
    ])
    def test_values_equal(self, left, right, expected):
        assert values_equal(left, right) is expected


# =============================================================================
# Single-row scenarios
# =============================================================================

class TestScenarios:
    """One provided/current pair per action."""

    def test_add(self, config):
        results = reconcile([staff('E1', 'Alice')], [], config)

        assert len(results) == 1
        assert results[0].action is SyncAction.ADD
        assert results[0].as_record() == {
            'employee_id': 'E1', 'name': 'Alice', 'department': None, 'sync_action': '1',
        }

    def test_keep(self, config):
        results = reconcile([staff('E1', 'Alice')], [staff('E1', 'Alice')], config)

        assert [r.as_record()['sync_action'] for r in results] == ['9']
        assert results[0].action is SyncAction.KEEP

    def test_update_resolves_provided_first(self, config):
        results = reconcile([staff('E1', 'Bob')], [staff('E1', 'Alice')], config)

        assert results[0].action is SyncAction.UPDATE
        assert results[0].code == '2'
        assert results[0].fields['name'] == 'Bob'

    def test_update_with_current_first_chain(self, make_config):
        config = make_config(field_sources={'UPDATE': {'name': [
            {'source': 'current_data', 'field': 'name'},
            {'source': 'provided_data', 'field': 'name'},
        ]}})
        results = reconcile([staff('E1', 'Bob')], [staff('E1', 'Alice')], config)

        assert results[0].action is SyncAction.UPDATE
        assert results[0].fields['name'] == 'Alice'

    def test_delete(self, config):
        results = reconcile([], [staff('E1', 'Alice')], config)

        assert results[0].action is SyncAction.DELETE
        assert results[0].as_record() == {
            'employee_id': 'E1', 'name': 'Alice', 'department': None, 'sync_action': '3',
        }

    def test_empty_inputs(self, config):
        assert reconcile([], [], config) == []


# =============================================================================
# Keys
# =============================================================================

class TestKeys:
    """Tests for duplicate, null and composite keys."""

    def test_duplicate_provided_key(self, config):
        rows = [staff('E1', 'Alice'), staff('E1', 'Alice B.')]
        with pytest.raises(DataConsistencyError) as exc_info:
            reconcile(rows, [], config)
        err = exc_info.value
        assert err.table == 'provided_data'
        assert err.duplicates == [(('E1',), 2)]
        assert 'E1 (count 2)' in str(err)

    def test_duplicate_current_key(self, config):
        rows = [staff('E2', 'Bob'), staff('E2', 'Bob'), staff('E2', 'Bob')]
        with pytest.raises(DataConsistencyError, match=r'current_data: E2 \(count 3\)'):
            reconcile([], rows, config)

    def test_null_key(self, config):
        with pytest.raises(DataConsistencyError, match='null key'):
            reconcile([staff(None, 'Alice')], [], config)

    def test_keys_compare_as_text(self, config):
        results = reconcile([staff(1, 'Alice')], [staff('1', 'Alice')], config)
        assert [r.action for r in results] == [SyncAction.KEEP]

    def test_composite_key(self, config_dict, make_config):
        tables = config_dict['tables']
        for table in tables.values():
            table['key_columns'] = ['employee_id', 'department']
        config = make_config(tables=tables)

        results = reconcile(
            [staff('E1', 'Alice', 'Sales'), staff('E1', 'Alice', 'HR')],
            [staff('E1', 'Alice', 'Sales')],
            config,
        )

        assert [(r.key, r.action) for r in results] == [
            (('E1', 'Sales'), SyncAction.KEEP),
            (('E1', 'HR'), SyncAction.ADD),
        ]

    def test_required_result_column_resolving_to_null(self, config_dict, make_config):
        tables = config_dict['tables']
        for column in tables['sync_result']['columns']:
            column['required'] = column['name'] in ('name', 'department')
        config = make_config(tables=tables)

        with pytest.raises(DataConsistencyError, match=r"ADD row for key \['E1'\].*\['department'\]") as exc_info:
            reconcile([staff('E1', 'Alice')], [], config)

        assert exc_info.value.table == 'sync_result'


# =============================================================================
# Batches
# =============================================================================

class TestBatch:
    """Tests for mixed batches."""

    def test_mixed_batch_order(self, config, provided_rows, current_rows):
        results = reconcile(provided_rows, current_rows, config)

        # Provided order first, then unmatched current rows in current order
        assert actions(results) == [
            ('E1', SyncAction.KEEP),
            ('E2', SyncAction.UPDATE),
            ('E4', SyncAction.ADD),
            ('E3', SyncAction.DELETE),
        ]

    def test_partition_is_complete(self, config, provided_rows, current_rows):
        results = reconcile(provided_rows, current_rows, config)
        keys = [r.key for r in results]
        all_keys = {(r['employee_id'],) for r in provided_rows + current_rows}
        assert sorted(keys) == sorted(all_keys)
        assert len(keys) == len(set(keys))

    def test_idempotent(self, config, provided_rows, current_rows):
        first = reconcile(provided_rows, current_rows, config)
        second = reconcile(provided_rows, current_rows, config)
        assert [r.as_record() for r in first] == [r.as_record() for r in second]

    def test_null_versus_value_is_a_change(self, config):
        results = reconcile([staff('E1', 'Alice', None)], [staff('E1', 'Alice', 'Sales')], config)
        assert results[0].action is SyncAction.UPDATE
        # Null provided department falls through to the current value
        assert results[0].fields['department'] == 'Sales'

    def test_changed_columns(self, config):
        engine = ReconciliationEngine(config)
        assert engine.changed_columns(staff('E1', 'Bob', 'HR'), staff('E1', 'Bob', 'Sales')) == ['department']

    def test_custom_action_codes(self, make_config, provided_rows, current_rows):
        config = make_config(sync_actions={
            'ADD': {'code': 'A'}, 'UPDATE': {'code': 'U'}, 'DELETE': {'code': 'D'}, 'KEEP': {'code': 'K'},
        })
        results = reconcile(provided_rows, current_rows, config)
        assert [r.code for r in results] == ['K', 'U', 'A', 'D']

    def test_count_actions(self, config, provided_rows, current_rows):
        counts = count_actions(reconcile(provided_rows, current_rows, config))
        assert counts == {
            SyncAction.ADD: 1, SyncAction.UPDATE: 1, SyncAction.DELETE: 1, SyncAction.KEEP: 1,
        }

    def test_missing_comparison_column(self, config):
        current = [{'employee_id': 'E1', 'name': 'Alice'}]
        with pytest.raises(ConfigurationError, match='department'):
            reconcile([staff('E1', 'Alice')], current, config)


# =============================================================================
# Column mappings
# =============================================================================

class TestColumnMappings:
    """Tests for provided -> current name translation."""

    @pytest.fixture
    def mapped_config(self, config_dict, make_config):
        tables = config_dict['tables']
        tables['current_data'] = {
            'key_columns': ['emp_no'],
            'columns': [{'name': 'emp_no'}, {'name': 'full_name', 'required': True}, {'name': 'dept'}],
        }
        return make_config(
            tables=tables,
            column_mappings={'employee_id': 'emp_no', 'name': 'full_name', 'department': 'dept'},
        )

    def test_join_and_compare_through_mapping(self, mapped_config):
        provided = [staff('E1', 'Bob', 'HR'), staff('E2', 'Cy', 'IT')]
        current = [
            {'emp_no': 'E1', 'full_name': 'Alice', 'dept': 'HR'},
            {'emp_no': 'E2', 'full_name': 'Cy', 'dept': 'IT'},
            {'emp_no': 'E3', 'full_name': 'Dee', 'dept': None},
        ]

        results = reconcile(provided, current, mapped_config)

        assert actions(results) == [
            ('E1', SyncAction.UPDATE),
            ('E2', SyncAction.KEEP),
            ('E3', SyncAction.DELETE),
        ]
        assert results[2].fields == {'employee_id': 'E3', 'name': 'Dee', 'department': None}


# =============================================================================
# Re-admission of excluded current rows
# =============================================================================

class TestExcludedAsKeep:
    """Tests for output_excluded_as_keep on current_data."""

    @pytest.fixture
    def readmit_config(self, make_config):
        return make_config(data_filters={'current_data': {
            'rules': [{'field': 'employee_id', 'type': 'exclude', 'glob': 'SYS*'}],
            'output_excluded_as_keep': True,
        }})

    def test_excluded_rows_appended_as_keep(self, readmit_config):
        results = reconcile(
            [staff('E1', 'Alice')],
            [staff('E1', 'Alice')],
            readmit_config,
            excluded_current=[staff('SYS1', 'Service', 'IT')],
        )

        assert actions(results) == [('E1', SyncAction.KEEP), ('SYS1', SyncAction.KEEP)]
        assert results[-1].readmitted is True
        assert results[-1].fields == {'employee_id': 'SYS1', 'name': 'Service', 'department': 'IT'}

    def test_flag_off_ignores_excluded_rows(self, config):
        results = reconcile([], [], config, excluded_current=[staff('SYS1', 'Service')])
        assert results == []

    def test_provided_flag_has_no_effect(self, make_config):
        config = make_config(data_filters={'provided_data': {'output_excluded_as_keep': True}})
        results = reconcile([], [], config, excluded_current=[staff('SYS1', 'Service')])
        assert results == []

    def test_collision_with_provided_key_warns(self, readmit_config, caplog):
        with caplog.at_level(logging.WARNING, logger='StaffSync.Engine'):
            results = reconcile(
                [staff('SYS1', 'Service')],
                [],
                readmit_config,
                excluded_current=[staff('SYS1', 'Service')],
            )

        assert actions(results) == [('SYS1', SyncAction.ADD), ('SYS1', SyncAction.KEEP)]
        assert 'shares its key' in caplog.text


class TestSyncResultRow:
    """Tests for SyncResultRow."""

    def test_as_record_appends_code(self):
        row = SyncResultRow(action=SyncAction.ADD, code='1', key=('E1',), fields={'employee_id': 'E1'})
        assert row.as_record() == {'employee_id': 'E1', 'sync_action': '1'}
