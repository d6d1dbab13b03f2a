"""
Configuration validation for StaffSync.

Provides pydantic v2 models for the reconciliation settings with fail-fast
behavior and defaults matching the staff_info / staff_master schema. All
cross-references (key columns, column mappings, field-source chains, filter
rule fields, output columns) are checked at load time so that reconciliation
never meets a configuration problem half way through a run.
"""

import codecs
import json
import logging
import re
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, PrivateAttr, ValidationError, field_validator, model_validator

from validation.actions import DEFAULT_ACTION_CODES, ActionCodes, SyncAction
from validation.errors import ConfigurationError

if TYPE_CHECKING:
    from shared_lib.glob_matcher import GlobMatcher

log = logging.getLogger('StaffSync.config')

PROVIDED_TABLE = 'provided_data'
CURRENT_TABLE = 'current_data'
RESULT_TABLE = 'sync_result'
SYNC_ACTION_COLUMN = 'sync_action'

# Columns managed by the store itself
RESERVED_COLUMNS = frozenset({'id', 'created_at', 'updated_at', SYNC_ACTION_COLUMN})

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

STAFF_COLUMNS = (
    'employee_id', 'card_number', 'name', 'department',
    'position', 'email', 'phone', 'hire_date',
)


# =============================================================================
# Table schema
# =============================================================================

class ColumnSpec(BaseModel):
    """A declared table column.

    Attributes:
        name: Column name in the store (SQL identifier)
        type: TEXT, INTEGER or DATE (ISO text)
        required: Reject rows where the value is null
        csv_header: Header label in the input CSV when it differs from name
    """
    name: str
    type: Literal['TEXT', 'INTEGER', 'DATE'] = 'TEXT'
    required: bool = False
    csv_header: Optional[str] = None

    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"column name {v!r} is not a valid identifier")
        if v.lower() in RESERVED_COLUMNS:
            raise ValueError(f"column name {v!r} is reserved")
        return v

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return v.upper() if isinstance(v, str) else v


class CsvSettings(BaseModel):
    """How an input file is laid out."""
    delimiter: str = Field(default=',', min_length=1, max_length=1)
    encoding: str = 'utf-8-sig'
    has_header: bool = True

    @field_validator('encoding', mode='after')
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}")
        return v


class TableConfig(BaseModel):
    """Schema and key of one table."""
    key_columns: list[str] = Field(min_length=1)
    columns: list[ColumnSpec] = Field(min_length=1)
    csv: CsvSettings = Field(default_factory=CsvSettings)

    @model_validator(mode='after')
    def validate_keys(self) -> 'TableConfig':
        names = [c.name for c in self.columns]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate column names: {dupes}")
        missing = [k for k in self.key_columns if k not in names]
        if missing:
            raise ValueError(f"key columns not declared as columns: {missing}")
        if len(set(self.key_columns)) != len(self.key_columns):
            raise ValueError("key columns must not repeat")
        return self

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> ColumnSpec:
        for spec in self.columns:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def is_required(self, name: str) -> bool:
        return name in self.key_columns or self.column(name).required


def _staff_table(required: tuple[str, ...] = ('name',)) -> dict:
    return {
        'key_columns': ['employee_id'],
        'columns': [
            {'name': name, 'type': 'DATE' if name == 'hire_date' else 'TEXT', 'required': name in required}
            for name in STAFF_COLUMNS
        ],
    }


class TablesConfig(BaseModel):
    provided_data: TableConfig = Field(default_factory=lambda: TableConfig(**_staff_table()))
    current_data: TableConfig = Field(default_factory=lambda: TableConfig(**_staff_table()))
    sync_result: TableConfig = Field(default_factory=lambda: TableConfig(**_staff_table()))

    def get(self, table: str) -> TableConfig:
        if table not in (PROVIDED_TABLE, CURRENT_TABLE, RESULT_TABLE):
            raise KeyError(table)
        return getattr(self, table)


# =============================================================================
# Field-source chains
# =============================================================================

class ProvidedSource(BaseModel):
    source: Literal['provided_data']
    field: str


class CurrentSource(BaseModel):
    source: Literal['current_data']
    field: str


class FixedSource(BaseModel):
    source: Literal['fixed_value']
    value: Union[int, str, date, None] = None

    @field_validator('value', mode='after')
    @classmethod
    def normalize_date(cls, v):
        # YAML turns an unquoted 2024-04-01 into a date; rows carry ISO text
        return v.isoformat() if isinstance(v, date) else v


FieldSource = Annotated[
    Union[ProvidedSource, CurrentSource, FixedSource],
    Field(discriminator='source'),
]
FieldSourceChain = list[FieldSource]


# =============================================================================
# Filters, actions, output
# =============================================================================

class FilterRule(BaseModel):
    """Glob include/exclude rule applied to one field before reconciliation."""
    field: str
    type: Literal['include', 'exclude']
    glob: str

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator('glob', mode='after')
    @classmethod
    def validate_glob(cls, v: str) -> str:
        from shared_lib.glob_matcher import compile_glob
        compile_glob(v)  # GlobPatternError is a ValueError
        return v

    def matcher(self) -> 'GlobMatcher':
        from shared_lib.glob_matcher import GlobMatcher
        return GlobMatcher(self.glob)


class TableFilter(BaseModel):
    rules: list[FilterRule] = Field(default_factory=list)
    output_excluded_as_keep: bool = False


class ActionSetting(BaseModel):
    code: str = Field(min_length=1)
    enabled: bool = True

    @field_validator('code', mode='before')
    @classmethod
    def coerce_code(cls, v):
        # YAML turns unquoted 1 into an int
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class HistorySettings(BaseModel):
    directory: Optional[str] = Field(
        default=None,
        description="Directory receiving timestamped copies of exported (and optionally input) files"
    )
    archive_inputs: bool = False


class OutputConfig(BaseModel):
    """CSV export settings.

    columns defaults to every sync_result column followed by sync_action.
    headers optionally relabels columns in the header row.
    """
    columns: Optional[list[str]] = None
    headers: dict[str, str] = Field(default_factory=dict)
    delimiter: str = Field(default=',', min_length=1, max_length=1)
    encoding: str = 'utf-8'
    include_header: bool = True
    history: HistorySettings = Field(default_factory=HistorySettings)

    @field_validator('encoding', mode='after')
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}")
        return v


def _default_sync_actions() -> dict:
    return {action: ActionSetting(code=code) for action, code in DEFAULT_ACTION_CODES.items()}


# Input rows present when a row of each action is resolved
_ACTION_INPUTS = {
    SyncAction.ADD: frozenset({PROVIDED_TABLE}),
    SyncAction.UPDATE: frozenset({PROVIDED_TABLE, CURRENT_TABLE}),
    SyncAction.DELETE: frozenset({CURRENT_TABLE}),
    SyncAction.KEEP: frozenset({PROVIDED_TABLE, CURRENT_TABLE}),
}


def _chain_can_resolve(chain: list, inputs: frozenset) -> bool:
    for source in chain:
        if isinstance(source, FixedSource):
            if source.value is not None:
                return True
        elif source.source in inputs:
            return True
    return False


# =============================================================================
# Top-level configuration
# =============================================================================

class StaffSyncConfig(BaseModel):
    """
    StaffSync reconciliation configuration with validation.

    Sections:
        tables: Schemas and key columns of provided_data, current_data, sync_result
        column_mappings: provided column -> current column, used for comparison and join
        sync_actions: Per-action code and export enablement (defaults 1/2/3/9, all enabled)
        field_sources: Per-action, per-column field-source chains for sync_result
        data_filters: Glob rules per input table
        output: CSV export settings
    """

    tables: TablesConfig = Field(default_factory=TablesConfig)
    column_mappings: dict[str, str] = Field(
        default_factory=lambda: {name: name for name in STAFF_COLUMNS}
    )
    sync_actions: dict[SyncAction, ActionSetting] = Field(default_factory=_default_sync_actions)
    field_sources: dict[SyncAction, dict[str, FieldSourceChain]] = Field(default_factory=dict)
    data_filters: dict[Literal['provided_data', 'current_data'], TableFilter] = Field(default_factory=dict)
    output: OutputConfig = Field(default_factory=OutputConfig)

    _action_codes: Optional[ActionCodes] = PrivateAttr(default=None)
    _chains: dict = PrivateAttr(default_factory=dict)

    @field_validator('sync_actions', mode='before')
    @classmethod
    def merge_action_defaults(cls, v):
        """Fill in actions the file leaves out with their default code."""
        if not isinstance(v, dict):
            return v
        merged: dict[str, Any] = {
            action.value: {'code': code, 'enabled': True}
            for action, code in DEFAULT_ACTION_CODES.items()
        }
        for key, setting in v.items():
            name = key.value if isinstance(key, SyncAction) else str(key).upper()
            if isinstance(setting, ActionSetting):
                setting = setting.model_dump()
            if isinstance(setting, dict):
                merged[name] = {**merged.get(name, {}), **setting}
            else:
                merged[name] = setting
        return merged

    @field_validator('field_sources', mode='before')
    @classmethod
    def normalize_action_keys(cls, v):
        if not isinstance(v, dict):
            return v
        return {(k.value if isinstance(k, SyncAction) else str(k).upper()): chains for k, chains in v.items()}

    @model_validator(mode='after')
    def validate_references(self) -> 'StaffSyncConfig':
        provided = self.tables.provided_data
        current = self.tables.current_data
        result = self.tables.sync_result

        # Column mappings: one-to-one between declared columns
        if not self.column_mappings:
            raise ConfigurationError("column_mappings must not be empty")
        unknown = [c for c in self.column_mappings if c not in provided.column_names]
        if unknown:
            raise ConfigurationError(f"column_mappings reference unknown provided_data columns: {unknown}")
        unknown = [c for c in self.column_mappings.values() if c not in current.column_names]
        if unknown:
            raise ConfigurationError(f"column_mappings reference unknown current_data columns: {unknown}")
        targets = list(self.column_mappings.values())
        shared = sorted({t for t in targets if targets.count(t) > 1})
        if shared:
            raise ConfigurationError(f"column_mappings are not one-to-one; shared targets: {shared}")

        # Join keys must line up through the mapping
        unmapped = [k for k in provided.key_columns if k not in self.column_mappings]
        if unmapped:
            raise ConfigurationError(f"provided_data key columns have no column mapping: {unmapped}")
        mapped_keys = [self.column_mappings[k] for k in provided.key_columns]
        if sorted(mapped_keys) != sorted(current.key_columns):
            raise ConfigurationError(
                f"provided_data key columns map to {mapped_keys}, "
                f"but current_data key columns are {current.key_columns}"
            )

        self._action_codes = ActionCodes(
            {action: setting.code for action, setting in self.sync_actions.items()},
            {action: setting.enabled for action, setting in self.sync_actions.items()},
        )

        self._chains = self._resolve_chains()

        for table, table_filter in self.data_filters.items():
            names = self.tables.get(table).column_names
            bad = [rule.field for rule in table_filter.rules if rule.field not in names]
            if bad:
                raise ConfigurationError(f"data_filters.{table} rules reference unknown columns: {bad}")
            if table == PROVIDED_TABLE and table_filter.output_excluded_as_keep:
                # Re-admission only applies to current_data exclusions
                log.warning(
                    "data_filters.provided_data.output_excluded_as_keep is ignored; "
                    "only current_data exclusions are re-admitted as KEEP"
                )

        allowed = result.column_names + [SYNC_ACTION_COLUMN]
        bad = [c for c in self.output_columns if c not in allowed]
        if bad:
            raise ConfigurationError(f"output.columns reference unknown sync_result columns: {bad}")
        bad = [c for c in self.output.headers if c not in self.output_columns]
        if bad:
            raise ConfigurationError(f"output.headers reference columns not exported: {bad}")
        return self

    def _resolve_chains(self) -> dict:
        """Merge explicit field_sources with default chains for every action/column."""
        provided = self.tables.provided_data
        current = self.tables.current_data
        result = self.tables.sync_result
        chains: dict[SyncAction, dict[str, list]] = {}

        for action, columns in self.field_sources.items():
            unknown = [c for c in columns if c not in result.column_names]
            if unknown:
                raise ConfigurationError(
                    f"field_sources.{action.value} reference unknown sync_result columns: {unknown}"
                )
            for column, chain in columns.items():
                for source in chain:
                    if isinstance(source, ProvidedSource) and source.field not in provided.column_names:
                        raise ConfigurationError(
                            f"field_sources.{action.value}.{column}: unknown provided_data field {source.field!r}"
                        )
                    if isinstance(source, CurrentSource) and source.field not in current.column_names:
                        raise ConfigurationError(
                            f"field_sources.{action.value}.{column}: unknown current_data field {source.field!r}"
                        )

        for action in SyncAction:
            explicit = self.field_sources.get(action, {})
            chains[action] = {}
            for column in result.column_names:
                if column in explicit:
                    chain = list(explicit[column])
                else:
                    chain = self._default_chain(action, column)
                if result.is_required(column):
                    self._check_required_chain(action, column, chain)
                chains[action][column] = chain
        return chains

    def _check_required_chain(self, action: SyncAction, column: str, chain: list) -> None:
        """A required sync_result column needs a source that exists for the action."""
        if not chain:
            raise ConfigurationError(
                f"sync_result column {column!r} is required but has no source for {action.value}"
            )
        if not _chain_can_resolve(chain, _ACTION_INPUTS[action]):
            raise ConfigurationError(
                f"sync_result column {column!r} is required but no source in its {action.value} "
                f"chain is available ({action.value} rows only have {sorted(_ACTION_INPUTS[action])})"
            )
        readmitted = action == SyncAction.KEEP and self.output_excluded_as_keep
        if readmitted and not _chain_can_resolve(chain, frozenset({CURRENT_TABLE})):
            raise ConfigurationError(
                f"sync_result column {column!r} is required but its KEEP chain has no source "
                f"for re-admitted current_data rows"
            )

    def _default_chain(self, action: SyncAction, column: str) -> list:
        """Provided value for ADD, current value for DELETE, provided then current otherwise."""
        chain: list = []
        if action != SyncAction.DELETE and column in self.tables.provided_data.column_names:
            chain.append(ProvidedSource(source='provided_data', field=column))
        if action != SyncAction.ADD:
            current_name = self.column_mappings.get(column, column)
            if current_name in self.tables.current_data.column_names:
                chain.append(CurrentSource(source='current_data', field=current_name))
        return chain

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def action_codes(self) -> ActionCodes:
        return self._action_codes

    @property
    def output_columns(self) -> list[str]:
        if self.output.columns:
            return list(self.output.columns)
        return self.tables.sync_result.column_names + [SYNC_ACTION_COLUMN]

    @property
    def comparison_columns(self) -> list[tuple[str, str]]:
        """(provided, current) column pairs compared to tell UPDATE from KEEP."""
        return list(self.column_mappings.items())

    @property
    def current_key_columns(self) -> list[str]:
        """current_data key columns in provided key order."""
        return [self.column_mappings[k] for k in self.tables.provided_data.key_columns]

    def chains_for(self, action: SyncAction) -> dict[str, list]:
        return self._chains[action]

    def filter_rules(self, table: str) -> list[FilterRule]:
        table_filter = self.data_filters.get(table)
        return list(table_filter.rules) if table_filter else []

    @property
    def output_excluded_as_keep(self) -> bool:
        """Whether current_data rows dropped by the filter come back as KEEP."""
        table_filter = self.data_filters.get(CURRENT_TABLE)
        return bool(table_filter and table_filter.output_excluded_as_keep)

    def log_config(self) -> None:
        """Log a one-line summary of the reconciliation settings."""
        codes = self.action_codes
        actions = ", ".join(
            f"{a.value}={codes.code(a)}{'' if codes.is_enabled(a) else '(off)'}" for a in SyncAction
        )
        rules = {t: len(self.filter_rules(t)) for t in (PROVIDED_TABLE, CURRENT_TABLE)}
        log.info(
            f"StaffSync config: keys={self.tables.provided_data.key_columns}->{self.current_key_columns}, "
            f"compared_columns={len(self.column_mappings)}, actions=[{actions}], "
            f"filter_rules={rules}, excluded_as_keep={self.output_excluded_as_keep}, "
            f"output_columns={self.output_columns}"
        )
        disabled = [a.value for a in SyncAction if not codes.is_enabled(a)]
        if len(disabled) == len(SyncAction):
            log.warning("All sync actions are disabled; the export will contain no rows")


def validate_config(config_dict: dict) -> tuple[Optional[StaffSyncConfig], Optional[str]]:
    """
    Validate configuration dictionary and return StaffSyncConfig or error message.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (StaffSyncConfig, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = StaffSyncConfig(**config_dict)
        return (config, None)
    except ValidationError as e:
        # Extract user-friendly error messages
        errors = []
        for error in e.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            msg = error['msg']
            errors.append(f"{field}: {msg}" if field else msg)
        error_message = '; '.join(errors)
        return (None, error_message)


def read_config_file(path: Union[str, Path]) -> dict:
    """Read a JSON or YAML configuration file into a dict."""
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        if path.suffix.lower() in ('.yml', '.yaml'):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Configuration file {path} could not be parsed: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the top level")
    return data


def load_config(path: Union[str, Path]) -> StaffSyncConfig:
    """Load and validate a configuration file.

    Raises:
        ConfigurationError: file missing, unparseable, or invalid
    """
    config, error = validate_config(read_config_file(path))
    if config is None:
        raise ConfigurationError(f"Invalid configuration in {path}: {error}")
    return config


# Re-export ValidationError for external use
__all__ = [
    'StaffSyncConfig',
    'TableConfig',
    'ColumnSpec',
    'CsvSettings',
    'FilterRule',
    'TableFilter',
    'ProvidedSource',
    'CurrentSource',
    'FixedSource',
    'FieldSource',
    'validate_config',
    'load_config',
    'read_config_file',
    'ValidationError',
]
