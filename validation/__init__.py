"""
Validation module for StaffSync.

Provides the reconciliation configuration model, sync action codes,
runtime settings, and the error taxonomy shared by every component.
"""

from validation.errors import (
    StaffSyncError,
    ConfigurationError,
    DataConsistencyError,
    ExternalError,
    classify_exception,
)
from validation.actions import SyncAction, ActionCodes
from validation.config import StaffSyncConfig, validate_config, load_config

__all__ = [
    'StaffSyncError',
    'ConfigurationError',
    'DataConsistencyError',
    'ExternalError',
    'classify_exception',
    'SyncAction',
    'ActionCodes',
    'StaffSyncConfig',
    'validate_config',
    'load_config',
]
