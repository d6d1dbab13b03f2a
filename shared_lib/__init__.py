"""
shared_lib — File-level helpers used around the reconciliation core.

Public API:
    GlobMatcher, compile_glob     -- portable, case-sensitive glob matching
    read_rows                     -- typed CSV ingestion
    HistoryArchiver               -- timestamped history copies
"""

from shared_lib.glob_matcher import GlobMatcher, compile_glob, glob_to_regex
from shared_lib.csv_io import read_rows
from shared_lib.history import HistoryArchiver

__all__ = [
    "GlobMatcher",
    "compile_glob",
    "glob_to_regex",
    "read_rows",
    "HistoryArchiver",
]
