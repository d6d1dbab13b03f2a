#!/usr/bin/env python3
"""
Batch staff reconciliation for StaffSync.

Reads the provided and current staff snapshots, filters them, classifies
every employee as ADD/UPDATE/DELETE/KEEP and exports the enabled actions
to CSV.

Usage:
    python staff_sync.py --provided staff_info.csv --current staff_master.csv \
        --output output/sync_result.csv [--config config/staff-sync.yml]
    python staff_sync.py --check-config --config config/staff-sync.yml

Exit codes: 0 success, 2 configuration error, 3 data error,
4 store/filesystem error, 1 anything else.
"""

import argparse
import json
import sys

from shared.log import create_logger
from shared.logging_config import configure_logging
from validation.errors import StaffSyncError, exit_code_for

log_trace, log_debug, log_info, log_warn, log_error = create_logger("CLI")


def build_parser():
    parser = argparse.ArgumentParser(description='Reconcile provided staff data against the current master')
    parser.add_argument('--config', '-c', help='Reconciliation config file (YAML or JSON)')
    parser.add_argument('--provided', '-p', help='Provided staff CSV (staff_info)')
    parser.add_argument('--current', '-m', help='Current staff CSV (staff_master)')
    parser.add_argument('--output', '-o', help='Output CSV for sync results')
    parser.add_argument('--database', '-d', help='SQLite database file (or :memory:)')
    parser.add_argument('--log-level', help='trace, debug, info, warning or error')
    parser.add_argument('--log-format', choices=['json', 'text'], help='Log output format')
    parser.add_argument('--log-file', help='Also write log records to this file')
    parser.add_argument('--check-config', action='store_true',
                        help='Validate the configuration and exit')
    return parser


def run_sync(settings, config, provided, current, output):
    """Open the store and run one batch. Returns the SyncRunResult."""
    # Import here so --help and --check-config do not touch the store
    from reconciliation.pipeline import SyncPipeline
    from sync_store.store import RowStore

    with RowStore(settings.database_path, config) as store:
        pipeline = SyncPipeline(config, store)
        return pipeline.run(provided, current, output)


def main(argv=None):
    args = build_parser().parse_args(argv)

    # Settings first: they decide how we log
    from validation.settings import load_settings
    try:
        settings = load_settings(
            config_path=args.config,
            database_path=args.database,
            log_level=args.log_level,
            log_format=args.log_format,
            log_file=args.log_file,
        )
    except StaffSyncError as e:
        configure_logging('info', 'text')
        log_error(f"{e}", error=type(e).__name__)
        return exit_code_for(e)

    configure_logging(settings.log_level, settings.log_format, settings.log_file)

    try:
        from validation.config import load_config
        config = load_config(settings.config_path)
        config.log_config()

        if args.check_config:
            log_info("Configuration is valid", config=settings.config_path)
            print(json.dumps(config.model_dump(mode='json'), indent=2))
            return 0

        missing = [name for name in ('provided', 'current', 'output') if not getattr(args, name)]
        if missing:
            log_error("Missing required arguments", missing=[f"--{name}" for name in missing])
            return 2

        result = run_sync(settings, config, args.provided, args.current, args.output)
    except StaffSyncError as e:
        log_error(f"Sync failed: {e}", error=type(e).__name__)
        return exit_code_for(e)
    except Exception as e:
        log_error(f"Unexpected failure: {e}", exc_info=True, error=type(e).__name__)
        return exit_code_for(e)

    log_info(
        f"Sync complete: {result.exported_count} rows exported to {result.output_path}",
        **result.action_counts,
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
