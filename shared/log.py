"""
StaffSync logging helpers.

Components emit semantic log events (counts, action breakdowns, filenames)
rather than formatting console output themselves. Each event is a message
plus optional contextual fields, which the JSON formatter configured in
shared.logging_config renders as top-level keys.

This module provides a factory to create log functions with a component name,
eliminating the need to repeat logger lookup in every module.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Engine")
    log_info("Reconciliation complete", added=3, deleted=1)
"""

import logging

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ROOT_LOGGER_NAME = "StaffSync"


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name suffix. If provided, the logger name becomes
                   "StaffSync.{component}", otherwise "StaffSync".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
        Each accepts a message and keyword context fields; pass exc_info=True
        to attach the active traceback.
    """
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logger = logging.getLogger(name)

    def _emitter(level):
        def emit(msg, exc_info=False, **fields):
            if logger.isEnabledFor(level):
                logger.log(level, msg, exc_info=exc_info, extra={"component": component or None, **fields})
        return emit

    return (
        _emitter(TRACE),
        _emitter(logging.DEBUG),
        _emitter(logging.INFO),
        _emitter(logging.WARNING),
        _emitter(logging.ERROR),
    )
