"""Logging configuration for StaffSync runs (structured JSON or plain text)."""

from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import json as jsonlogger

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(log_level: str, log_format: str = "json", log_file: Optional[str] = None) -> None:
    """Configure root logger output.

    JSON output format: {"ts": "...", "level": "...", "name": "...", "msg": "...", <fields>}

    Args:
        log_level: Logging level string (e.g., "info", "debug", "trace").
        log_format: "json" for structured output, "text" for human-readable lines.
        log_file: Optional path; when given, records are also written there.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if log_format == "text":
        formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "ts",
                "levelname": "level",
                "message": "msg",
            },
        )

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root_logger = logging.getLogger()
    # Clear any existing handlers to avoid duplicate output
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
