"""
Project-wide logging setup for upswatch.

Provides a simple, consistent console logger with optional JSON output.
Controlled via environment variables:
- UPSWATCH_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
- UPSWATCH_LOG_FORMAT: text|json (default: text)
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger import jsonlogger

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _get_level(default: str = "INFO") -> int:
    level = os.getenv("UPSWATCH_LOG_LEVEL", default).upper()
    return getattr(logging, level, logging.INFO)


def _build_formatter() -> logging.Formatter:
    fmt = os.getenv("UPSWATCH_LOG_FORMAT", "text").lower()
    if fmt == "json":
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    force: bool = False,
    *,
    logger: Optional[logging.Logger] = None,
    level: Optional[str] = None,
) -> None:
    """Configure root logging for console output.

    If a handler is already present and force is False, this is a no-op.
    An explicit ``level`` (as passed by the CLI's -v/-q flags) wins over
    UPSWATCH_LOG_LEVEL.
    """
    target_logger = logger or logging.getLogger()
    if target_logger.handlers and not force:
        return

    if force:
        for h in list(target_logger.handlers):
            target_logger.removeHandler(h)

    if level:
        target_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    else:
        target_logger.setLevel(_get_level())

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter())
    target_logger.addHandler(handler)
