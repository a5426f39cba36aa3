"""Logging configuration for pingpong."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "PINGPONG_LOG_LEVEL"


def configure_logging(console: Console | None = None, default: str = "WARNING") -> int:
    """Configure application-wide logging through rich.

    The level comes from the PINGPONG_LOG_LEVEL environment variable
    (DEBUG, INFO, WARNING, ERROR, CRITICAL), falling back to ``default``.
    Warnings are the default so log lines don't tear the live table.

    Returns the level that was applied.
    """
    level_name = os.environ.get(LOG_LEVEL_ENV, default).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.getLevelName(default.upper())

    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger(__name__).debug("Logging configured: level=%s", logging.getLevelName(level))
    return level
