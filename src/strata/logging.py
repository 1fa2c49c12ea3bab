"""Structured logging setup for Strata.

All components log through structlog with snake_case event names and
keyword fields, e.g. ``log.info("migrated", migration=name, batch=3)``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Configure structlog for the process.

    Logs go to stderr so that command output on stdout stays readable.

    Args:
        json_output: Render JSON lines instead of the console format.
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
    """
    renderer: structlog.typing.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a logger bound to a component name."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(component=name)


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # sys.stderr is looked up per logger so redirected streams are honoured.
    return structlog.PrintLogger(sys.stderr)
