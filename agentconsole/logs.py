"""structlog setup for agentconsole.

The TUI owns the terminal while it runs, so logs go to a file there and
to stderr everywhere else.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("console", "json")


def configure_logging(
    level: str = "warning",
    log_format: str = "console",
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog processors, level filter, and output."""
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level!r}")
    if log_format == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=stream is None and sys.stderr.isatty(),
        )
    elif log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        raise ValueError(f"Invalid log format: {log_format!r}")

    if stream is None:
        factory = structlog.PrintLoggerFactory(sys.stderr)
    else:
        factory = structlog.WriteLoggerFactory(stream)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=False,
    )
