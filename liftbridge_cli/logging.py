"""
Structured logging for the Liftbridge CLI.

Uses structlog; log lines go to stderr so that command output on stdout
stays machine-readable.

Usage:
    from liftbridge_cli.logging import get_logger

    logger = get_logger(__name__)
    logger.debug("stream created", stream="foo")
"""

import datetime
import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, FilteringBoundLogger, Processor


def add_timestamp(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add UTC ISO 8601 timestamp to log events."""
    event_dict["timestamp"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    return event_dict


def _stderr_logger_factory(*args: Any) -> structlog.PrintLogger:
    # Resolved per logger so a swapped sys.stderr (test runners) is honoured
    return structlog.PrintLogger(sys.stderr)


def configure_logging(json_output: bool = False, log_level: str = "WARNING") -> None:
    """
    Configure structlog for the process.

    Called once by the CLI entry point.

    Args:
        json_output: Emit JSON lines instead of the console format
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


def bind_command(command: str) -> None:
    """Attach the running command name to every following log line."""
    structlog.contextvars.bind_contextvars(command=command)


def get_logger(name: str, **initial_context: Any) -> FilteringBoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name, **initial_context)
