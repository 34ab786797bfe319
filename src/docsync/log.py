"""Structured logging for docsync, rendered through the standard logging module."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog


if TYPE_CHECKING:
    from typing import TextIO


LogLevel = int | str

ROOT_LOGGER = "docsync"


def configure_logging(
    level: LogLevel = "INFO",
    *,
    json_logs: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route docsync log events to `stream` (stderr by default).

    Console output is colored when the stream is a terminal. With `json_logs`,
    every event becomes one JSON line with tracebacks as structured data, which
    suits a long-running `docsync watch` feeding a log collector.

    Args:
        level: Minimum level, as a name or a `logging` constant
        json_logs: Emit JSON lines instead of console output
        stream: Where to write, mainly for tests
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    stream = stream or sys.stderr

    logging.basicConfig(
        level=level,
        handlers=[logging.StreamHandler(stream)],
        force=True,
        format="%(message)s",
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger in the docsync namespace.

    Keyword arguments are bound to every event of the returned logger, e.g. the
    document path of a save coordinator.
    """
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
