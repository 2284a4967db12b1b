"""
Structured logging for offerdesk.

Uses structlog with pretty console output for development and JSON output
for production. Entity ids are bound per call, e.g.
``log.info("offer_accepted", offer_id=...)``.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Generator

import structlog
from structlog.types import Processor

from offerdesk.config import get_settings


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # sys.stderr is looked up per logger; CLI runners swap it out
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: If True, output JSON logs. Defaults to settings.log_json.
        log_level: Override log level (defaults to settings.log_level)
    """
    settings = get_settings()
    if json_output is None:
        json_output = settings.log_json
    level = log_level or settings.log_level
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level_num,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


@contextmanager
def actor_context(actor_id: str | None) -> Generator[None, None, None]:
    """Bind the acting party to every log line emitted inside the block."""
    if actor_id is None:
        yield
        return
    with structlog.contextvars.bound_contextvars(actor_id=actor_id):
        yield
