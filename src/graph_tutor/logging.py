"""Structured logging for graph_tutor.

Events are snake_case names with keyword context. A chat turn binds
its root_id (and later node_id) into structlog contextvars, so every
event logged while serving the turn carries them, even from services
that do not know which turn they are serving.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from graph_tutor.config import LoggingSettings

__all__ = [
    "configure_logging",
    "get_logger",
    "log_context",
]

_NOISY_LOGGERS = ("httpx", "httpcore", "motor", "pymongo", "openai", "anthropic")


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Level and renderer options, loaded from the
            environment (GRAPH_TUTOR_LOG_*) when omitted
    """
    settings = settings or LoggingSettings()
    level = getattr(logging, settings.level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=settings.colors,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, usually with the calling module's __name__."""
    return structlog.get_logger(name)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind values to every event logged inside the block.

    Bindings are task-local, so concurrent turns do not mix.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


configure_logging()
