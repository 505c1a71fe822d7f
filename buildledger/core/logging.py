"""Structured logging for the CLI and the web layer.

Every event logged while a branch is bound carries a ``country`` key, so
egypt and libya activity can be told apart in a single log stream.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

_branch: ContextVar[str | None] = ContextVar("buildledger_branch", default=None)


def add_branch(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the bound branch on the event unless the call already names one."""
    branch = _branch.get()
    if branch is not None:
        event_dict.setdefault("country", branch)
    return event_dict


def build_processors(json_format: bool) -> list[Processor]:
    """Processor chain ending in a JSON or console renderer."""
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    return [
        structlog.contextvars.merge_contextvars,
        add_branch,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    structlog.configure(
        processors=build_processors(json_format),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level.upper(),
    )


def bind_branch(country: str, **extra: Any) -> None:
    """Attach a branch (and any extra keys) to every log line of the current context."""
    _branch.set(country)
    if extra:
        structlog.contextvars.bind_contextvars(**extra)


def clear_branch() -> None:
    _branch.set(None)
    structlog.contextvars.clear_contextvars()
