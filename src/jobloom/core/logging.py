"""
Structured logging for jobloom.

Graph builds, the local engine and task processes all log through structlog,
so one job's events can be lined up no matter which process emitted them.

Manifesto:
    A job graph runs in many processes. Every event should say which graph,
    job, stage and process it came from.

    - **Structures:** JSON lines for aggregation, a console renderer on a TTY
    - **Correlates:** graph / job / stage bound through contextvars
    - **Locates:** the emitting process id, so pool workers are told apart

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="jobloom")
        configure_from_settings(settings)          ─ LoomSettings → the above
            ↓
        structlog processor chain:
          1. TimeStamper (optional, ISO/UTC)
          2. merge_contextvars     (graph, job, stage bound by LogContext)
          3. add_log_level
          4. _add_origin           (service, pid)
          5. JSONRenderer (or ConsoleRenderer on a TTY)

Examples:
    >>> from jobloom.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.info("graph.job_submitted", job="word-count-1", index=1, total=2)

Tags:
    logging, structlog, observability, jobloom

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from jobloom.core.settings import LoomSettings

_service = "jobloom"


def _add_origin(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag events with the service name and emitting process."""
    event_dict.setdefault("service", _service)
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "jobloom",
    add_timestamp: bool = True,
) -> None:
    """Install the jobloom structlog configuration process-wide.

    Args:
        level: Minimum level name, e.g. ``"DEBUG"`` or ``"WARNING"``
        json_format: Force JSON (True) or console (False) rendering; ``None``
            renders JSON unless stderr is a terminal
        service: Value of the ``service`` field on every event
        add_timestamp: Prefix events with an ISO-8601 UTC timestamp
    """
    global _service
    _service = service
    threshold = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_origin,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    # loggers are not cached so a reconfiguration (or a swapped stderr) takes effect
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=threshold)


def configure_from_settings(settings: LoomSettings, service: str = "jobloom") -> None:
    """Configure logging from ``log_level`` / ``log_format`` settings."""
    fmt = settings.log_format.lower()
    json_format = None if fmt == "auto" else fmt == "json"
    configure_logging(level=settings.log_level, json_format=json_format, service=service)


def get_logger(name: str | None = None) -> Any:
    """Structured logger; ``name`` (usually ``__name__``) is bound as ``logger_name``.

    The proxy stays lazy, so loggers created at import time still pick up a
    later ``configure_logging`` call. ``logger`` is not usable as the key since
    ``structlog.get_logger`` reserves it for the wrapped logger.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind ``kwargs`` to every event logged inside the ``with`` block.

    Example:
        with LogContext(graph="word-count", job="word-count-1"):
            logger.info("engine.job_started")
    """

    def __init__(self, **fields: Any):
        self.fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self.fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        unbind_context(*self.fields)


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
