"""
Structured logging for storyloom.

structlog is configured once by the process entry point (``storyloom serve``,
``storyloom generate``); library modules only ever call ``get_logger``.
Events are dotted names with key/value fields::

    logger = get_logger(__name__)
    logger.info("invocation.attempt", label="openai.images", attempt=2, outcome="timeout")

Rendering:
    JSON (default when stdout is not a TTY)   ECS field names: ``@timestamp``,
                                              ``log.level``, ``service.name``
    console (TTY)                             colored key=value lines

Fields bound with :class:`LogContext` are merged into every record emitted
inside the block, including records from the resilience layer.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# ECS renames applied in JSON mode
_ECS_FIELDS = {"timestamp": "@timestamp", "level": "log.level"}


class _ServiceName:
    """Processor stamping ``service.name`` on every record."""

    def __init__(self, service: str) -> None:
        self._service = service

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", self._service)
        return event_dict


def _rename_ecs_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for field, ecs_field in _ECS_FIELDS.items():
        if field in event_dict:
            event_dict[ecs_field] = event_dict.pop(field)
    return event_dict


def _processors(service: str, json_format: bool, add_timestamp: bool) -> list[Processor]:
    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _ServiceName(service),
    ]
    if json_format:
        processors += [_rename_ecs_fields, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "storyloom",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and stdlib logging underneath it).

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None to pick JSON
            when stdout is not a TTY
        service: Value of ``service.name`` on every record
        add_timestamp: Include an ISO timestamp
    """
    if json_format is None:
        json_format = not sys.stdout.isatty()
    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=_processors(service, json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx and uvicorn log through stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger named ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Previous values of the same keys are restored on exit, so blocks nest.

    Example:
        async with LogContext(upstream="openai.images", request_id="abc123"):
            await gateway.call(operation)
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = ["LogContext", "configure_logging", "get_logger"]
