"""
Corekit Logging - structlog setup for executors, retry and abort.

Every corekit module logs through ``get_logger(__name__)`` with dotted event
names and keyword fields, for example::

    logger.warning("executor.plugin_already_used", plugin="RetryPlugin")
    logger.info("abort.timeout", pool="ProxyAbortManager", abort_id="req-3")

``configure_logging`` wires structlog once per process; without arguments it
reads ``COREKIT_LOG_LEVEL`` / ``COREKIT_LOG_JSON`` from
:class:`~corekit.core.settings.CorekitSettings`.

Architecture:
    ::

        configure_logging(level=None, json_format=None)
             │   (None → CorekitSettings.log_level / log_json / tty check)
             ▼
        processors:
          TimeStamper(iso) → merge_contextvars → add_log_level
          → add_logger_name → set_exc_info → corekit metadata
          → JSONRenderer | ConsoleRenderer

Examples:
    >>> configure_logging("DEBUG", json_format=True)
    >>> get_logger(__name__).debug("retry.attempt_failed", attempt=0)

Tags:
    logging, structlog, observability, corekit

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service = "corekit"


def _add_corekit_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _service)
    return event_dict


def _build_processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    chain: list[Processor] = []
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.dev.set_exc_info,
        _add_corekit_metadata,
    ]
    if json_format:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "corekit",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and the stdlib root logger it writes through).

    Args:
        level: DEBUG, INFO, WARNING or ERROR; None reads COREKIT_LOG_LEVEL
        json_format: Force JSON (True) or console (False); None reads
            COREKIT_LOG_JSON and falls back to JSON when stdout is not a tty
        service: Value of the ``service.name`` field
        add_timestamp: Prefix events with an ISO timestamp
    """
    global _service
    _service = service

    if level is None or json_format is None:
        from corekit.core.settings import get_settings

        settings = get_settings()
        level = level or settings.log_level
        if json_format is None:
            json_format = settings.log_json
    if json_format is None:
        json_format = not sys.stdout.isatty()

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    structlog.configure(
        processors=_build_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every event logged in the current context.

    Example:
        bind_context(abort_pool="requests")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Example:
        async with LogContext(plugin="RetryPlugin", abort_id="req-1"):
            await executor.exec(params, task)
    """

    def __init__(self, **fields: Any):
        self.fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self.fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        unbind_context(*self.fields)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = [
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
