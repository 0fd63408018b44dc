from __future__ import annotations

import logging
import sys
from typing import Literal, Protocol

import structlog
from structlog.typing import EventDict, Processor

LOG_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_StdlibLogger = logging.Logger | logging.LoggerAdapter[logging.Logger]


class StructuredLogger(Protocol):
    """Logger accepting an event name plus keyword fields, as structlog does."""

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...


AnyLogger = StructuredLogger | _StdlibLogger


def get_log_level_value(level: str) -> int:
    """Return the stdlib level number for a case-insensitive level name."""
    name = level.strip().upper()
    if name not in LOG_LEVEL_NAMES:
        raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVEL_NAMES)}")
    return logging.getLevelNamesMapping()[name]


def _select_renderer() -> Processor:
    if sys.stderr.isatty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _build_service_name_adder(service_name: str | None) -> Processor:
    def _add_service_name(_: object, __: str, event_dict: EventDict) -> EventDict:
        if service_name is not None:
            event_dict.setdefault("service", service_name)
        return event_dict

    return _add_service_name


def _shared_processors(service_name: str | None) -> list[Processor]:
    # Run for structlog events and for stdlib records alike.
    return [
        structlog.contextvars.merge_contextvars,
        _build_service_name_adder(service_name),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _log(
    logger: AnyLogger,
    level: Literal["info", "warning", "error"],
    event: str,
    **fields: object,
) -> None:
    """Emit ``event`` with ``fields`` on either a structlog or a stdlib logger."""
    method = getattr(logger, level)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        method(event, extra=fields)
    else:
        method(event, **fields)


def log_info(logger: AnyLogger, event: str, **fields: object) -> None:
    _log(logger, "info", event, **fields)


def log_warning(logger: AnyLogger, event: str, **fields: object) -> None:
    _log(logger, "warning", event, **fields)


def log_error(logger: AnyLogger, event: str, **fields: object) -> None:
    _log(logger, "error", event, **fields)


def configure_structlog(
    *,
    log_level: str,
    service_name: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route stdlib and structlog output through one structlog renderer.

    The resilience modules log through stdlib loggers with ``extra`` fields.
    Those records are rendered by the same processor chain as structlog events,
    so each event becomes one JSON line when stderr is not a terminal.
    Calling this again replaces the root handler.
    """
    shared = _shared_processors(service_name)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _select_renderer(),
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=get_log_level_value(log_level),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger()
