from __future__ import annotations

import logging
import sys
from typing import Literal, Protocol

import structlog

_LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class StructuredLogger(Protocol):
    """Logger surface breakers and registries write their events to."""

    def info(self, event: str, **kwargs: object) -> None:
        """Log an informational event."""

    def warning(self, event: str, **kwargs: object) -> None:
        """Log a warning event."""

    def exception(self, event: str, **kwargs: object) -> None:
        """Log an exception event with the active traceback."""


BreakerLogger = (
    StructuredLogger | logging.Logger | logging.LoggerAdapter[logging.Logger]
)


def get_log_level_value(level: str) -> int:
    """Map a level name such as ``" warning "`` to its stdlib constant."""
    try:
        return _LOG_LEVELS[level.strip().upper()]
    except KeyError as error:
        choices = ", ".join(sorted(_LOG_LEVELS))
        raise ValueError(f"log_level must be one of: {choices}") from error


def get_logger(name: str) -> BreakerLogger:
    """Return the structlog logger used by breakers and registries."""
    return structlog.stdlib.get_logger(name)


def _emit(
    logger: BreakerLogger,
    level: Literal["info", "warning", "exception"],
    event: str,
    fields: dict[str, object],
) -> None:
    # stdlib loggers take structured fields through ``extra``.
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        getattr(logger, level)(event, extra=fields)
    else:
        getattr(logger, level)(event, **fields)


def log_info(logger: BreakerLogger, event: str, **fields: object) -> None:
    _emit(logger, "info", event, fields)


def log_warning(logger: BreakerLogger, event: str, **fields: object) -> None:
    _emit(logger, "warning", event, fields)


def log_exception(logger: BreakerLogger, event: str, **fields: object) -> None:
    _emit(logger, "exception", event, fields)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _build_handler() -> logging.Handler:
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if sys.stderr.isatty()
        else structlog.processors.JSONRenderer()
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    return handler


def configure_structlog(*, log_level: str) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib records through one stderr handler.

    Renders to the console on a TTY and to JSON lines otherwise. Safe to call
    repeatedly; the root handler is replaced each time.
    """
    logging.basicConfig(
        format="%(message)s",
        handlers=[_build_handler()],
        level=get_log_level_value(log_level),
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger("jet_resilience")
