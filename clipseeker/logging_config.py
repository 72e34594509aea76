from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from clipseeker.config import AppSettings

LOGGER_NAMESPACE = "clipseeker"
LOG_FILE_NAME = "clipseeker.log"
# Held at WARNING or above: the HTTP client logs one INFO line per request.
QUIET_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def configure_application_logging(settings: AppSettings) -> Path:
    """Route every ``clipseeker.*`` logger to the console and a JSON-lines file.

    Returns the path of the log file. Calling it again replaces the handlers
    instead of stacking new ones.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    console_level = _resolve_log_level(settings.log_level)

    _configure_structlog()

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    _reset_handlers(logger)
    logger.addHandler(_build_console_handler(sys.stdout, console_level))
    logger.addHandler(_build_file_handler(log_file))

    for name in QUIET_THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(console_level, logging.WARNING))

    logger.info(
        "logging configured console_level=%s file_level=%s path=%s",
        logging.getLevelName(console_level),
        "DEBUG",
        log_file,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = getattr(logging, raw_level.strip().upper(), None)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _build_console_handler(stream: TextIO, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_stream_supports_color(stream)),
            ],
        )
    )
    return handler


def _build_file_handler(log_file: Path) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                _add_component,
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_component(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    # clipseeker.relay -> relay
    logger_name = event_dict.get("logger")
    if isinstance(logger_name, str) and logger_name.startswith(f"{LOGGER_NAMESPACE}."):
        event_dict["component"] = logger_name.removeprefix(f"{LOGGER_NAMESPACE}.")
    return event_dict


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["pathname"] = record.pathname
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
        event_dict["task_name"] = getattr(record, "taskName", None)
    return event_dict


def _stream_supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except Exception:
            return False
    return False
