from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings
from backend.app.telemetry import is_sensitive_attribute

ROOT_LOGGER_NAME = "skillsprint"
TELEMETRY_LOGGER_NAME = "skillsprint.telemetry"
LOG_FILE_NAME = "skillsprint.log"
TELEMETRY_LOG_FILE_NAME = "skillsprint-telemetry.log"

_THIRD_PARTY_LOGGERS = (
    "google_genai",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "httpx",
    "urllib3",
)
_RECORD_METADATA_FIELDS = (
    ("pathname", "pathname"),
    ("lineno", "lineno"),
    ("funcName", "func_name"),
    ("process", "process"),
)


@dataclass(frozen=True)
class _FileTarget:
    logger_name: str
    file_name: str
    level: int


_FILE_TARGETS = (
    _FileTarget(ROOT_LOGGER_NAME, LOG_FILE_NAME, logging.DEBUG),
    _FileTarget(TELEMETRY_LOGGER_NAME, TELEMETRY_LOG_FILE_NAME, logging.INFO),
)


def configure_logging(settings: AppSettings) -> Path:
    """
    Route `skillsprint.*` loggers to stdout and JSON files under `log_dir`.

    Telemetry events go only to their own file. Rotation is left to the
    host (logrotate or the container runtime).
    """
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    _configure_structlog()

    for target in _FILE_TARGETS:
        logger = logging.getLogger(target.logger_name)
        logger.setLevel(target.level)
        logger.propagate = False
        _reset_handlers(logger)
        logger.addHandler(_file_handler(log_dir / target.file_name, target.level))

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.addHandler(
        _console_handler(
            sys.stdout,
            level=_resolve_log_level(settings.log_level),
            log_format=settings.log_format,
        )
    )
    _quiet_third_party_loggers()

    log_file = log_dir / LOG_FILE_NAME
    app_logger.info(
        "logging configured console_level=%s console_format=%s path=%s telemetry_path=%s",
        settings.log_level,
        settings.log_format,
        log_file,
        log_dir / TELEMETRY_LOG_FILE_NAME,
    )
    return log_file


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _redact_sensitive_keys,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _quiet_third_party_loggers() -> None:
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(_json_formatter(include_record_metadata=True))
    return handler


def _console_handler(stream: TextIO, *, level: int, log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    if log_format == "json":
        handler.setFormatter(_json_formatter(include_record_metadata=False))
    else:
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


def _json_formatter(*, include_record_metadata: bool) -> structlog.stdlib.ProcessorFormatter:
    processors: list[Processor] = []
    if include_record_metadata:
        processors.append(_add_record_metadata)
    processors.extend(
        [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    )
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_pre_chain(),
        processors=processors,
    )


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _redact_sensitive_keys,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _redact_sensitive_keys(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    for key in list(event_dict):
        if key.startswith("_") or key == "event":
            continue
        if is_sensitive_attribute(key.lower()):
            event_dict[key] = "[redacted]"
    return event_dict


def _add_record_metadata(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        for attribute, key in _RECORD_METADATA_FIELDS:
            event_dict[key] = getattr(record, attribute)
    return event_dict


def _stream_supports_color(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return callable(isatty) and bool(isatty())
