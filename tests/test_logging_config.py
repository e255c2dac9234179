from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from backend.app.config import AppSettings
from backend.app.logging_config import (
    LOG_FILE_NAME,
    ROOT_LOGGER_NAME,
    TELEMETRY_LOG_FILE_NAME,
    TELEMETRY_LOGGER_NAME,
    configure_logging,
)


@pytest.fixture
def detach_handlers() -> Iterator[None]:
    yield
    for name in (ROOT_LOGGER_NAME, TELEMETRY_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def _flush(name: str) -> None:
    for handler in logging.getLogger(name).handlers:
        handler.flush()


def _json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_configure_logging_writes_json_files(tmp_path: Path, detach_handlers: None) -> None:
    _ = detach_handlers
    settings = AppSettings(data_dir=tmp_path, log_dir=tmp_path / "logs", log_format="json")

    log_file = configure_logging(settings)

    assert log_file == (tmp_path / "logs" / LOG_FILE_NAME).resolve()
    logging.getLogger("skillsprint.video_curation").debug(
        "search committed module_key=%s",
        "course-1-module-1",
    )
    structlog.get_logger("skillsprint.auth").info("token issued", email="learner@example.com")
    structlog.get_logger(TELEMETRY_LOGGER_NAME).info("telemetry", telemetry_event="x.y")
    _flush(ROOT_LOGGER_NAME)
    _flush(TELEMETRY_LOGGER_NAME)

    app_lines = _json_lines(log_file)
    events = [line["event"] for line in app_lines]
    assert "search committed module_key=course-1-module-1" in events
    token_line = next(line for line in app_lines if line["event"] == "token issued")
    assert token_line["email"] == "[redacted]"
    assert token_line["logger"] == "skillsprint.auth"
    assert all(line["event"] != "telemetry" for line in app_lines)

    telemetry_lines = _json_lines(tmp_path / "logs" / TELEMETRY_LOG_FILE_NAME)
    assert [line["telemetry_event"] for line in telemetry_lines] == ["x.y"]


def test_configure_logging_replaces_previous_handlers(
    tmp_path: Path,
    detach_handlers: None,
) -> None:
    _ = detach_handlers
    settings = AppSettings(data_dir=tmp_path, log_dir=tmp_path / "logs")

    configure_logging(settings)
    configure_logging(settings)

    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 2
    assert len(logging.getLogger(TELEMETRY_LOGGER_NAME).handlers) == 1
