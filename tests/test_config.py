from __future__ import annotations

from pathlib import Path

import pytest

from backend.app.config import load_settings


@pytest.fixture(autouse=True)
def _isolated_env(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    for name in (
        "SKILLSPRINT_DATA_DIR",
        "SKILLSPRINT_DB_PATH",
        "SKILLSPRINT_LOG_DIR",
        "SKILLSPRINT_GEMINI_API_KEY",
        "SKILLSPRINT_YOUTUBE_API_KEY",
        "SKILLSPRINT_TELEMETRY_SINK",
        "SKILLSPRINT_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_parses_values_and_paths(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("SKILLSPRINT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SKILLSPRINT_GEMINI_API_KEY", " test-key ")
    monkeypatch.setenv("SKILLSPRINT_YOUTUBE_API_KEY", "   ")
    monkeypatch.setenv("SKILLSPRINT_TELEMETRY_ENABLED", "off")
    monkeypatch.setenv("SKILLSPRINT_EMBED_AVAILABILITY_CHECK_ENABLED", "not-a-bool")
    monkeypatch.setenv("SKILLSPRINT_DEFAULT_MAX_AI_SEARCHES", "5")
    monkeypatch.setenv("SKILLSPRINT_LOG_LEVEL", " debug ")
    monkeypatch.setenv("SKILLSPRINT_LOG_FORMAT", "JSON")
    monkeypatch.setenv("SKILLSPRINT_TELEMETRY_SINK", " LOG ")

    settings = load_settings()

    data_dir = (tmp_path / "data").resolve()
    assert settings.data_dir == data_dir
    assert settings.db_path == data_dir / "skillsprint.db"
    assert settings.log_dir == data_dir / "logs"
    assert settings.gemini_api_key == "test-key"
    assert settings.youtube_api_key is None
    assert settings.telemetry_enabled is False
    assert settings.embed_availability_check_enabled is True
    assert settings.default_max_ai_searches == 5
    assert settings.default_max_custom_videos == 3
    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"
    assert settings.telemetry_sink == "log"
    assert settings.gemini_model == "gemini-2.0-flash"


def test_explicit_db_path_wins_over_data_dir(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("SKILLSPRINT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SKILLSPRINT_DB_PATH", str(tmp_path / "elsewhere" / "custom.db"))

    settings = load_settings(validate_secrets=False)

    assert settings.db_path == (tmp_path / "elsewhere" / "custom.db").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()


def test_load_settings_requires_gemini_key() -> None:
    with pytest.raises(ValueError, match="SKILLSPRINT_GEMINI_API_KEY is required"):
        load_settings()

    assert load_settings(validate_secrets=False).gemini_api_key is None


def test_load_settings_rejects_invalid_telemetry_sink(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SKILLSPRINT_TELEMETRY_SINK", "otlp")

    with pytest.raises(ValueError, match="SKILLSPRINT_TELEMETRY_SINK"):
        load_settings(validate_secrets=False)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SKILLSPRINT_DEFAULT_MAX_CUSTOM_VIDEOS", "21"),
        ("SKILLSPRINT_DEFAULT_MAX_AI_SEARCHES", "-1"),
        ("SKILLSPRINT_VIDEO_STATE_COMMIT_MAX_ATTEMPTS", "0"),
        ("SKILLSPRINT_OEMBED_TIMEOUT_SECONDS", "0"),
    ],
)
def test_load_settings_rejects_out_of_range_numbers(
    name: str,
    value: str,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        load_settings(validate_secrets=False)
