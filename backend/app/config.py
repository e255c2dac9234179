from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from backend.app.models.video_state import DEFAULT_MAX_AI_SEARCHES, DEFAULT_MAX_CUSTOM_VIDEOS

DEFAULT_DATA_DIR = ".skillsprint"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("skillsprint.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "telemetry_enabled",
    "embed_availability_check_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{SKILLSPRINT_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `SKILLSPRINT_*` environment variable (or
    `.env`); the field descriptions double as the operator reference.
    """

    model_config = SettingsConfigDict(
        env_prefix="SKILLSPRINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the database and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("skillsprint.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('skillsprint.db'))}",
    )

    # Logging and telemetry.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for application logs. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level. File logs are always written at DEBUG.",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Console log rendering: `console` for humans, `json` for log collectors.",
    )
    telemetry_enabled: bool = Field(
        default=True,
        description="Emit structured telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry destination: `log` writes to the telemetry log file.",
    )

    # Generative model.
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key used for AI video discovery. Required at runtime.",
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model name used for AI video discovery.",
    )
    gemini_temperature: float = Field(
        default=0.4,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for AI video discovery prompts.",
    )

    # YouTube.
    youtube_api_key: str | None = Field(
        default=None,
        description=(
            "YouTube Data API key for playlist lookups. Playlist endpoints answer 503 "
            "when it is not set."
        ),
    )
    oembed_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout for the oEmbed embed-availability probe.",
    )
    embed_availability_check_enabled: bool = Field(
        default=True,
        description="Probe oEmbed before accepting user videos and when logging AI results.",
    )

    # Video curation limits.
    default_max_custom_videos: int = Field(
        default=DEFAULT_MAX_CUSTOM_VIDEOS,
        ge=0,
        le=20,
        description="Custom videos per module when no admin limit has been stored.",
    )
    default_max_ai_searches: int = Field(
        default=DEFAULT_MAX_AI_SEARCHES,
        ge=0,
        le=10,
        description="AI searches per module when no admin limit has been stored.",
    )
    video_state_commit_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description=(
            "How many times a video state write is retried after losing a concurrent "
            "update race before the request fails."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("SKILLSPRINT_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("SKILLSPRINT_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalize_log_format(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "console"
        return value.strip().lower()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "INFO"
        return value.strip().upper()

    @field_validator("gemini_model", mode="before")
    @classmethod
    def _normalize_gemini_model(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("SKILLSPRINT_GEMINI_MODEL must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("SKILLSPRINT_GEMINI_MODEL must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("gemini_api_key", "youtube_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_runtime_secrets(*, gemini_api_key: str | None) -> None:
    errors: list[str] = []

    if gemini_api_key is None:
        errors.append("SKILLSPRINT_GEMINI_API_KEY is required for AI video discovery.")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid runtime configuration:\n{bullets}")


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(*, validate_secrets: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)

    if validate_secrets:
        _validate_runtime_secrets(gemini_api_key=settings.gemini_api_key)

    return settings
