from __future__ import annotations

import json
import logging

from backend.app.models.video_state import AdminVideoLimits
from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database

VIDEO_LIMITS_SETTING_KEY = "video_limits"
MAX_CUSTOM_VIDEOS_RANGE = (0, 20)
MAX_AI_SEARCHES_RANGE = (0, 10)

LOGGER = logging.getLogger("skillsprint.settings")


class VideoLimitsRepository:
    def __init__(self, db: Database, *, defaults: AdminVideoLimits | None = None) -> None:
        self._db = db
        self._defaults = defaults if defaults is not None else AdminVideoLimits()

    @property
    def defaults(self) -> AdminVideoLimits:
        return self._defaults

    def get_limits(self) -> AdminVideoLimits:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT value_json
                FROM app_settings
                WHERE setting_key = ?
                """,
                (VIDEO_LIMITS_SETTING_KEY,),
            ).fetchone()

        if row is None:
            return self._defaults

        try:
            parsed = json.loads(str(row["value_json"]))
        except json.JSONDecodeError:
            LOGGER.warning("stored video limits are not valid json; using defaults")
            return self._defaults
        if not isinstance(parsed, dict):
            return self._defaults

        return AdminVideoLimits(
            max_custom_videos=_stored_limit(
                parsed.get("maxCustomVideos"),
                default=self._defaults.max_custom_videos,
                bounds=MAX_CUSTOM_VIDEOS_RANGE,
            ),
            max_ai_searches=_stored_limit(
                parsed.get("maxAiSearches"),
                default=self._defaults.max_ai_searches,
                bounds=MAX_AI_SEARCHES_RANGE,
            ),
        )

    def set_limits(self, limits: AdminVideoLimits, *, updated_by: str) -> AdminVideoLimits:
        _ensure_in_range("maxCustomVideos", limits.max_custom_videos, MAX_CUSTOM_VIDEOS_RANGE)
        _ensure_in_range("maxAiSearches", limits.max_ai_searches, MAX_AI_SEARCHES_RANGE)
        value_json = json.dumps(
            {
                "maxCustomVideos": limits.max_custom_videos,
                "maxAiSearches": limits.max_ai_searches,
            },
            sort_keys=True,
        )
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO app_settings (setting_key, value_json, updated_by, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(setting_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_by = excluded.updated_by,
                    updated_at = excluded.updated_at
                """,
                (VIDEO_LIMITS_SETTING_KEY, value_json, updated_by, utc_now_iso()),
            )
        return limits


def _stored_limit(raw_value: object, *, default: int, bounds: tuple[int, int]) -> int:
    # A stored zero is a deliberate "disabled" setting, not a missing value.
    if isinstance(raw_value, bool) or not isinstance(raw_value, int):
        return default
    low, high = bounds
    if raw_value < low or raw_value > high:
        return default
    return raw_value


def _ensure_in_range(name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if value < low or value > high:
        raise ValueError(f"{name} must be a number between {low} and {high}")
