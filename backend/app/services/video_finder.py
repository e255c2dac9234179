from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast

from google.genai import Client, types
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from backend.app.services.youtube_urls import normalize_youtube_url

LOGGER = logging.getLogger("skillsprint.video_finder")

TRUSTED_CHANNELS: tuple[str, ...] = (
    "Khan Academy",
    "freeCodeCamp",
    "MIT OpenCourseWare",
    "Crash Course",
    "3Blue1Brown",
    "Programming with Mosh",
    "Traversy Media",
    "Coursera",
    "edX",
)

DEFAULT_VIDEO_TITLE = "YouTube Video"
DEFAULT_PLAYLIST_TITLE = "YouTube Playlist"
UNKNOWN_CREATOR = "Unknown Creator"

VIDEO_SEARCH_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "videos": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "langCode": {"type": "STRING"},
                    "langName": {"type": "STRING"},
                    "embedUrl": {"type": "STRING"},
                    "title": {"type": "STRING"},
                    "creator": {"type": "STRING"},
                    "isPlaylist": {"type": "BOOLEAN"},
                },
                "required": ["langCode", "langName", "embedUrl", "title"],
            },
        }
    },
    "required": ["videos"],
}


class VideoFinderError(Exception):
    pass


@dataclass(frozen=True)
class FoundVideo:
    embed_url: str
    title: str
    lang_code: str
    lang_name: str
    creator: str
    is_playlist: bool


class _CandidateVideo(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    embed_url: str = Field(
        validation_alias=AliasChoices("embedUrl", "youtubeEmbedUrl", "embed_url", "url")
    )
    title: str | None = None
    lang_code: str = Field(default="en", alias="langCode")
    lang_name: str = Field(default="English", alias="langName")
    creator: str | None = None
    is_playlist: bool | None = Field(default=None, alias="isPlaylist")


class VideoFinder:
    """Asks a Gemini model for embeddable educational videos on a topic."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        temperature: float = 0.4,
        client: Any | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._owns_client = client is None
        self._client: Any | None = client
        self._api_key = api_key

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise VideoFinderError("Gemini API key is not configured")
            self._client = Client(api_key=self._api_key)
        return self._client

    def find_videos(
        self,
        query: str,
        *,
        preferred_language: str,
        module_description: str | None = None,
        existing_creators: Sequence[str] = (),
    ) -> list[FoundVideo]:
        prompt = build_video_search_prompt(
            query,
            preferred_language=preferred_language,
            module_description=module_description,
            existing_creators=existing_creators,
        )
        client = self._get_client()
        try:
            response = client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=self._temperature,
                    response_mime_type="application/json",
                    response_schema=VIDEO_SEARCH_RESPONSE_SCHEMA,
                ),
            )
        except Exception as exc:
            LOGGER.warning(
                "video finder model call failed model=%s",
                self._model,
                exc_info=True,
            )
            raise VideoFinderError(f"AI model request failed: {exc}") from exc

        raw_text = getattr(response, "text", None)
        if not isinstance(raw_text, str) or not raw_text.strip():
            LOGGER.info("video finder returned empty response model=%s", self._model)
            return []

        videos = parse_found_videos(raw_text)
        LOGGER.info(
            "video finder completed model=%s query_length=%s videos=%s",
            self._model,
            len(query),
            len(videos),
        )
        return videos

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
        self._client = None


def build_video_search_prompt(
    query: str,
    *,
    preferred_language: str,
    module_description: str | None = None,
    existing_creators: Sequence[str] = (),
) -> str:
    lines = [
        "You find relevant, high-quality YouTube videos and playlists for educational content.",
        "",
        "Only return videos that are:",
        "1. Publicly available and embeddable (not age-restricted, private or region-blocked).",
        "2. From established educational channels with a clear educational focus.",
        "3. Tutorials, courses or explanations. No music videos, vlogs or entertainment.",
        "",
        "Prefer these channels when they cover the topic: " + ", ".join(TRUSTED_CHANNELS) + ".",
        "",
        f"Module title: {query.strip()}",
    ]
    if module_description and module_description.strip():
        lines.append(f"Module description: {module_description.strip()}")

    language = preferred_language.strip() or "English"
    lines.append("")
    lines.append(f"Prioritize videos in: {language}")
    if language.lower() != "english":
        lines.append("Also provide alternatives in English if available.")

    creators = sorted({creator.strip() for creator in existing_creators if creator.strip()})
    if creators:
        lines.append("")
        lines.append("The module already has videos from these creators:")
        lines.extend(f"- {creator}" for creator in creators)

    lines.extend(
        [
            "",
            "Embed URL rules:",
            "- Single videos: https://www.youtube.com/embed/VIDEO_ID",
            "- Playlists: https://www.youtube.com/embed/videoseries?list=PLAYLIST_ID",
            "- VIDEO_ID is exactly 11 characters (letters, digits, hyphen, underscore).",
            "",
            "For each result give langCode (two-letter code), langName, embedUrl, title,",
            "creator (channel name) and isPlaylist.",
            "Return only 1-2 results of the highest quality that are most likely embeddable.",
            "If the exact topic is hard to find, suggest broader material from trusted channels.",
        ]
    )
    return "\n".join(lines)


def parse_found_videos(raw_text: str) -> list[FoundVideo]:
    """
    Parse the model's JSON reply into normalized videos.

    Malformed entries are dropped individually; a reply that is not JSON at
    all, or has no `videos` list, is a model failure.
    """
    try:
        payload = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as exc:
        raise VideoFinderError("AI model returned malformed JSON") from exc

    if isinstance(payload, list):
        raw_videos: object = payload
    elif isinstance(payload, dict):
        raw_videos = cast(dict[str, Any], payload).get("videos", [])
    else:
        raise VideoFinderError("AI model returned an unexpected payload")
    if not isinstance(raw_videos, list):
        raise VideoFinderError("AI model returned an unexpected payload")

    videos: list[FoundVideo] = []
    for raw_video in cast(list[Any], raw_videos):
        try:
            candidate = _CandidateVideo.model_validate(raw_video)
        except ValidationError:
            LOGGER.debug("video finder dropped malformed entry")
            continue
        video = _normalize_candidate(candidate)
        if video is None:
            LOGGER.debug("video finder dropped non-embeddable url url=%s", candidate.embed_url)
            continue
        videos.append(video)
    return videos


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```") :]
    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")]
    return cleaned.strip()


def _normalize_candidate(candidate: _CandidateVideo) -> FoundVideo | None:
    info = normalize_youtube_url(candidate.embed_url, is_playlist=bool(candidate.is_playlist))
    if not info.is_valid:
        return None

    is_playlist = info.type == "playlist"
    title = (candidate.title or "").strip()
    if not title:
        title = DEFAULT_PLAYLIST_TITLE if is_playlist else DEFAULT_VIDEO_TITLE
    creator = (candidate.creator or "").strip() or UNKNOWN_CREATOR
    return FoundVideo(
        embed_url=info.embed_url,
        title=title,
        lang_code=candidate.lang_code.strip().lower() or "en",
        lang_name=candidate.lang_name.strip() or "English",
        creator=creator,
        is_playlist=is_playlist,
    )
