from __future__ import annotations

import json
import logging
from typing import Any, cast

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from backend.app.models.video_state import UserVideoCollections, VideoLink

LOGGER = logging.getLogger("skillsprint.persistence")

# Bookkeeping keys left in imported profile documents; never module keys.
_DRIVER_KEYS: frozenset[str] = frozenset({"$init", "__v"})


class VideoLinkDocument(BaseModel):
    """Stored shape of a single video link inside a user profile document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    embed_url: str = Field(
        validation_alias=AliasChoices("embedUrl", "youtubeEmbedUrl", "embed_url"),
        serialization_alias="embedUrl",
    )
    title: str
    lang_code: str = Field(default="en", alias="langCode")
    lang_name: str = Field(default="English", alias="langName")
    is_playlist: bool = Field(default=False, alias="isPlaylist")
    creator: str | None = None
    notes: str | None = None

    @classmethod
    def from_video_link(cls, video: VideoLink) -> VideoLinkDocument:
        return cls(
            id=video.id,
            embed_url=video.embed_url,
            title=video.title,
            lang_code=video.lang_code,
            lang_name=video.lang_name,
            is_playlist=video.is_playlist,
            creator=video.creator,
            notes=video.notes,
        )

    def to_video_link(self) -> VideoLink:
        return VideoLink(
            id=self.id,
            embed_url=self.embed_url,
            title=self.title,
            lang_code=self.lang_code,
            lang_name=self.lang_name,
            is_playlist=self.is_playlist,
            creator=self.creator,
            notes=self.notes,
        )


def _empty_document_video_map() -> dict[str, list[VideoLinkDocument]]:
    return {}


def _empty_document_usage_map() -> dict[str, int]:
    return {}


class VideoCollectionsDocument(BaseModel):
    """
    Plain serializable form of a user's keyed video collections.

    Keys are module keys (`{course_id}-{module_id}`); values are plain lists and
    integers so the document round-trips through JSON without custom encoders.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user_module_videos: dict[str, list[VideoLinkDocument]] = Field(
        default_factory=_empty_document_video_map,
        alias="userModuleVideos",
    )
    user_ai_videos: dict[str, list[VideoLinkDocument]] = Field(
        default_factory=_empty_document_video_map,
        alias="userAIVideos",
    )
    user_ai_search_usage: dict[str, int] = Field(
        default_factory=_empty_document_usage_map,
        alias="userAISearchUsage",
    )


def collections_to_document(collections: UserVideoCollections) -> VideoCollectionsDocument:
    return VideoCollectionsDocument(
        user_module_videos={
            key: [VideoLinkDocument.from_video_link(video) for video in videos]
            for key, videos in collections.module_videos.items()
        },
        user_ai_videos={
            key: [VideoLinkDocument.from_video_link(video) for video in videos]
            for key, videos in collections.ai_videos.items()
        },
        user_ai_search_usage={
            key: max(0, int(count)) for key, count in collections.ai_search_usage.items()
        },
    )


def collections_from_document(document: VideoCollectionsDocument) -> UserVideoCollections:
    return UserVideoCollections(
        module_videos={
            key: tuple(video.to_video_link() for video in videos)
            for key, videos in document.user_module_videos.items()
        },
        ai_videos={
            key: tuple(video.to_video_link() for video in videos)
            for key, videos in document.user_ai_videos.items()
        },
        ai_search_usage={
            key: max(0, count) for key, count in document.user_ai_search_usage.items()
        },
    )


def dump_collection_columns(document: VideoCollectionsDocument) -> tuple[str, str, str]:
    payload = document.model_dump(mode="json", by_alias=True)
    return (
        json.dumps(payload["userModuleVideos"], sort_keys=True, ensure_ascii=True),
        json.dumps(payload["userAIVideos"], sort_keys=True, ensure_ascii=True),
        json.dumps(payload["userAISearchUsage"], sort_keys=True, ensure_ascii=True),
    )


def load_collection_columns(
    *,
    module_videos_json: str,
    ai_videos_json: str,
    ai_search_usage_json: str,
) -> VideoCollectionsDocument:
    """
    Load the three collection columns entry by entry.

    A stored video that fails validation is dropped on its own; the rest of
    its module and every other module load unchanged.
    """
    return VideoCollectionsDocument(
        user_module_videos=_load_video_map(module_videos_json, column="module_videos_json"),
        user_ai_videos=_load_video_map(ai_videos_json, column="ai_videos_json"),
        user_ai_search_usage=_load_usage_map(
            ai_search_usage_json,
            column="ai_search_usage_json",
        ),
    )


def _load_video_map(raw: str, *, column: str) -> dict[str, list[VideoLinkDocument]]:
    videos_by_module: dict[str, list[VideoLinkDocument]] = {}
    for key, entries in _load_json_object(raw, column=column).items():
        if not isinstance(entries, list):
            LOGGER.warning(
                "stored module videos are not a list column=%s module_key=%s",
                column,
                key,
            )
            continue
        documents: list[VideoLinkDocument] = []
        for index, entry in enumerate(cast(list[Any], entries)):
            try:
                documents.append(VideoLinkDocument.model_validate(entry))
            except ValidationError as exc:
                LOGGER.warning(
                    "dropping invalid stored video column=%s module_key=%s index=%s errors=%s",
                    column,
                    key,
                    index,
                    exc.error_count(),
                )
        videos_by_module[key] = documents
    return videos_by_module


def _load_usage_map(raw: str, *, column: str) -> dict[str, int]:
    usage: dict[str, int] = {}
    for key, value in _load_json_object(raw, column=column).items():
        count = _as_count(value)
        if count is None:
            LOGGER.warning(
                "dropping invalid stored search count column=%s module_key=%s",
                column,
                key,
            )
            continue
        usage[key] = count
    return usage


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float) and value.is_integer():
        return max(0, int(value))
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _load_json_object(raw: str, *, column: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("video collections column is not valid json column=%s", column)
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {
        str(key): value
        for key, value in cast(dict[object, Any], parsed).items()
        if str(key) not in _DRIVER_KEYS
    }
