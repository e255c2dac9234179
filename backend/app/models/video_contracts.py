from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backend.app.models.video_state import AdminVideoLimits, ModuleVideoState, VideoLink
from backend.app.services.video_finder import FoundVideo
from backend.app.services.youtube_service import YouTubePlaylist, YouTubePlaylistItem

NO_STORE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

DEFAULT_CUSTOM_VIDEO_TITLE = "Custom Video"


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class VideoLinkPayload(_CamelModel):
    id: str
    embed_url: str
    title: str
    lang_code: str
    lang_name: str
    is_playlist: bool = False
    creator: str | None = None
    notes: str | None = None

    @classmethod
    def from_video_link(cls, video: VideoLink) -> VideoLinkPayload:
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


def _payloads(videos: tuple[VideoLink, ...]) -> list[VideoLinkPayload]:
    return [VideoLinkPayload.from_video_link(video) for video in videos]


class ModuleVideosResponse(_CamelModel):
    custom_videos: list[VideoLinkPayload]
    ai_videos: list[VideoLinkPayload]
    ai_search_count: int
    message: str | None = None

    @classmethod
    def from_state(
        cls,
        state: ModuleVideoState,
        *,
        message: str | None = None,
    ) -> ModuleVideosResponse:
        return cls(
            custom_videos=_payloads(state.user_videos),
            ai_videos=_payloads(state.ai_videos),
            ai_search_count=state.ai_search_count,
            message=message,
        )


class AddVideoRequestBody(_CamelModel):
    url: str = Field(default="", max_length=2048)
    title: str = Field(default=DEFAULT_CUSTOM_VIDEO_TITLE, max_length=300)
    language: str = Field(default="English", max_length=60)
    creator: str | None = Field(default=None, max_length=200)
    is_playlist: bool = False
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: object) -> str:
        return _normalize_optional_text(value) or ""

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: object) -> str:
        return _normalize_optional_text(value) or DEFAULT_CUSTOM_VIDEO_TITLE

    @field_validator("language", mode="before")
    @classmethod
    def _default_language(cls, value: object) -> str:
        return _normalize_optional_text(value) or "English"

    @field_validator("creator", "notes", mode="before")
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)


class RemoveVideoRequestBody(_CamelModel):
    video_id: str | None = Field(default=None, max_length=200)
    url: str | None = Field(default=None, max_length=2048)

    @field_validator("video_id", "url", mode="before")
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)


class RenameVideoRequestBody(_CamelModel):
    video_id: str = Field(default="", max_length=200)
    title: str = Field(default="", max_length=300)


class SearchVideosRequestBody(_CamelModel):
    query: str = Field(default="", max_length=500)
    language: str | None = Field(default=None, max_length=60)

    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, value: object) -> str | None:
        return _normalize_optional_text(value)


class SearchVideosResponse(_CamelModel):
    videos: list[VideoLinkPayload]
    message: str
    custom_videos: list[VideoLinkPayload] | None = None
    ai_videos: list[VideoLinkPayload] | None = None
    ai_search_count: int | None = None
    ai_search_limit: int | None = None
    suggestion: str | None = None
    warning: str | None = None


class FindYoutubeVideosRequestBody(_CamelModel):
    topic: str = Field(default="", max_length=300)
    difficulty: str = Field(default="beginner", max_length=60)
    duration: str = Field(default="medium", max_length=60)


class FoundVideoPayload(_CamelModel):
    embed_url: str
    title: str
    lang_code: str
    lang_name: str
    creator: str
    is_playlist: bool

    @classmethod
    def from_found_video(cls, video: FoundVideo) -> FoundVideoPayload:
        return cls(
            embed_url=video.embed_url,
            title=video.title,
            lang_code=video.lang_code,
            lang_name=video.lang_name,
            creator=video.creator,
            is_playlist=video.is_playlist,
        )


class FoundVideosData(_CamelModel):
    videos: list[FoundVideoPayload]


class FindYoutubeVideosResponse(_CamelModel):
    success: Literal[True] = True
    data: FoundVideosData


class PlaylistUrlRequestBody(_CamelModel):
    playlist_url: str = Field(default="", max_length=2048)


class PlaylistItemPayload(_CamelModel):
    id: str
    title: str
    embed_url: str
    position: int
    creator: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None

    @classmethod
    def from_item(cls, item: YouTubePlaylistItem) -> PlaylistItemPayload:
        return cls(
            id=item.video_id,
            title=item.title,
            embed_url=item.embed_url,
            position=item.position,
            creator=item.creator,
            description=item.description,
            thumbnail=item.thumbnail_url,
            published_at=item.published_at,
        )


class PlaylistResponse(_CamelModel):
    id: str
    title: str
    description: str
    channel_title: str | None = None
    channel_id: str | None = None
    published_at: str | None = None
    thumbnails: dict[str, str]
    privacy_status: str
    item_count: int
    total_items: int
    videos: list[PlaylistItemPayload]

    @classmethod
    def from_playlist(cls, playlist: YouTubePlaylist) -> PlaylistResponse:
        return cls(
            id=playlist.id,
            title=playlist.title,
            description=playlist.description,
            channel_title=playlist.channel_title,
            channel_id=playlist.channel_id,
            published_at=playlist.published_at,
            thumbnails=dict(playlist.thumbnails),
            privacy_status=playlist.privacy_status,
            item_count=playlist.item_count,
            total_items=playlist.total_items,
            videos=[PlaylistItemPayload.from_item(item) for item in playlist.items],
        )


class AdminLimitsPayload(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    max_custom_videos: int = Field(ge=0, le=20, strict=True)
    max_ai_searches: int = Field(ge=0, le=10, strict=True)

    @classmethod
    def from_limits(cls, limits: AdminVideoLimits) -> AdminLimitsPayload:
        return cls(
            max_custom_videos=limits.max_custom_videos,
            max_ai_searches=limits.max_ai_searches,
        )

    def to_limits(self) -> AdminVideoLimits:
        return AdminVideoLimits(
            max_custom_videos=self.max_custom_videos,
            max_ai_searches=self.max_ai_searches,
        )


class AdminLimitsUpdateResponse(_CamelModel):
    success: Literal[True] = True
    limits: AdminLimitsPayload


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
