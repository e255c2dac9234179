from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Literal

UserRole = Literal["user", "admin"]

DEFAULT_MAX_CUSTOM_VIDEOS = 3
DEFAULT_MAX_AI_SEARCHES = 2


def module_key(course_id: str, module_id: str) -> str:
    return f"{course_id}-{module_id}"


@dataclass(frozen=True)
class VideoLink:
    id: str
    embed_url: str
    title: str
    lang_code: str
    lang_name: str
    is_playlist: bool = False
    creator: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ModuleVideoState:
    """
    Curation state for one (user, course, module) triple.

    Instances are immutable; every mutation returns a new state so that a
    commit conflict can re-apply the same operation on a freshly loaded state.
    """

    course_id: str
    module_id: str
    user_videos: tuple[VideoLink, ...] = ()
    ai_videos: tuple[VideoLink, ...] = ()
    ai_search_count: int = 0

    @property
    def module_key(self) -> str:
        return module_key(self.course_id, self.module_id)

    def find_video(self, video_id: str) -> VideoLink | None:
        for video in (*self.user_videos, *self.ai_videos):
            if video.id == video_id:
                return video
        return None

    def find_video_by_embed_url(self, embed_url: str) -> VideoLink | None:
        for video in (*self.user_videos, *self.ai_videos):
            if video.embed_url == embed_url:
                return video
        return None

    def embed_urls(self) -> set[str]:
        return {video.embed_url for video in (*self.user_videos, *self.ai_videos)}

    def with_ai_results(self, videos: Iterable[VideoLink]) -> ModuleVideoState:
        return replace(
            self,
            ai_videos=(*self.ai_videos, *videos),
            ai_search_count=self.ai_search_count + 1,
        )

    def with_user_video(self, video: VideoLink) -> ModuleVideoState:
        return replace(self, user_videos=(*self.user_videos, video))

    def without_video(self, video_id: str) -> ModuleVideoState | None:
        user_videos = tuple(video for video in self.user_videos if video.id != video_id)
        if len(user_videos) != len(self.user_videos):
            return replace(self, user_videos=user_videos)

        ai_videos = tuple(video for video in self.ai_videos if video.id != video_id)
        if len(ai_videos) != len(self.ai_videos):
            return replace(self, ai_videos=ai_videos)
        return None

    def with_renamed_video(self, video_id: str, title: str) -> ModuleVideoState | None:
        if self.find_video(video_id) is None:
            return None
        return replace(
            self,
            user_videos=_rename_in(self.user_videos, video_id, title),
            ai_videos=_rename_in(self.ai_videos, video_id, title),
        )


def _rename_in(videos: tuple[VideoLink, ...], video_id: str, title: str) -> tuple[VideoLink, ...]:
    return tuple(replace(video, title=title) if video.id == video_id else video for video in videos)


def _empty_video_map() -> dict[str, tuple[VideoLink, ...]]:
    return {}


def _empty_usage_map() -> dict[str, int]:
    return {}


@dataclass(frozen=True)
class UserVideoCollections:
    module_videos: Mapping[str, tuple[VideoLink, ...]] = field(default_factory=_empty_video_map)
    ai_videos: Mapping[str, tuple[VideoLink, ...]] = field(default_factory=_empty_video_map)
    ai_search_usage: Mapping[str, int] = field(default_factory=_empty_usage_map)

    def module_state(self, course_id: str, module_id: str) -> ModuleVideoState:
        key = module_key(course_id, module_id)
        return ModuleVideoState(
            course_id=course_id,
            module_id=module_id,
            user_videos=tuple(self.module_videos.get(key, ())),
            ai_videos=tuple(self.ai_videos.get(key, ())),
            ai_search_count=max(0, int(self.ai_search_usage.get(key, 0))),
        )

    def with_module_state(self, state: ModuleVideoState) -> UserVideoCollections:
        key = state.module_key
        module_videos = dict(self.module_videos)
        module_videos[key] = state.user_videos
        ai_videos = dict(self.ai_videos)
        ai_videos[key] = state.ai_videos
        ai_search_usage = dict(self.ai_search_usage)
        ai_search_usage[key] = state.ai_search_count
        return UserVideoCollections(
            module_videos=module_videos,
            ai_videos=ai_videos,
            ai_search_usage=ai_search_usage,
        )


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    email: str
    role: UserRole
    display_name: str | None
    collections: UserVideoCollections
    revision: int

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def module_state(self, course_id: str, module_id: str) -> ModuleVideoState:
        return self.collections.module_state(course_id, module_id)


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class AdminVideoLimits:
    max_custom_videos: int = DEFAULT_MAX_CUSTOM_VIDEOS
    max_ai_searches: int = DEFAULT_MAX_AI_SEARCHES
