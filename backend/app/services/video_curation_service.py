from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from backend.app.models.video_state import ModuleVideoState, UserProfile, VideoLink
from backend.app.repositories.user_profile_repository import UserProfileRepository
from backend.app.repositories.video_limits_repository import VideoLimitsRepository
from backend.app.services.quota_gate import AiSearchQuotaGate
from backend.app.services.video_finder import FoundVideo, VideoFinder, VideoFinderError
from backend.app.services.youtube_service import YouTubeService
from backend.app.services.youtube_urls import generate_video_link_id, normalize_youtube_url
from backend.app.telemetry import TelemetryClient, TelemetryEvent

LOGGER = logging.getLogger("skillsprint.video_curation")

PersistOutcome = Literal["committed", "conflict", "failed"]
SearchOutcome = Literal["ok", "no_results", "quota_exceeded", "unavailable", "not_persisted"]

DEFAULT_LANGUAGE = "English"
SEARCH_SUGGESTION = (
    "Try searching with different keywords or check if the topic has publicly "
    "available educational content on YouTube."
)
NOT_PERSISTED_MESSAGE = "Videos found but failed to save. They will be lost on refresh."
NOT_PERSISTED_WARNING = "Please try again, or contact support if this persists."


class VideoCurationError(Exception):
    pass


class UserNotFoundError(VideoCurationError):
    pass


class VideoValidationError(VideoCurationError):
    pass


class VideoLimitReachedError(VideoValidationError):
    pass


class VideoNotFoundError(VideoCurationError):
    pass


class VideoStatePersistenceError(VideoCurationError):
    pass


@dataclass(frozen=True)
class AddVideoRequest:
    url: str
    title: str
    language: str = DEFAULT_LANGUAGE
    creator: str | None = None
    is_playlist: bool = False
    notes: str | None = None


@dataclass(frozen=True)
class VideoMutationResult:
    state: ModuleVideoState
    message: str
    video: VideoLink | None = None


@dataclass(frozen=True)
class VideoSearchResult:
    outcome: SearchOutcome
    state: ModuleVideoState
    message: str
    limit: int
    videos: tuple[VideoLink, ...] = ()
    suggestion: str | None = None
    warning: str | None = None
    error: str | None = None


class VideoStatePersistence:
    """Writes one module slice back into its owner's profile document."""

    def __init__(self, profiles: UserProfileRepository) -> None:
        self._profiles = profiles

    def persist(self, state: ModuleVideoState, profile: UserProfile) -> PersistOutcome:
        collections = profile.collections.with_module_state(state)
        try:
            swapped = self._profiles.compare_and_swap_collections(
                user_id=profile.user_id,
                expected_revision=profile.revision,
                collections=collections,
            )
        except sqlite3.Error:
            LOGGER.exception(
                "video state persist failed user_id=%s module_key=%s",
                profile.user_id,
                state.module_key,
            )
            return "failed"
        return "committed" if swapped else "conflict"


class VideoCurationService:
    def __init__(
        self,
        *,
        profiles: UserProfileRepository,
        limits: VideoLimitsRepository,
        finder: VideoFinder,
        youtube: YouTubeService,
        persistence: VideoStatePersistence | None = None,
        quota_gate: AiSearchQuotaGate | None = None,
        telemetry: TelemetryClient | None = None,
        commit_max_attempts: int = 3,
        availability_check_enabled: bool = True,
    ) -> None:
        self._profiles = profiles
        self._limits = limits
        self._finder = finder
        self._youtube = youtube
        self._persistence = persistence or VideoStatePersistence(profiles)
        self._quota_gate = quota_gate or AiSearchQuotaGate()
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._commit_max_attempts = max(1, commit_max_attempts)
        self._availability_check_enabled = availability_check_enabled

    def list_videos(self, user_id: str, course_id: str, module_id: str) -> ModuleVideoState:
        return self._load_profile(user_id).module_state(course_id, module_id)

    def add_user_video(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        request: AddVideoRequest,
    ) -> VideoMutationResult:
        title = request.title.strip()
        if not title:
            raise VideoValidationError("Video title is required")
        language = request.language.strip() or DEFAULT_LANGUAGE
        max_custom_videos = self._limits.get_limits().max_custom_videos

        current = self.list_videos(user_id, course_id, module_id)
        _ensure_user_video_capacity(current, max_custom_videos)

        info = normalize_youtube_url(request.url, is_playlist=request.is_playlist)
        if not info.is_valid:
            raise VideoValidationError(info.error or "Invalid YouTube URL")
        _ensure_not_duplicate(current, info.embed_url)

        if self._availability_check_enabled:
            availability = self._youtube.check_embed_availability(info.embed_url)
            if availability == "unavailable":
                if info.type != "playlist":
                    raise VideoValidationError(
                        "This video is not available for embedding. It may be private, "
                        "restricted, or have embedding disabled."
                    )
                LOGGER.warning(
                    "playlist availability check failed; adding anyway embed_url=%s",
                    info.embed_url,
                )

        video = VideoLink(
            id=generate_video_link_id(info.embed_url, "user"),
            embed_url=info.embed_url,
            title=title,
            lang_code=language[:2].lower(),
            lang_name=language,
            is_playlist=info.type == "playlist",
            creator=(request.creator or "").strip() or None,
            notes=(request.notes or "").strip() or "User added to this module",
        )

        def apply(state: ModuleVideoState) -> ModuleVideoState:
            _ensure_user_video_capacity(state, max_custom_videos)
            _ensure_not_duplicate(state, video.embed_url)
            if state.find_video(video.id) is not None:
                raise VideoValidationError("This video is already added to the module")
            return state.with_user_video(video)

        state = self._commit(user_id, course_id, module_id, apply, operation="add")
        LOGGER.info(
            "user video added user_id=%s module_key=%s video_id=%s",
            user_id,
            state.module_key,
            video.id,
        )
        return VideoMutationResult(state=state, message="Video added successfully", video=video)

    def remove_video(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        *,
        video_id: str | None = None,
        url: str | None = None,
    ) -> VideoMutationResult:
        normalized_id = (video_id or "").strip()
        normalized_url = (url or "").strip()
        if not normalized_id and not normalized_url:
            raise VideoValidationError("Video ID or URL is required")

        embed_url: str | None = None
        if not normalized_id:
            info = normalize_youtube_url(normalized_url)
            if not info.is_valid:
                raise VideoValidationError(info.error or "Invalid YouTube URL")
            embed_url = info.embed_url

        def apply(state: ModuleVideoState) -> ModuleVideoState:
            target_id = normalized_id
            if embed_url is not None:
                match = state.find_video_by_embed_url(embed_url)
                if match is None:
                    raise VideoNotFoundError("Video not found")
                target_id = match.id
            updated = state.without_video(target_id)
            if updated is None:
                raise VideoNotFoundError("Video not found")
            return updated

        state = self._commit(user_id, course_id, module_id, apply, operation="remove")
        LOGGER.info("video removed user_id=%s module_key=%s", user_id, state.module_key)
        return VideoMutationResult(state=state, message="Video removed successfully")

    def rename_video(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        *,
        video_id: str,
        title: str,
    ) -> VideoMutationResult:
        normalized_id = video_id.strip()
        normalized_title = title.strip()
        if not normalized_id:
            raise VideoValidationError("Video ID is required")
        if not normalized_title:
            raise VideoValidationError("Video title is required")

        def apply(state: ModuleVideoState) -> ModuleVideoState:
            updated = state.with_renamed_video(normalized_id, normalized_title)
            if updated is None:
                raise VideoNotFoundError("Video not found")
            return updated

        state = self._commit(user_id, course_id, module_id, apply, operation="rename")
        return VideoMutationResult(
            state=state,
            message="Video renamed successfully",
            video=state.find_video(normalized_id),
        )

    def search_ai_videos(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        *,
        query: str,
        language: str | None = None,
    ) -> VideoSearchResult:
        """
        Quota-guarded AI search for one module.

        The quota is checked before the model is contacted and checked again
        against the freshly loaded state on every commit attempt, so two
        concurrent searches cannot both land past the cap. The counter only
        moves when at least one new video is committed.
        """
        normalized_query = query.strip()
        if not normalized_query:
            raise VideoValidationError("Search query is required")
        preferred_language = (language or "").strip() or DEFAULT_LANGUAGE
        limit = self._limits.get_limits().max_ai_searches

        state = self.list_videos(user_id, course_id, module_id)
        decision = self._quota_gate.take(state, limit=limit)
        if not decision.allowed:
            return self._quota_rejected(user_id, state, limit)

        try:
            found = self._finder.find_videos(
                normalized_query,
                preferred_language=preferred_language,
                module_description=f"Finding videos for: {normalized_query}",
                existing_creators=_existing_creators(state),
            )
        except VideoFinderError as exc:
            LOGGER.warning(
                "ai video search unavailable user_id=%s module_key=%s error=%s",
                user_id,
                state.module_key,
                exc,
            )
            self._telemetry.emit(
                TelemetryEvent.VIDEO_SEARCH_UNAVAILABLE,
                module_key=state.module_key,
            )
            return VideoSearchResult(
                outcome="unavailable",
                state=state,
                message="AI video search service temporarily unavailable",
                limit=limit,
                error=str(exc),
            )

        if not found:
            return self._no_results(
                user_id,
                state,
                limit,
                message="No videos found for your search query",
                candidates=0,
            )

        self._log_unavailable_candidates(found)

        for attempt in range(1, self._commit_max_attempts + 1):
            profile = self._load_profile(user_id)
            state = profile.module_state(course_id, module_id)

            if not self._quota_gate.take(state, limit=limit).allowed:
                return self._quota_rejected(user_id, state, limit)

            new_videos = _prepare_ai_videos(found, state, query=normalized_query)
            if not new_videos:
                return self._no_results(
                    user_id,
                    state,
                    limit,
                    message=(
                        "No new embeddable videos found. The AI suggested videos that are "
                        "already in this module or cannot be embedded."
                    ),
                    candidates=len(found),
                )

            updated = state.with_ai_results(new_videos)
            outcome = self._persistence.persist(updated, profile)
            if outcome == "committed":
                LOGGER.info(
                    "ai video search committed user_id=%s module_key=%s videos=%s count=%s",
                    user_id,
                    updated.module_key,
                    len(new_videos),
                    updated.ai_search_count,
                )
                self._telemetry.emit(
                    TelemetryEvent.VIDEO_SEARCH_COMPLETED,
                    module_key=updated.module_key,
                    videos=len(new_videos),
                    ai_search_count=updated.ai_search_count,
                    limit=limit,
                    attempts=attempt,
                )
                return VideoSearchResult(
                    outcome="ok",
                    state=updated,
                    message=f"Found {len(new_videos)} videos",
                    limit=limit,
                    videos=new_videos,
                )
            if outcome == "failed":
                return self._not_persisted(user_id, state, limit, new_videos, reason="failed")

            self._record_conflict(user_id, state, operation="search", attempt=attempt)

        return self._not_persisted(
            user_id,
            state,
            limit,
            _prepare_ai_videos(found, state, query=normalized_query),
            reason="conflict",
        )

    def find_videos_for_topic(
        self,
        topic: str,
        *,
        difficulty: str = "beginner",
        duration: str = "medium",
    ) -> list[FoundVideo]:
        normalized_topic = topic.strip()
        if not normalized_topic:
            raise VideoValidationError("Topic is required")
        return self._finder.find_videos(
            normalized_topic,
            preferred_language=DEFAULT_LANGUAGE,
            module_description=(
                f"A {difficulty.strip() or 'beginner'} level module about {normalized_topic} "
                f"with {duration.strip() or 'medium'} duration content"
            ),
        )

    def _load_profile(self, user_id: str) -> UserProfile:
        profile = self._profiles.get_profile(user_id)
        if profile is None:
            raise UserNotFoundError("User not found")
        return profile

    def _commit(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        apply: Callable[[ModuleVideoState], ModuleVideoState],
        *,
        operation: str,
    ) -> ModuleVideoState:
        for attempt in range(1, self._commit_max_attempts + 1):
            profile = self._load_profile(user_id)
            state = profile.module_state(course_id, module_id)
            updated = apply(state)
            if updated == state:
                return state

            outcome = self._persistence.persist(updated, profile)
            if outcome == "committed":
                return updated
            if outcome == "failed":
                raise VideoStatePersistenceError("Failed to save video changes")
            self._record_conflict(user_id, state, operation=operation, attempt=attempt)

        raise VideoStatePersistenceError(
            "Failed to save video changes because the module was modified concurrently"
        )

    def _record_conflict(
        self,
        user_id: str,
        state: ModuleVideoState,
        *,
        operation: str,
        attempt: int,
    ) -> None:
        LOGGER.info(
            "video state commit conflict user_id=%s module_key=%s operation=%s attempt=%s",
            user_id,
            state.module_key,
            operation,
            attempt,
        )
        self._telemetry.emit(
            TelemetryEvent.VIDEO_STATE_COMMIT_CONFLICT,
            module_key=state.module_key,
            operation=operation,
            attempt=attempt,
        )

    def _quota_rejected(
        self,
        user_id: str,
        state: ModuleVideoState,
        limit: int,
    ) -> VideoSearchResult:
        LOGGER.info(
            "ai video search quota exceeded user_id=%s module_key=%s count=%s limit=%s",
            user_id,
            state.module_key,
            state.ai_search_count,
            limit,
        )
        self._telemetry.emit(
            TelemetryEvent.VIDEO_QUOTA_REJECTED,
            module_key=state.module_key,
            ai_search_count=state.ai_search_count,
            limit=limit,
        )
        return VideoSearchResult(
            outcome="quota_exceeded",
            state=state,
            message=f"You have reached the limit of {limit} AI searches for this module",
            limit=limit,
        )

    def _no_results(
        self,
        user_id: str,
        state: ModuleVideoState,
        limit: int,
        *,
        message: str,
        candidates: int,
    ) -> VideoSearchResult:
        LOGGER.info(
            "ai video search found nothing new user_id=%s module_key=%s candidates=%s",
            user_id,
            state.module_key,
            candidates,
        )
        self._telemetry.emit(
            TelemetryEvent.VIDEO_SEARCH_EMPTY,
            module_key=state.module_key,
            candidates=candidates,
        )
        return VideoSearchResult(
            outcome="no_results",
            state=state,
            message=message,
            limit=limit,
            suggestion=SEARCH_SUGGESTION,
        )

    def _not_persisted(
        self,
        user_id: str,
        state: ModuleVideoState,
        limit: int,
        videos: tuple[VideoLink, ...],
        *,
        reason: str,
    ) -> VideoSearchResult:
        LOGGER.error(
            "ai video search results not persisted user_id=%s module_key=%s reason=%s videos=%s",
            user_id,
            state.module_key,
            reason,
            len(videos),
        )
        self._telemetry.emit(
            TelemetryEvent.VIDEO_SEARCH_NOT_PERSISTED,
            module_key=state.module_key,
            reason=reason,
            videos=len(videos),
        )
        return VideoSearchResult(
            outcome="not_persisted",
            state=state,
            message=NOT_PERSISTED_MESSAGE,
            limit=limit,
            videos=videos,
            warning=NOT_PERSISTED_WARNING,
        )

    def _log_unavailable_candidates(self, found: Sequence[FoundVideo]) -> None:
        # AI suggestions are kept even when the probe disagrees.
        if not self._availability_check_enabled:
            return
        for video in found:
            availability = self._youtube.check_embed_availability(video.embed_url)
            if availability != "available":
                LOGGER.info(
                    "ai video availability not confirmed embed_url=%s availability=%s",
                    video.embed_url,
                    availability,
                )


def _prepare_ai_videos(
    found: Sequence[FoundVideo],
    state: ModuleVideoState,
    *,
    query: str,
) -> tuple[VideoLink, ...]:
    seen_urls = state.embed_urls()
    seen_ids: set[str] = set()
    prepared: list[VideoLink] = []
    for candidate in found:
        if candidate.embed_url in seen_urls:
            continue
        video_id = generate_video_link_id(candidate.embed_url, "ai")
        if video_id in seen_ids or state.find_video(video_id) is not None:
            continue
        seen_urls.add(candidate.embed_url)
        seen_ids.add(video_id)
        prepared.append(
            VideoLink(
                id=video_id,
                embed_url=candidate.embed_url,
                title=candidate.title,
                lang_code=candidate.lang_code,
                lang_name=candidate.lang_name,
                is_playlist=candidate.is_playlist,
                creator=candidate.creator,
                notes=f"Found by AI search for: {query}",
            )
        )
    return tuple(prepared)


def _existing_creators(state: ModuleVideoState) -> tuple[str, ...]:
    creators = {
        video.creator
        for video in (*state.user_videos, *state.ai_videos)
        if video.creator
    }
    return tuple(sorted(creators))


def _ensure_user_video_capacity(state: ModuleVideoState, max_custom_videos: int) -> None:
    if len(state.user_videos) >= max_custom_videos:
        raise VideoLimitReachedError(
            f"You can only add up to {max_custom_videos} videos per module"
        )


def _ensure_not_duplicate(state: ModuleVideoState, embed_url: str) -> None:
    if state.find_video_by_embed_url(embed_url) is not None:
        raise VideoValidationError("This video is already added to the module")
