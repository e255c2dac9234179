from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from structlog.contextvars import bind_contextvars, get_contextvars, reset_contextvars

from backend.app.dependencies import (
    ServiceContainer,
    get_admin_user,
    get_container,
    get_current_user,
    get_curation_service,
)
from backend.app.errors import ApiError
from backend.app.models.video_contracts import (
    NO_STORE_HEADERS,
    AddVideoRequestBody,
    AdminLimitsPayload,
    AdminLimitsUpdateResponse,
    ErrorResponse,
    FindYoutubeVideosRequestBody,
    FindYoutubeVideosResponse,
    FoundVideoPayload,
    FoundVideosData,
    ModuleVideosResponse,
    PlaylistResponse,
    PlaylistUrlRequestBody,
    RemoveVideoRequestBody,
    RenameVideoRequestBody,
    SearchVideosRequestBody,
    SearchVideosResponse,
    VideoLinkPayload,
)
from backend.app.models.video_state import UserIdentity
from backend.app.services.video_curation_service import (
    AddVideoRequest,
    UserNotFoundError,
    VideoCurationError,
    VideoCurationService,
    VideoMutationResult,
    VideoNotFoundError,
    VideoStatePersistenceError,
    VideoValidationError,
)
from backend.app.services.video_finder import VideoFinderError
from backend.app.services.youtube_service import (
    PlaylistNotFoundError,
    PlaylistPrivateError,
    YouTubeNotConfiguredError,
    YouTubeServiceError,
)
from backend.app.services.youtube_urls import extract_playlist_id
from backend.app.telemetry import TelemetryEvent

LOGGER = logging.getLogger("skillsprint.api")

ADMIN_LIMITS_AUDIT_ACTION = "admin.limits.update"
_PLAYLIST_ID_RE = re.compile(r"[A-Za-z0-9_-]+")

router = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status: {"model": ErrorResponse} for status in (400, 401, 403, 404, 429, 500, 503)
}

CurationService = Annotated[VideoCurationService, Depends(get_curation_service)]
CurrentUser = Annotated[UserIdentity, Depends(get_current_user)]
Container = Annotated[ServiceContainer, Depends(get_container)]


@contextmanager
def _module_context(user: UserIdentity, course_id: str, module_id: str) -> Iterator[None]:
    context_tokens = bind_contextvars(
        user_id=user.user_id,
        course_id=course_id,
        module_id=module_id,
    )
    try:
        yield
    except UserNotFoundError as exc:
        raise ApiError(404, str(exc), headers=NO_STORE_HEADERS) from exc
    except VideoNotFoundError as exc:
        raise ApiError(404, str(exc), headers=NO_STORE_HEADERS) from exc
    except VideoValidationError as exc:
        raise ApiError(400, str(exc), headers=NO_STORE_HEADERS) from exc
    except VideoStatePersistenceError as exc:
        raise ApiError(500, str(exc), headers=NO_STORE_HEADERS) from exc
    finally:
        reset_contextvars(**context_tokens)


def _no_store(response: Response) -> None:
    response.headers.update(NO_STORE_HEADERS)


def _mutation_response(result: VideoMutationResult) -> ModuleVideosResponse:
    return ModuleVideosResponse.from_state(result.state, message=result.message)


@router.get(
    "/courses/{course_id}/modules/{module_id}/videos",
    response_model=ModuleVideosResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    tags=["videos"],
    operation_id="list_module_videos",
)
def list_module_videos(
    course_id: str,
    module_id: str,
    response: Response,
    user: CurrentUser,
    curation: CurationService,
) -> ModuleVideosResponse:
    _no_store(response)
    with _module_context(user, course_id, module_id):
        state = curation.list_videos(user.user_id, course_id, module_id)
    return ModuleVideosResponse.from_state(state)


@router.post(
    "/courses/{course_id}/modules/{module_id}/videos",
    response_model=ModuleVideosResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    tags=["videos"],
    operation_id="add_module_video",
)
def add_module_video(
    course_id: str,
    module_id: str,
    body: AddVideoRequestBody,
    response: Response,
    user: CurrentUser,
    curation: CurationService,
) -> ModuleVideosResponse:
    _no_store(response)
    if not body.url:
        raise ApiError(400, "Video URL is required", headers=NO_STORE_HEADERS)

    with _module_context(user, course_id, module_id):
        result = curation.add_user_video(
            user.user_id,
            course_id,
            module_id,
            AddVideoRequest(
                url=body.url,
                title=body.title,
                language=body.language,
                creator=body.creator,
                is_playlist=body.is_playlist,
                notes=body.notes,
            ),
        )
    return _mutation_response(result)


@router.delete(
    "/courses/{course_id}/modules/{module_id}/videos",
    response_model=ModuleVideosResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    tags=["videos"],
    operation_id="remove_module_video",
)
def remove_module_video(
    course_id: str,
    module_id: str,
    body: RemoveVideoRequestBody,
    response: Response,
    user: CurrentUser,
    curation: CurationService,
) -> ModuleVideosResponse:
    _no_store(response)
    with _module_context(user, course_id, module_id):
        result = curation.remove_video(
            user.user_id,
            course_id,
            module_id,
            video_id=body.video_id,
            url=body.url,
        )
    return _mutation_response(result)


@router.patch(
    "/courses/{course_id}/modules/{module_id}/videos/rename",
    response_model=ModuleVideosResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    tags=["videos"],
    operation_id="rename_module_video",
)
def rename_module_video(
    course_id: str,
    module_id: str,
    body: RenameVideoRequestBody,
    response: Response,
    user: CurrentUser,
    curation: CurationService,
) -> ModuleVideosResponse:
    _no_store(response)
    if not body.video_id.strip() or not body.title.strip():
        raise ApiError(400, "Video ID and title are required", headers=NO_STORE_HEADERS)

    with _module_context(user, course_id, module_id):
        result = curation.rename_video(
            user.user_id,
            course_id,
            module_id,
            video_id=body.video_id,
            title=body.title,
        )
    return _mutation_response(result)


@router.post(
    "/courses/{course_id}/modules/{module_id}/videos/search",
    response_model=SearchVideosResponse,
    response_model_exclude_none=True,
    responses={**_ERROR_RESPONSES, 206: {"model": SearchVideosResponse}},
    tags=["videos"],
    operation_id="search_module_videos",
)
def search_module_videos(
    course_id: str,
    module_id: str,
    body: SearchVideosRequestBody,
    response: Response,
    user: CurrentUser,
    curation: CurationService,
) -> SearchVideosResponse:
    _no_store(response)
    if not body.query.strip():
        raise ApiError(400, "Search query is required", headers=NO_STORE_HEADERS)

    with _module_context(user, course_id, module_id):
        result = curation.search_ai_videos(
            user.user_id,
            course_id,
            module_id,
            query=body.query,
            language=body.language,
        )

    videos = [VideoLinkPayload.from_video_link(video) for video in result.videos]
    if result.outcome == "quota_exceeded":
        raise ApiError(
            429,
            result.message,
            headers=NO_STORE_HEADERS,
            aiSearchCount=result.state.ai_search_count,
            aiSearchLimit=result.limit,
        )
    if result.outcome == "unavailable":
        raise ApiError(
            503,
            result.message,
            headers=NO_STORE_HEADERS,
            error=result.error,
        )
    if result.outcome == "no_results":
        return SearchVideosResponse(
            videos=[],
            message=result.message,
            suggestion=result.suggestion,
        )
    if result.outcome == "not_persisted":
        response.status_code = 206
        return SearchVideosResponse(
            videos=videos,
            message=result.message,
            warning=result.warning,
        )

    state_payload = ModuleVideosResponse.from_state(result.state)
    return SearchVideosResponse(
        videos=videos,
        message=result.message,
        custom_videos=state_payload.custom_videos,
        ai_videos=state_payload.ai_videos,
        ai_search_count=state_payload.ai_search_count,
        ai_search_limit=result.limit,
    )


@router.post(
    "/ai/find-youtube-videos",
    response_model=FindYoutubeVideosResponse,
    responses=_ERROR_RESPONSES,
    tags=["ai"],
    operation_id="find_youtube_videos",
)
def find_youtube_videos(
    body: FindYoutubeVideosRequestBody,
    _: CurrentUser,
    curation: CurationService,
) -> FindYoutubeVideosResponse:
    try:
        found = curation.find_videos_for_topic(
            body.topic,
            difficulty=body.difficulty,
            duration=body.duration,
        )
    except VideoCurationError as exc:
        raise ApiError(400, str(exc)) from exc
    except VideoFinderError as exc:
        LOGGER.warning("ai topic lookup unavailable error=%s", exc)
        raise ApiError(503, "AI video search service temporarily unavailable") from exc

    return FindYoutubeVideosResponse(
        data=FoundVideosData(videos=[FoundVideoPayload.from_found_video(v) for v in found])
    )


def _fetch_playlist(container: ServiceContainer, playlist_id: str) -> PlaylistResponse:
    try:
        playlist = container.youtube.fetch_playlist(playlist_id)
    except YouTubeNotConfiguredError as exc:
        raise ApiError(503, "YouTube API is not configured") from exc
    except PlaylistNotFoundError as exc:
        raise ApiError(404, str(exc)) from exc
    except PlaylistPrivateError as exc:
        raise ApiError(403, str(exc)) from exc
    except YouTubeServiceError as exc:
        LOGGER.warning("playlist fetch failed playlist_id=%s error=%s", playlist_id, exc)
        raise ApiError(503, "Failed to fetch playlist from YouTube") from exc
    return PlaylistResponse.from_playlist(playlist)


def _validated_playlist_id(raw_playlist_id: str) -> str:
    playlist_id = raw_playlist_id.strip()
    if _PLAYLIST_ID_RE.fullmatch(playlist_id) is None:
        raise ApiError(400, "Invalid playlist ID format")
    return playlist_id


@router.get(
    "/youtube/playlist",
    response_model=PlaylistResponse,
    responses=_ERROR_RESPONSES,
    tags=["youtube"],
    operation_id="get_youtube_playlist",
)
def get_youtube_playlist(
    _: CurrentUser,
    container: Container,
    playlist_id: Annotated[str | None, Query(alias="playlistId")] = None,
) -> PlaylistResponse:
    if playlist_id is None or not playlist_id.strip():
        raise ApiError(400, "Playlist ID is required")
    return _fetch_playlist(container, _validated_playlist_id(playlist_id))


@router.post(
    "/youtube/playlist",
    response_model=PlaylistResponse,
    responses=_ERROR_RESPONSES,
    tags=["youtube"],
    operation_id="post_youtube_playlist",
)
def post_youtube_playlist(
    body: PlaylistUrlRequestBody,
    _: CurrentUser,
    container: Container,
) -> PlaylistResponse:
    playlist_url = body.playlist_url.strip()
    if not playlist_url:
        raise ApiError(400, "Playlist URL is required")
    playlist_id = extract_playlist_id(playlist_url)
    if playlist_id is None:
        raise ApiError(400, "Invalid YouTube playlist URL")
    return _fetch_playlist(container, _validated_playlist_id(playlist_id))


@router.get(
    "/api/admin/limits",
    response_model=AdminLimitsPayload,
    tags=["admin"],
    operation_id="get_admin_limits",
)
def get_admin_limits(container: Container) -> AdminLimitsPayload:
    return AdminLimitsPayload.from_limits(container.limits.get_limits())


@router.put(
    "/api/admin/limits",
    response_model=AdminLimitsUpdateResponse,
    responses=_ERROR_RESPONSES,
    tags=["admin"],
    operation_id="update_admin_limits",
)
def update_admin_limits(
    body: AdminLimitsPayload,
    admin: Annotated[UserIdentity, Depends(get_admin_user)],
    container: Container,
) -> AdminLimitsUpdateResponse:
    previous = container.limits.get_limits()
    try:
        stored = container.limits.set_limits(body.to_limits(), updated_by=admin.user_id)
    except ValueError as exc:
        raise ApiError(400, str(exc)) from exc

    payload = AdminLimitsPayload.from_limits(stored)
    container.audit.create_event(
        request_id=str(get_contextvars().get("http_request_id", "")),
        actor_user_id=admin.user_id,
        action=ADMIN_LIMITS_AUDIT_ACTION,
        payload=body.model_dump(by_alias=True),
        result={
            "previous": AdminLimitsPayload.from_limits(previous).model_dump(by_alias=True),
            "limits": payload.model_dump(by_alias=True),
        },
    )
    LOGGER.info(
        "admin limits updated actor=%s max_custom_videos=%s max_ai_searches=%s",
        admin.user_id,
        stored.max_custom_videos,
        stored.max_ai_searches,
    )
    container.telemetry.emit(
        TelemetryEvent.ADMIN_LIMITS_UPDATED,
        max_custom_videos=stored.max_custom_videos,
        max_ai_searches=stored.max_ai_searches,
    )
    return AdminLimitsUpdateResponse(limits=payload)
