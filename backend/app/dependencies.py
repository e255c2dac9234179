from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, Header, Request

from backend.app.config import AppSettings, load_settings
from backend.app.errors import ApiError
from backend.app.models.video_state import AdminVideoLimits, UserIdentity
from backend.app.repositories.access_token_repository import AccessTokenRepository
from backend.app.repositories.audit_repository import AuditRepository
from backend.app.repositories.database import Database
from backend.app.repositories.user_profile_repository import UserProfileRepository
from backend.app.repositories.video_limits_repository import VideoLimitsRepository
from backend.app.services.video_curation_service import VideoCurationService
from backend.app.services.video_finder import VideoFinder
from backend.app.services.youtube_service import ClientFactory, UrlOpener, YouTubeService
from backend.app.telemetry import TelemetryClient, build_telemetry_client

LOGGER = logging.getLogger("skillsprint.auth")


@dataclass(frozen=True)
class ServiceContainer:
    """Process-wide collaborators, built once at startup and closed at shutdown."""

    settings: AppSettings
    database: Database
    profiles: UserProfileRepository
    access_tokens: AccessTokenRepository
    limits: VideoLimitsRepository
    audit: AuditRepository
    youtube: YouTubeService
    finder: VideoFinder
    curation: VideoCurationService
    telemetry: TelemetryClient

    def close(self) -> None:
        self.finder.close()
        self.youtube.close()


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


def build_container(
    settings: AppSettings,
    *,
    genai_client: Any | None = None,
    youtube_client_factory: ClientFactory | None = None,
    url_opener: UrlOpener | None = None,
) -> ServiceContainer:
    """Wire the process-wide services; the keyword overrides replace network clients."""
    database = Database(settings.db_path)
    database.initialize()

    telemetry = build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )
    profiles = UserProfileRepository(database)
    limits = VideoLimitsRepository(
        database,
        defaults=AdminVideoLimits(
            max_custom_videos=settings.default_max_custom_videos,
            max_ai_searches=settings.default_max_ai_searches,
        ),
    )
    youtube = YouTubeService(
        api_key=settings.youtube_api_key,
        oembed_timeout_seconds=settings.oembed_timeout_seconds,
        client_factory=youtube_client_factory,
        url_opener=url_opener,
    )
    finder = VideoFinder(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
        client=genai_client,
    )
    return ServiceContainer(
        settings=settings,
        database=database,
        profiles=profiles,
        access_tokens=AccessTokenRepository(database),
        limits=limits,
        audit=AuditRepository(database),
        youtube=youtube,
        finder=finder,
        curation=VideoCurationService(
            profiles=profiles,
            limits=limits,
            finder=finder,
            youtube=youtube,
            telemetry=telemetry,
            commit_max_attempts=settings.video_state_commit_max_attempts,
            availability_check_enabled=settings.embed_availability_check_enabled,
        ),
        telemetry=telemetry,
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if not isinstance(container, ServiceContainer):
        raise RuntimeError("service container is not initialized; is the app lifespan running?")
    return container


def get_curation_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> VideoCurationService:
    return container.curation


def get_optional_user(
    container: Annotated[ServiceContainer, Depends(get_container)],
    authorization: Annotated[str | None, Header()] = None,
) -> UserIdentity | None:
    token = _extract_bearer_token(authorization)
    if token is None:
        return None

    user_id = container.access_tokens.resolve_user_id(token)
    if user_id is None:
        LOGGER.info("access token rejected")
        return None

    profile = container.profiles.get_profile(user_id)
    if profile is None:
        raise ApiError(404, "User not found")
    return UserIdentity(user_id=profile.user_id, email=profile.email, role=profile.role)


def get_current_user(
    user: Annotated[UserIdentity | None, Depends(get_optional_user)],
) -> UserIdentity:
    if user is None:
        raise ApiError(401, "Authentication required")
    return user


def get_admin_user(
    user: Annotated[UserIdentity, Depends(get_current_user)],
) -> UserIdentity:
    if not user.is_admin:
        raise ApiError(403, "Admin access required")
    return user


def _extract_bearer_token(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = credentials.strip()
    return token or None


def reset_cached_dependencies() -> None:
    get_settings.cache_clear()
