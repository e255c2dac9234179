from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Literal, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from backend.app.services.youtube_urls import normalize_youtube_url, video_embed_url

LOGGER = logging.getLogger("skillsprint.youtube")

OEMBED_ENDPOINT = "https://www.youtube.com/oembed"
PLAYLIST_PAGE_SIZE = 50
MAX_PLAYLIST_PAGES = 40
_UNAVAILABLE_ITEM_TITLES = frozenset({"Private video", "Deleted video"})
_UNAVAILABLE_OEMBED_STATUSES = frozenset({401, 403, 404})

EmbedAvailability = Literal["available", "unavailable", "unknown"]


class YouTubeServiceError(Exception):
    pass


class YouTubeNotConfiguredError(YouTubeServiceError):
    pass


class PlaylistNotFoundError(YouTubeServiceError):
    pass


class PlaylistPrivateError(YouTubeServiceError):
    pass


@dataclass(frozen=True)
class YouTubePlaylistItem:
    video_id: str
    title: str
    embed_url: str
    position: int
    creator: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    published_at: str | None = None


@dataclass(frozen=True)
class YouTubePlaylist:
    id: str
    title: str
    description: str
    channel_title: str | None
    channel_id: str | None
    published_at: str | None
    thumbnails: dict[str, str]
    privacy_status: str
    total_items: int
    items: tuple[YouTubePlaylistItem, ...]

    @property
    def item_count(self) -> int:
        return len(self.items)


ClientFactory = Callable[[str], Any]
UrlOpener = Callable[..., Any]


class YouTubeService:
    """
    Read-only YouTube access: playlist contents through the Data API (API key
    auth) and embed availability through the public oEmbed endpoint.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        oembed_timeout_seconds: float = 5.0,
        client_factory: ClientFactory | None = None,
        url_opener: UrlOpener | None = None,
    ) -> None:
        self._api_key = _normalize_env_text(api_key)
        self._oembed_timeout_seconds = max(0.5, oembed_timeout_seconds)
        self._client_factory = client_factory or _build_youtube_client
        self._url_opener = url_opener or urlopen
        self._client: Any | None = None

    @property
    def is_configured(self) -> bool:
        return self._api_key is not None

    def _get_client(self) -> Any:
        if self._api_key is None:
            raise YouTubeNotConfiguredError("YouTube API key is not configured")
        if self._client is None:
            self._client = self._client_factory(self._api_key)
        return self._client

    def fetch_playlist(self, playlist_id: str) -> YouTubePlaylist:
        client = self._get_client()
        details = _execute(
            client.playlists().list(part="snippet,status", id=playlist_id, maxResults=1),
            action="playlist details",
        )
        playlists = _as_list(details.get("items"))
        if not playlists:
            raise PlaylistNotFoundError("Playlist not found or not accessible")

        playlist = _as_dict(playlists[0])
        snippet = _as_dict(playlist.get("snippet"))
        privacy_status = (
            _coerce_nonempty_string(_as_dict(playlist.get("status")).get("privacyStatus"))
            or "unknown"
        )
        if privacy_status == "private":
            raise PlaylistPrivateError("Playlist is private and cannot be accessed")

        channel_title = _coerce_nonempty_string(snippet.get("channelTitle"))
        items, total_items = self._fetch_playlist_items(
            client,
            playlist_id,
            default_creator=channel_title,
        )
        LOGGER.info(
            "youtube playlist fetched playlist_id=%s items=%s total=%s",
            playlist_id,
            len(items),
            total_items,
        )
        return YouTubePlaylist(
            id=_coerce_nonempty_string(playlist.get("id")) or playlist_id,
            title=_coerce_nonempty_string(snippet.get("title")) or playlist_id,
            description=str(snippet.get("description") or ""),
            channel_title=channel_title,
            channel_id=_coerce_nonempty_string(snippet.get("channelId")),
            published_at=_coerce_nonempty_string(snippet.get("publishedAt")),
            thumbnails=_extract_thumbnail_urls(snippet),
            privacy_status=privacy_status,
            total_items=max(total_items, len(items)),
            items=tuple(items),
        )

    def _fetch_playlist_items(
        self,
        client: Any,
        playlist_id: str,
        *,
        default_creator: str | None,
    ) -> tuple[list[YouTubePlaylistItem], int]:
        items: list[YouTubePlaylistItem] = []
        total_items = 0
        page_token: str | None = None
        for _ in range(MAX_PLAYLIST_PAGES):
            query_kwargs: dict[str, object] = {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": PLAYLIST_PAGE_SIZE,
            }
            if page_token is not None:
                query_kwargs["pageToken"] = page_token

            response = _execute(
                client.playlistItems().list(**query_kwargs),
                action="playlist items",
            )
            reported_total = _as_dict(response.get("pageInfo")).get("totalResults")
            if isinstance(reported_total, int):
                total_items = reported_total

            for raw_item in _as_list(response.get("items")):
                item = _playlist_item_from_api(
                    _as_dict(raw_item),
                    position=len(items) + 1,
                    default_creator=default_creator,
                )
                if item is not None:
                    items.append(item)

            raw_next = response.get("nextPageToken")
            page_token = raw_next if isinstance(raw_next, str) and raw_next.strip() else None
            if page_token is None:
                break
        else:
            LOGGER.warning(
                "youtube playlist truncated playlist_id=%s max_pages=%s",
                playlist_id,
                MAX_PLAYLIST_PAGES,
            )
        return items, total_items

    def check_embed_availability(self, embed_url: str) -> EmbedAvailability:
        info = normalize_youtube_url(embed_url)
        if not info.is_valid or not info.id:
            return "unavailable"

        if info.type == "playlist":
            # oEmbed does not cover playlists; a well-formed id is the best signal.
            return "available" if len(info.id) > 10 else "unavailable"

        watch_url = f"https://www.youtube.com/watch?v={info.id}"
        request = Request(
            f"{OEMBED_ENDPOINT}?{urlencode({'url': watch_url, 'format': 'json'})}",
            headers={"accept": "application/json", "user-agent": "skillsprint/1.0"},
            method="GET",
        )
        try:
            with self._url_opener(request, timeout=self._oembed_timeout_seconds) as response:
                raw_body = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            if exc.code in _UNAVAILABLE_OEMBED_STATUSES:
                LOGGER.info(
                    "youtube embed unavailable video_id=%s status=%s",
                    info.id,
                    exc.code,
                )
                return "unavailable"
            LOGGER.warning("youtube oembed http error video_id=%s status=%s", info.id, exc.code)
            return "unknown"
        except (URLError, TimeoutError, OSError) as exc:
            LOGGER.warning("youtube oembed request failed video_id=%s error=%s", info.id, exc)
            return "unknown"

        if _coerce_nonempty_string(_parse_json_dict(raw_body).get("title")) is None:
            return "unknown"
        return "available"

    def close(self) -> None:
        if self._client is not None:
            close = getattr(self._client, "close", None)
            if callable(close):
                close()
        self._client = None


def _build_youtube_client(api_key: str) -> Any:
    try:
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise YouTubeServiceError(
            "Playlist lookups require the google-api-python-client dependency"
        ) from exc

    build_fn: Any = discovery_module.build
    return build_fn("youtube", "v3", developerKey=api_key, cache_discovery=False)


def _execute(request: Any, *, action: str) -> dict[str, Any]:
    try:
        return _as_dict(request.execute())
    except Exception as exc:
        status = _extract_http_status(exc)
        if status == 404:
            raise PlaylistNotFoundError("Playlist not found or not accessible") from exc
        if status == 403 and "notaccessible" in str(exc).lower():
            raise PlaylistPrivateError("Playlist is private and cannot be accessed") from exc
        LOGGER.warning("youtube api request failed action=%s status=%s", action, status)
        raise YouTubeServiceError(
            f"YouTube API request failed ({action}): {_summarize_exception_message(exc)}"
        ) from exc


def _playlist_item_from_api(
    item: dict[str, Any],
    *,
    position: int,
    default_creator: str | None,
) -> YouTubePlaylistItem | None:
    snippet = _as_dict(item.get("snippet"))
    content_details = _as_dict(item.get("contentDetails"))
    video_id = _coerce_nonempty_string(content_details.get("videoId")) or _coerce_nonempty_string(
        _as_dict(snippet.get("resourceId")).get("videoId")
    )
    title = _coerce_nonempty_string(snippet.get("title"))
    if video_id is None or title is None or title in _UNAVAILABLE_ITEM_TITLES:
        return None

    thumbnails = _extract_thumbnail_urls(snippet)
    return YouTubePlaylistItem(
        video_id=video_id,
        title=title,
        embed_url=video_embed_url(video_id),
        position=position,
        creator=_coerce_nonempty_string(snippet.get("videoOwnerChannelTitle")) or default_creator,
        description=_coerce_nonempty_string(snippet.get("description")),
        thumbnail_url=thumbnails.get("medium") or thumbnails.get("default"),
        published_at=_coerce_nonempty_string(snippet.get("publishedAt")),
    )


def _extract_http_status(exc: Exception) -> int | None:
    response = getattr(exc, "resp", None)
    status = getattr(response, "status", None)
    if isinstance(status, int):
        return status
    if isinstance(status, str) and status.isdigit():
        return int(status)
    return None


def _extract_thumbnail_urls(snippet: dict[str, Any]) -> dict[str, str]:
    thumbnails = _as_dict(snippet.get("thumbnails"))
    urls: dict[str, str] = {}
    for size, raw_value in thumbnails.items():
        url = _coerce_nonempty_string(_as_dict(raw_value).get("url"))
        if url is not None:
            urls[size] = url
    return urls


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return _as_dict(parsed)


def _normalize_env_text(raw_value: str | None) -> str | None:
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    return None


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        raw_list = cast(list[Any], value)
        return list(raw_list)
    return []
