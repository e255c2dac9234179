from __future__ import annotations

import io
from email.message import Message
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request

import pytest

from backend.app.services.youtube_service import (
    PlaylistNotFoundError,
    PlaylistPrivateError,
    YouTubeNotConfiguredError,
    YouTubeService,
    YouTubeServiceError,
)

PLAYLIST_ID = "PLrAXtmErZgOeiKm4sgNOknGvNjby9efdf"


class _FakeRequest:
    def __init__(self, result: dict[str, Any] | Exception) -> None:
        self._result = result

    def execute(self) -> dict[str, Any]:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class _FakeResource:
    def __init__(self, responses: list[dict[str, Any] | Exception]) -> None:
        self._responses = responses
        self.calls: list[dict[str, Any]] = []

    def list(self, **kwargs: Any) -> _FakeRequest:
        self.calls.append(kwargs)
        return _FakeRequest(self._responses.pop(0))


class _FakeYouTubeClient:
    def __init__(
        self,
        *,
        playlists: list[dict[str, Any] | Exception],
        items: list[dict[str, Any] | Exception] | None = None,
    ) -> None:
        self.playlists_resource = _FakeResource(playlists)
        self.items_resource = _FakeResource(items or [])
        self.closed = False

    def playlists(self) -> _FakeResource:
        return self.playlists_resource

    def playlistItems(self) -> _FakeResource:  # noqa: N802
        return self.items_resource

    def close(self) -> None:
        self.closed = True


class _FakeHttpResponse:
    status = 403

    def __init__(self, reason: str) -> None:
        self.reason = reason


class _FakeApiError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.resp = _FakeHttpResponse(message)
        self.resp.status = status


def _playlist_details(privacy_status: str = "public") -> dict[str, Any]:
    return {
        "items": [
            {
                "id": PLAYLIST_ID,
                "snippet": {
                    "title": "Linear Algebra",
                    "description": "Essence of linear algebra",
                    "channelTitle": "3Blue1Brown",
                    "channelId": "UCYO_jab_esuFRV4b17AJtAw",
                    "publishedAt": "2016-08-06T00:00:00Z",
                    "thumbnails": {"default": {"url": "https://i.ytimg.com/default.jpg"}},
                },
                "status": {"privacyStatus": privacy_status},
            }
        ]
    }


def _item(video_id: str, title: str) -> dict[str, Any]:
    return {
        "snippet": {
            "title": title,
            "thumbnails": {"medium": {"url": f"https://i.ytimg.com/{video_id}.jpg"}},
        },
        "contentDetails": {"videoId": video_id},
    }


def _service(client: _FakeYouTubeClient, **kwargs: Any) -> YouTubeService:
    return YouTubeService(api_key="test-key", client_factory=lambda _key: client, **kwargs)


def test_fetch_playlist_pages_through_items() -> None:
    client = _FakeYouTubeClient(
        playlists=[_playlist_details()],
        items=[
            {
                "items": [_item("aaaaaaaaaaa", "Vectors"), _item("bbbbbbbbbbb", "Private video")],
                "pageInfo": {"totalResults": 3},
                "nextPageToken": "page-2",
            },
            {"items": [_item("ccccccccccc", "Span")], "pageInfo": {"totalResults": 3}},
        ],
    )

    playlist = _service(client).fetch_playlist(PLAYLIST_ID)

    assert playlist.title == "Linear Algebra"
    assert playlist.channel_title == "3Blue1Brown"
    assert playlist.total_items == 3
    assert playlist.item_count == 2
    assert [item.video_id for item in playlist.items] == ["aaaaaaaaaaa", "ccccccccccc"]
    assert [item.position for item in playlist.items] == [1, 2]
    assert playlist.items[0].creator == "3Blue1Brown"
    assert playlist.items[0].thumbnail_url == "https://i.ytimg.com/aaaaaaaaaaa.jpg"
    assert client.items_resource.calls[1]["pageToken"] == "page-2"
    assert client.playlists_resource.calls[0]["part"] == "snippet,status"


def test_fetch_playlist_not_found() -> None:
    client = _FakeYouTubeClient(playlists=[{"items": []}])

    with pytest.raises(PlaylistNotFoundError):
        _service(client).fetch_playlist(PLAYLIST_ID)


def test_fetch_playlist_private() -> None:
    client = _FakeYouTubeClient(playlists=[_playlist_details(privacy_status="private")])

    with pytest.raises(PlaylistPrivateError):
        _service(client).fetch_playlist(PLAYLIST_ID)


def test_fetch_playlist_maps_api_errors() -> None:
    not_found = _FakeYouTubeClient(playlists=[_FakeApiError(404, "playlistNotFound")])
    with pytest.raises(PlaylistNotFoundError):
        _service(not_found).fetch_playlist(PLAYLIST_ID)

    forbidden = _FakeYouTubeClient(playlists=[_FakeApiError(403, "playlistItemsNotAccessible")])
    with pytest.raises(PlaylistPrivateError):
        _service(forbidden).fetch_playlist(PLAYLIST_ID)

    quota = _FakeYouTubeClient(playlists=[_FakeApiError(403, "quotaExceeded")])
    with pytest.raises(YouTubeServiceError, match="playlist details"):
        _service(quota).fetch_playlist(PLAYLIST_ID)


def test_fetch_playlist_without_key() -> None:
    service = YouTubeService(api_key="  ")

    assert service.is_configured is False
    with pytest.raises(YouTubeNotConfiguredError):
        service.fetch_playlist(PLAYLIST_ID)


def test_close_releases_client() -> None:
    client = _FakeYouTubeClient(playlists=[{"items": []}])
    service = _service(client)
    with pytest.raises(PlaylistNotFoundError):
        service.fetch_playlist(PLAYLIST_ID)

    service.close()

    assert client.closed is True


class _RecordingOpener:
    def __init__(self, result: bytes | Exception) -> None:
        self._result = result
        self.requests: list[Request] = []

    def __call__(self, request: Request, timeout: float) -> io.BytesIO:
        _ = timeout
        self.requests.append(request)
        if isinstance(self._result, Exception):
            raise self._result
        return io.BytesIO(self._result)


def _http_error(code: int) -> HTTPError:
    return HTTPError("https://www.youtube.com/oembed", code, "error", Message(), None)


def test_check_embed_availability_available() -> None:
    opener = _RecordingOpener(b'{"title": "Vectors", "author_name": "3Blue1Brown"}')
    service = YouTubeService(api_key=None, url_opener=opener)

    assert service.check_embed_availability("https://youtu.be/dQw4w9WgXcQ") == "available"
    assert "watch%3Fv%3DdQw4w9WgXcQ" in opener.requests[0].full_url


@pytest.mark.parametrize("code", [401, 403, 404])
def test_check_embed_availability_unavailable_statuses(code: int) -> None:
    service = YouTubeService(api_key=None, url_opener=_RecordingOpener(_http_error(code)))

    assert service.check_embed_availability("https://youtu.be/dQw4w9WgXcQ") == "unavailable"


@pytest.mark.parametrize(
    "error",
    [_http_error(500), URLError("offline"), TimeoutError("slow")],
)
def test_check_embed_availability_unknown_on_transport_errors(error: Exception) -> None:
    service = YouTubeService(api_key=None, url_opener=_RecordingOpener(error))

    assert service.check_embed_availability("https://youtu.be/dQw4w9WgXcQ") == "unknown"


def test_check_embed_availability_without_network_cases() -> None:
    opener = _RecordingOpener(RuntimeError("must not be called"))
    service = YouTubeService(api_key=None, url_opener=opener)

    assert service.check_embed_availability("not a url") == "unavailable"
    playlist_url = f"https://www.youtube.com/playlist?list={PLAYLIST_ID}"
    assert service.check_embed_availability(playlist_url) == "available"
    assert opener.requests == []
