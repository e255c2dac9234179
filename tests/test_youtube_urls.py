from __future__ import annotations

import pytest

from backend.app.services.youtube_urls import (
    INVALID_URL_ERROR,
    extract_playlist_id,
    generate_video_link_id,
    is_valid_embed_url,
    looks_like_playlist_url,
    normalize_youtube_url,
)

VIDEO_EMBED = "https://www.youtube.com/embed/dQw4w9WgXcQ?rel=0&modestbranding=1"
PLAYLIST_ID = "PLrAXtmErZgOeiKm4sgNOknGvNjby9efdf"
PLAYLIST_EMBED = (
    f"https://www.youtube.com/embed/videoseries?list={PLAYLIST_ID}&rel=0&modestbranding=1"
)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/live/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "  dQw4w9WgXcQ  ",
    ],
)
def test_normalize_video_urls_to_canonical_embed(url: str) -> None:
    info = normalize_youtube_url(url)

    assert info.is_valid is True
    assert info.type == "video"
    assert info.id == "dQw4w9WgXcQ"
    assert info.embed_url == VIDEO_EMBED
    assert info.error is None


def test_normalize_playlist_url() -> None:
    info = normalize_youtube_url(f"https://www.youtube.com/playlist?list={PLAYLIST_ID}")

    assert info.is_valid is True
    assert info.type == "playlist"
    assert info.id == PLAYLIST_ID
    assert info.embed_url == PLAYLIST_EMBED


def test_watch_url_with_list_prefers_video_unless_hinted() -> None:
    url = f"https://www.youtube.com/watch?v=dQw4w9WgXcQ&list={PLAYLIST_ID}"

    assert normalize_youtube_url(url).type == "video"
    hinted = normalize_youtube_url(url, is_playlist=True)
    assert hinted.type == "playlist"
    assert hinted.id == PLAYLIST_ID


def test_bare_playlist_id_needs_hint() -> None:
    assert normalize_youtube_url(PLAYLIST_ID).is_valid is False
    assert normalize_youtube_url(PLAYLIST_ID, is_playlist=True).embed_url == PLAYLIST_EMBED


def test_existing_embed_urls_round_trip() -> None:
    assert normalize_youtube_url(VIDEO_EMBED).embed_url == VIDEO_EMBED
    assert normalize_youtube_url(PLAYLIST_EMBED).embed_url == PLAYLIST_EMBED


@pytest.mark.parametrize(
    "url",
    [
        "",
        "   ",
        "https://vimeo.com/123456",
        "https://www.youtube.com/watch?v=short",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQextra",
        "https://www.youtube.com/embed/videoseries",
        "not a url at all",
    ],
)
def test_invalid_urls_are_reported_without_raising(url: str) -> None:
    info = normalize_youtube_url(url)

    assert info.is_valid is False
    assert info.embed_url == ""
    assert info.error == INVALID_URL_ERROR


def test_playlist_helpers() -> None:
    assert extract_playlist_id(f"https://youtube.com/playlist?list={PLAYLIST_ID}") == PLAYLIST_ID
    assert extract_playlist_id("https://youtu.be/dQw4w9WgXcQ") is None
    assert looks_like_playlist_url(f"https://youtube.com/playlist?list={PLAYLIST_ID}") is True
    assert looks_like_playlist_url(f"https://youtube.com/watch?v=abc&list={PLAYLIST_ID}") is False
    assert is_valid_embed_url(VIDEO_EMBED) is True
    assert is_valid_embed_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ") is False


def test_generate_video_link_id_is_stable() -> None:
    assert generate_video_link_id(VIDEO_EMBED, "user") == "user-video-dQw4w9WgXcQ"
    assert generate_video_link_id(PLAYLIST_EMBED, "ai") == f"ai-playlist-{PLAYLIST_ID}"


def test_generate_video_link_id_falls_back_to_url_hash() -> None:
    first = generate_video_link_id("https://example.com/video.mp4", "user")
    second = generate_video_link_id("https://example.com/video.mp4", "user")

    assert first == second
    assert first.startswith("user-unknown-")
    suffix = first.removeprefix("user-unknown-")
    assert len(suffix) == 12
    assert not set(suffix) & {"+", "/", "="}
