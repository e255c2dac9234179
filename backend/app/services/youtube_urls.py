from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Literal

YouTubeUrlType = Literal["video", "playlist"]

EMBED_BASE_URL = "https://www.youtube.com/embed"
EMBED_QUERY = "rel=0&modestbranding=1"
INVALID_URL_ERROR = "Invalid YouTube URL format"

_ID_CHARS = r"A-Za-z0-9_-"
_VIDEO_ID = rf"[{_ID_CHARS}]{{11}}(?![{_ID_CHARS}])"
_VIDEO_ID_PATTERNS = (
    re.compile(rf"youtube\.com/watch\?(?:[^#]*?&)?v=({_VIDEO_ID})"),
    re.compile(rf"youtu\.be/({_VIDEO_ID})"),
    re.compile(rf"/embed/({_VIDEO_ID})"),
    re.compile(rf"/shorts/({_VIDEO_ID})"),
    re.compile(rf"/live/({_VIDEO_ID})"),
)
_BARE_VIDEO_ID_RE = re.compile(rf"[{_ID_CHARS}]{{11}}")
_PLAYLIST_ID_RE = re.compile(rf"[?&]list=([{_ID_CHARS}]+)")
_BARE_PLAYLIST_ID_RE = re.compile(rf"[{_ID_CHARS}]{{12,}}")
_EMBED_URL_RE = re.compile(
    rf"^https://www\.youtube\.com/embed/(?:[{_ID_CHARS}]{{11}}|videoseries)(?:\?.*)?$"
)
_EMBED_SERIES_MARKER = "videoseries?list="


@dataclass(frozen=True)
class YouTubeUrlInfo:
    type: YouTubeUrlType
    id: str
    embed_url: str
    is_valid: bool
    error: str | None = None


def normalize_youtube_url(url: str, *, is_playlist: bool = False) -> YouTubeUrlInfo:
    """
    Turn any YouTube watch/short/share/playlist/embed URL (or bare id) into a
    canonical embed URL.

    A URL carrying both a video id and a `list=` id resolves to the video
    unless `is_playlist` is set or the URL is shaped like a playlist link.
    Never raises; callers check `is_valid`.
    """
    cleaned = url.strip() if isinstance(url, str) else ""
    if not cleaned:
        return _invalid()

    if "/embed/" in cleaned:
        if _EMBED_SERIES_MARKER in cleaned:
            return _playlist_info(extract_playlist_id(cleaned))
        video_id = _match_video_id(cleaned)
        if video_id is None or video_id == "videoseries":
            return _invalid()
        return _video_info(video_id)

    playlist_id = extract_playlist_id(cleaned)
    if playlist_id is not None and (is_playlist or looks_like_playlist_url(cleaned)):
        return _playlist_info(playlist_id)

    video_id = _match_video_id(cleaned)
    if video_id is not None:
        return _video_info(video_id)

    if is_playlist and _BARE_PLAYLIST_ID_RE.fullmatch(cleaned):
        return _playlist_info(cleaned)
    if _BARE_VIDEO_ID_RE.fullmatch(cleaned):
        return _video_info(cleaned)
    return _invalid()


def extract_playlist_id(url: str) -> str | None:
    match = _PLAYLIST_ID_RE.search(url)
    if match is None:
        return None
    return match.group(1)


def looks_like_playlist_url(url: str) -> bool:
    return (
        "playlist?list=" in url
        or _EMBED_SERIES_MARKER in url
        or ("list=" in url and "watch?v=" not in url)
    )


def is_valid_embed_url(url: str) -> bool:
    return bool(_EMBED_URL_RE.match(url))


def video_embed_url(video_id: str) -> str:
    return f"{EMBED_BASE_URL}/{video_id}?{EMBED_QUERY}"


def playlist_embed_url(playlist_id: str) -> str:
    return f"{EMBED_BASE_URL}/videoseries?list={playlist_id}&{EMBED_QUERY}"


def generate_video_link_id(embed_url: str, source: str) -> str:
    """Stable id `{source}-{type}-{canonical_id}`, or a URL hash when no id parses."""
    info = normalize_youtube_url(embed_url)
    if info.is_valid and info.id:
        return f"{source}-{info.type}-{info.id}"

    encoded = base64.b64encode(embed_url.encode("utf-8")).decode("ascii")
    url_hash = re.sub(r"[+/=]", "", encoded)[:12]
    return f"{source}-unknown-{url_hash}"


def _match_video_id(url: str) -> str | None:
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match is not None:
            return match.group(1)
    return None


def _video_info(video_id: str) -> YouTubeUrlInfo:
    info = YouTubeUrlInfo(
        type="video",
        id=video_id,
        embed_url=video_embed_url(video_id),
        is_valid=True,
    )
    return _checked(info)


def _playlist_info(playlist_id: str | None) -> YouTubeUrlInfo:
    if not playlist_id:
        return _invalid()
    info = YouTubeUrlInfo(
        type="playlist",
        id=playlist_id,
        embed_url=playlist_embed_url(playlist_id),
        is_valid=True,
    )
    return _checked(info)


def _checked(info: YouTubeUrlInfo) -> YouTubeUrlInfo:
    if not is_valid_embed_url(info.embed_url):
        return _invalid("Generated embed URL is not valid")
    return info


def _invalid(error: str = INVALID_URL_ERROR) -> YouTubeUrlInfo:
    return YouTubeUrlInfo(type="video", id="", embed_url="", is_valid=False, error=error)
