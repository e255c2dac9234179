from __future__ import annotations

import io
import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from email.message import Message
from functools import partial
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from urllib.error import HTTPError
from urllib.request import Request

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import ServiceContainer, build_container, reset_cached_dependencies
from backend.app.main import create_app
from backend.app.models.video_state import UserRole


class FakeGenaiModels:
    def __init__(self) -> None:
        self.replies: list[str | Exception] = []
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if not self.replies:
            return SimpleNamespace(text='{"videos": []}')
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply)


class FakeGenaiClient:
    def __init__(self) -> None:
        self.models = FakeGenaiModels()

    def close(self) -> None:
        return None


class _FakeYouTubeRequest:
    def __init__(self, response: dict[str, Any]) -> None:
        self._response = response

    def execute(self) -> dict[str, Any]:
        return self._response


class _FakeYouTubeResource:
    def __init__(self, responses: dict[str, dict[str, Any]]) -> None:
        self._responses = responses

    def list(self, **kwargs: Any) -> _FakeYouTubeRequest:
        playlist_id = str(kwargs.get("id") or kwargs.get("playlistId"))
        return _FakeYouTubeRequest(self._responses.get(playlist_id, {"items": []}))


@dataclass
class FakeYouTubeClient:
    playlists_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    items_by_playlist: dict[str, dict[str, Any]] = field(default_factory=dict)

    def playlists(self) -> _FakeYouTubeResource:
        return _FakeYouTubeResource(self.playlists_by_id)

    def playlistItems(self) -> _FakeYouTubeResource:  # noqa: N802
        return _FakeYouTubeResource(self.items_by_playlist)


@dataclass
class FakeOEmbedOpener:
    unavailable_ids: set[str] = field(default_factory=set)

    def __call__(self, request: Request, timeout: float) -> io.BytesIO:
        _ = timeout
        if any(video_id in request.full_url for video_id in self.unavailable_ids):
            raise HTTPError(request.full_url, 401, "Unauthorized", Message(), None)
        return io.BytesIO(json.dumps({"title": "Embeddable"}).encode("utf-8"))


@dataclass
class ApiFakes:
    genai: FakeGenaiClient = field(default_factory=FakeGenaiClient)
    youtube: FakeYouTubeClient = field(default_factory=FakeYouTubeClient)
    oembed: FakeOEmbedOpener = field(default_factory=FakeOEmbedOpener)


@pytest.fixture
def fakes() -> ApiFakes:
    return ApiFakes()


@pytest.fixture
def api_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("SKILLSPRINT_DATA_DIR", str(data_dir))
    monkeypatch.setenv("SKILLSPRINT_GEMINI_API_KEY", "test-gemini-key")
    monkeypatch.setenv("SKILLSPRINT_YOUTUBE_API_KEY", "test-youtube-key")
    monkeypatch.delenv("SKILLSPRINT_DB_PATH", raising=False)
    monkeypatch.delenv("SKILLSPRINT_LOG_DIR", raising=False)
    reset_cached_dependencies()
    yield data_dir
    reset_cached_dependencies()


@pytest.fixture
def client(api_env: Path, fakes: ApiFakes) -> Iterator[TestClient]:
    _ = api_env
    app = create_app(
        container_factory=partial(
            build_container,
            genai_client=fakes.genai,
            youtube_client_factory=lambda _key: fakes.youtube,
            url_opener=fakes.oembed,
        )
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def container(client: TestClient) -> ServiceContainer:
    app_container = client.app.state.container  # type: ignore[attr-defined]
    assert isinstance(app_container, ServiceContainer)
    return app_container


def issue_auth_headers(
    container: ServiceContainer,
    *,
    email: str = "learner@example.com",
    role: UserRole = "user",
) -> dict[str, str]:
    profile = container.profiles.get_profile_by_email(email)
    if profile is None:
        profile = container.profiles.create_user(email=email, role=role)
    _, token = container.access_tokens.create_token(user_id=profile.user_id, label="tests")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_headers(container: ServiceContainer) -> Any:
    return partial(issue_auth_headers, container)


@pytest.fixture
def auth_headers(container: ServiceContainer) -> dict[str, str]:
    return issue_auth_headers(container)


@pytest.fixture
def admin_headers(container: ServiceContainer) -> dict[str, str]:
    return issue_auth_headers(container, email="admin@example.com", role="admin")
