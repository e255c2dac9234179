from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, cast

import pytest
from pydantic import ValidationError

from backend.app.models.video_contracts import AdminLimitsPayload, AddVideoRequestBody
from backend.app.scripts.access_tokens import main as access_tokens
from backend.app.scripts.export_openapi import main as export_openapi


@pytest.fixture
def script_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    data_dir = tmp_path / "data"
    monkeypatch.setenv("SKILLSPRINT_DATA_DIR", str(data_dir))
    monkeypatch.delenv("SKILLSPRINT_DB_PATH", raising=False)
    return data_dir


def test_access_token_script_lifecycle(
    script_env: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    access_tokens(["create-user", "--email", "admin@example.com", "--role", "admin"])
    created = capsys.readouterr().out
    assert "Role: admin" in created
    assert (script_env / "skillsprint.db").exists()

    access_tokens(["issue", "--email", "admin@example.com", "--label", "web-laptop"])
    issued = capsys.readouterr().out
    match = re.search(r"Issued access token: (\S+)", issued)
    assert match is not None
    token_id = match.group(1)
    assert "Authorization header: Bearer " in issued

    access_tokens(["list", "--email", "admin@example.com"])
    listed = capsys.readouterr().out
    assert token_id in listed
    assert "web-laptop" in listed

    access_tokens(["revoke", "--token-id", token_id])
    assert f"Revoked access token: {token_id}" in capsys.readouterr().out

    access_tokens(["list"])
    assert capsys.readouterr().out.strip() == "No access tokens found."

    access_tokens(["list", "--all"])
    assert token_id in capsys.readouterr().out


def test_access_token_script_revokes_all_tokens_of_user(
    script_env: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _ = script_env
    access_tokens(["create-user", "--email", "learner@example.com"])
    access_tokens(["issue", "--email", "learner@example.com", "--label", "phone"])
    access_tokens(["issue", "--email", "learner@example.com", "--label", "laptop"])
    capsys.readouterr()

    access_tokens(["revoke", "--email", "learner@example.com"])
    assert "Revoked 2 access token(s) for learner@example.com" in capsys.readouterr().out

    access_tokens(["list", "--email", "learner@example.com"])
    assert capsys.readouterr().out.strip() == "No access tokens found."


def test_access_token_script_rejects_unknown_user(script_env: Path) -> None:
    _ = script_env
    with pytest.raises(SystemExit, match="No user found for: ghost@example.com"):
        access_tokens(["issue", "--email", "ghost@example.com", "--label", "x"])


def test_access_token_script_rejects_duplicate_user(
    script_env: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _ = script_env
    access_tokens(["create-user", "--email", "learner@example.com"])
    capsys.readouterr()

    with pytest.raises(SystemExit):
        access_tokens(["create-user", "--email", "learner@example.com"])


def test_export_openapi_writes_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    output = export_openapi(["--output", str(tmp_path / "schema" / "openapi.json")])

    assert output.exists()
    schema = cast(dict[str, Any], json.loads(output.read_text(encoding="utf-8")))
    assert schema["info"]["title"] == "SkillSprint API"
    assert "/api/admin/limits" in schema["paths"]
    assert "/courses/{course_id}/modules/{module_id}/videos/search" in schema["paths"]


def test_admin_limits_payload_is_strict() -> None:
    payload = AdminLimitsPayload.model_validate({"maxCustomVideos": 4, "maxAiSearches": 0})
    assert payload.to_limits().max_custom_videos == 4

    for invalid in (
        {"maxCustomVideos": "4", "maxAiSearches": 1},
        {"maxCustomVideos": 21, "maxAiSearches": 1},
        {"maxCustomVideos": 3, "maxAiSearches": 11},
        {"maxCustomVideos": 3},
        {"maxCustomVideos": 3, "maxAiSearches": 1, "extra": True},
    ):
        with pytest.raises(ValidationError):
            AdminLimitsPayload.model_validate(invalid)


def test_add_video_body_defaults_blank_fields() -> None:
    body = AddVideoRequestBody.model_validate(
        {"url": "  https://youtu.be/dQw4w9WgXcQ ", "title": "  ", "language": None}
    )

    assert body.url == "https://youtu.be/dQw4w9WgXcQ"
    assert body.title == "Custom Video"
    assert body.language == "English"
    assert body.is_playlist is False
