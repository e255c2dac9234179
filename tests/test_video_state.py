from __future__ import annotations

from backend.app.models.video_state import (
    ModuleVideoState,
    UserVideoCollections,
    VideoLink,
    module_key,
)
from backend.app.services.quota_gate import AiSearchQuotaGate


def _video(video_id: str, embed_id: str) -> VideoLink:
    return VideoLink(
        id=video_id,
        embed_url=f"https://www.youtube.com/embed/{embed_id}?rel=0&modestbranding=1",
        title=f"Video {video_id}",
        lang_code="en",
        lang_name="English",
    )


def test_module_state_defaults_for_unknown_module() -> None:
    state = UserVideoCollections().module_state("course-1", "module-1")

    assert state.module_key == "course-1-module-1"
    assert state.user_videos == ()
    assert state.ai_videos == ()
    assert state.ai_search_count == 0


def test_with_ai_results_increments_counter_once() -> None:
    state = ModuleVideoState(course_id="c", module_id="m")

    updated = state.with_ai_results([_video("ai-1", "aaaaaaaaaaa"), _video("ai-2", "bbbbbbbbbbb")])

    assert updated.ai_search_count == 1
    assert [video.id for video in updated.ai_videos] == ["ai-1", "ai-2"]
    assert state.ai_search_count == 0


def test_without_video_checks_both_lists() -> None:
    state = ModuleVideoState(
        course_id="c",
        module_id="m",
        user_videos=(_video("user-1", "aaaaaaaaaaa"),),
        ai_videos=(_video("ai-1", "bbbbbbbbbbb"),),
    )

    without_ai = state.without_video("ai-1")
    assert without_ai is not None
    assert without_ai.ai_videos == ()
    assert without_ai.user_videos == state.user_videos
    assert state.without_video("missing") is None


def test_rename_keeps_other_fields() -> None:
    state = ModuleVideoState(
        course_id="c",
        module_id="m",
        user_videos=(_video("user-1", "aaaaaaaaaaa"),),
        ai_search_count=2,
    )

    renamed = state.with_renamed_video("user-1", "Better title")

    assert renamed is not None
    assert renamed.user_videos[0].title == "Better title"
    assert renamed.user_videos[0].embed_url == state.user_videos[0].embed_url
    assert renamed.ai_search_count == 2
    assert state.with_renamed_video("missing", "x") is None


def test_rename_of_ai_video_leaves_user_videos() -> None:
    state = ModuleVideoState(
        course_id="c",
        module_id="m",
        user_videos=(_video("user-1", "aaaaaaaaaaa"),),
        ai_videos=(_video("ai-1", "bbbbbbbbbbb"), _video("ai-2", "ccccccccccc")),
        ai_search_count=1,
    )

    renamed = state.with_renamed_video("ai-2", "Better title")

    assert renamed is not None
    assert renamed.user_videos == state.user_videos
    assert [video.title for video in renamed.ai_videos] == ["Video ai-1", "Better title"]
    assert renamed.ai_search_count == 1


def test_with_module_state_only_touches_its_module() -> None:
    other = ModuleVideoState(course_id="c", module_id="other", ai_search_count=1)
    collections = UserVideoCollections().with_module_state(other)
    state = ModuleVideoState(
        course_id="c",
        module_id="m",
        user_videos=(_video("user-1", "aaaaaaaaaaa"),),
    )

    updated = collections.with_module_state(state)

    assert updated.ai_search_usage[module_key("c", "other")] == 1
    assert updated.module_state("c", "m").user_videos == state.user_videos
    assert collections.module_state("c", "m").user_videos == ()


def test_quota_gate_allows_until_limit() -> None:
    gate = AiSearchQuotaGate()
    state = ModuleVideoState(course_id="c", module_id="m", ai_search_count=1)

    decision = gate.take(state, limit=2)
    assert decision.allowed is True
    assert decision.used == 1
    assert decision.remaining == 0

    full = ModuleVideoState(course_id="c", module_id="m", ai_search_count=2)
    exhausted = gate.take(full, limit=2)
    assert exhausted.allowed is False
    assert exhausted.remaining == 0


def test_quota_gate_zero_limit_disables_search() -> None:
    decision = AiSearchQuotaGate().take(ModuleVideoState(course_id="c", module_id="m"), limit=0)

    assert decision.allowed is False
    assert decision.limit == 0
