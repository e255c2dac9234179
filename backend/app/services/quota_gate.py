from __future__ import annotations

from dataclasses import dataclass

from backend.app.models.video_state import ModuleVideoState


@dataclass(frozen=True)
class AiSearchQuotaDecision:
    allowed: bool
    limit: int
    used: int
    remaining: int


class AiSearchQuotaGate:
    """
    Per-module ceiling on AI searches.

    The gate only decides; the counter is bumped by the caller when a search
    actually lands videos in the module, as part of the same conditional write.
    """

    def take(self, state: ModuleVideoState, *, limit: int) -> AiSearchQuotaDecision:
        effective_limit = max(0, limit)
        used = max(0, state.ai_search_count)

        if used >= effective_limit:
            return AiSearchQuotaDecision(
                allowed=False,
                limit=effective_limit,
                used=used,
                remaining=0,
            )

        return AiSearchQuotaDecision(
            allowed=True,
            limit=effective_limit,
            used=used,
            remaining=max(effective_limit - used - 1, 0),
        )
