from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal, Protocol

import structlog
from structlog.contextvars import get_contextvars

_SENSITIVE_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {
        "api_key",
        "authorization",
        "cookie",
        "email",
        "password",
        "prompt",
        "secret",
        "token",
    }
)
_MAX_STRING_LENGTH = 160
_MAX_LIST_ITEMS = 10
_REQUEST_ID_CONTEXT_KEY = "http_request_id"

AttributeValue = bool | int | float | str | None


class TelemetryEvent(StrEnum):
    HTTP_REQUEST_COMPLETED = "http.request.completed"
    HTTP_REQUEST_FAILED = "http.request.failed"
    VIDEO_SEARCH_COMPLETED = "video.search.completed"
    VIDEO_SEARCH_EMPTY = "video.search.empty"
    VIDEO_SEARCH_UNAVAILABLE = "video.search.unavailable"
    VIDEO_SEARCH_NOT_PERSISTED = "video.search.not_persisted"
    VIDEO_QUOTA_REJECTED = "video.quota.rejected"
    VIDEO_STATE_COMMIT_CONFLICT = "video.state.commit_conflict"
    ADMIN_LIMITS_UPDATED = "admin.limits.updated"


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes each event as one `skillsprint.telemetry` log line."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("skillsprint.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event: TelemetryEvent, **attributes: Any) -> None:
        """
        Sanitize `attributes` and hand them to the sink.

        Events emitted while serving a request carry its `request_id` unless
        the caller passes one explicitly.
        """
        if not self.enabled:
            return
        if "request_id" not in attributes:
            request_id = get_contextvars().get(_REQUEST_ID_CONTEXT_KEY)
            if isinstance(request_id, str):
                attributes["request_id"] = request_id
        self.sink.emit(
            event_name=event.value,
            attributes=_sanitize_attributes(attributes),
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger("skillsprint.telemetry").warning(
        "unsupported telemetry sink requested; disabling telemetry sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def is_sensitive_attribute(key: str) -> bool:
    return any(token in key for token in _SENSITIVE_ATTRIBUTE_TOKENS)


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, AttributeValue]:
    sanitized: dict[str, AttributeValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        sanitized[key] = "[redacted]" if is_sensitive_attribute(key) else _sanitize_value(raw_value)
    return sanitized


def _sanitize_value(value: Any) -> AttributeValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    if isinstance(value, list | tuple | set | frozenset):
        # Sorted so set-valued attributes render deterministically.
        items = sorted(str(item) for item in value)
        shown = ",".join(items[:_MAX_LIST_ITEMS])
        if len(items) > _MAX_LIST_ITEMS:
            shown = f"{shown},+{len(items) - _MAX_LIST_ITEMS}"
        return _sanitize_value(shown)
    return type(value).__name__
