"""Event types emitted by the session core.

Each event is a typed dataclass. ``event_to_dict`` renders one into the
plain dict a transport collaborator pushes to remote clients, and
``dict_to_event`` parses such a dict back.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from agentdock.engine.models import (
    PendingInteractiveRequest,
    QueuedMessage,
    SessionRuntime,
    TranscriptMessage,
)


@dataclass
class SessionEvent:
    """Base event from the session core."""
    event_type: str = ""
    session_id: str = ""


@dataclass
class SessionRuntimeUpdated(SessionEvent):
    event_type: str = "session_runtime_updated"
    runtime: SessionRuntime | None = None


@dataclass
class SessionSnapshot(SessionEvent):
    event_type: str = "session_snapshot"
    reason: str = ""
    include_parity_snapshot: bool = False
    load_request_id: str | None = None
    runtime: SessionRuntime | None = None
    transcript: list[TranscriptMessage] = field(default_factory=list)
    queue: list[QueuedMessage] = field(default_factory=list)
    pending_interactive_request: PendingInteractiveRequest | None = None
    # Normalized transcript used for downstream consistency checks.
    parity: list[dict[str, Any]] | None = None


@dataclass
class SessionReplayBatch(SessionEvent):
    """Snapshot sent to a freshly subscribed client."""
    event_type: str = "session_replay_batch"
    reason: str = ""
    load_request_id: str | None = None
    runtime: SessionRuntime | None = None
    transcript: list[TranscriptMessage] = field(default_factory=list)
    queue: list[QueuedMessage] = field(default_factory=list)
    pending_interactive_request: PendingInteractiveRequest | None = None
    parity: list[dict[str, Any]] | None = None


@dataclass
class MessageStateChanged(SessionEvent):
    event_type: str = "message_state_changed"
    message_id: str = ""
    new_state: str = ""
    queue_position: int | None = None
    error_message: str | None = None
    # Full content for ACCEPTED messages and ordered DISPATCHED ones.
    user_message: dict[str, Any] | None = None


@dataclass
class MessagesSnapshot(SessionEvent):
    event_type: str = "messages_snapshot"
    messages: list[TranscriptMessage] = field(default_factory=list)
    load_request_id: str | None = None
    pending_interactive_request: PendingInteractiveRequest | None = None


_EVENT_MAP: dict[str, type[SessionEvent]] = {
    "session_runtime_updated": SessionRuntimeUpdated,
    "session_snapshot": SessionSnapshot,
    "session_replay_batch": SessionReplayBatch,
    "message_state_changed": MessageStateChanged,
    "messages_snapshot": MessagesSnapshot,
}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def event_to_dict(event: SessionEvent) -> dict[str, Any]:
    """Render an event as JSON-ready data with an ``event`` key."""
    data = _plain(asdict(event))
    data["event"] = data.pop("event_type")
    return data


def dict_to_event(data: dict[str, Any]) -> SessionEvent:
    """Convert an event dict to a typed event dataclass.

    Nested payloads stay as dicts; only the envelope is typed.
    """
    event_type = data.get("event", data.get("event_type", ""))
    cls = _EVENT_MAP.get(event_type, SessionEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)
