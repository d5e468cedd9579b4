"""Core data models for the session core.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Who produced a message. Selects the transition table."""
    USER = "user"
    AGENT = "agent"

    @classmethod
    def _missing_(cls, value: object) -> MessageRole | None:
        # Process output is tagged "claude" by the CLI adapters.
        if value == "claude":
            return cls.AGENT
        return None


class MessageState(str, Enum):
    """Message lifecycle states. See lifecycle.py for transition rules."""
    # User message states
    PENDING = "PENDING"        # typed, not yet sent to the backend
    SENT = "SENT"              # sent over the socket, awaiting ack
    ACCEPTED = "ACCEPTED"      # queued, has a queue position
    DISPATCHED = "DISPATCHED"  # handed to the CLI process
    COMMITTED = "COMMITTED"    # response complete

    # Error states
    REJECTED = "REJECTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    # Agent message states
    STREAMING = "STREAMING"
    COMPLETE = "COMPLETE"


TERMINAL_STATES: frozenset[MessageState] = frozenset({
    MessageState.COMMITTED,
    MessageState.COMPLETE,
    MessageState.REJECTED,
    MessageState.FAILED,
    MessageState.CANCELLED,
})

# Never shown in snapshots: the message was never processed.
TERMINAL_ERROR_STATES: frozenset[MessageState] = frozenset({
    MessageState.REJECTED,
    MessageState.FAILED,
    MessageState.CANCELLED,
})


class SessionPhase(str, Enum):
    LOADING = "loading"
    STARTING = "starting"
    RUNNING = "running"
    IDLE = "idle"
    STOPPING = "stopping"
    ERROR = "error"


class ProcessState(str, Enum):
    UNKNOWN = "unknown"
    ALIVE = "alive"
    STOPPED = "stopped"


class SessionActivity(str, Enum):
    IDLE = "IDLE"
    WORKING = "WORKING"


class HistoryType(str, Enum):
    """Record kinds produced by the persisted-history loader."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    USER_TOOL_RESULT = "user_tool_result"
    THINKING = "thinking"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso() -> str:
    return _utcnow().isoformat()


@dataclass
class Attachment:
    id: str
    name: str
    type: str
    size: int = 0
    data: str = ""
    content_type: str | None = None  # "image" or "text"


@dataclass
class MessageSettings:
    """Per-message CLI settings chosen by the user."""
    selected_model: str | None = None
    thinking_enabled: bool = False
    plan_mode_enabled: bool = False


@dataclass
class QueuedMessage:
    """A user message submitted to a session, not yet dispatched."""
    id: str
    text: str
    timestamp: str = field(default_factory=utc_iso)
    settings: MessageSettings = field(default_factory=MessageSettings)
    attachments: list[Attachment] | None = None


@dataclass
class MessageWithState:
    """A message tracked by the message state machine."""
    id: str
    role: MessageRole
    state: MessageState
    timestamp: str = field(default_factory=utc_iso)
    order: int | None = None
    queue_position: int | None = None
    error_message: str | None = None
    # User messages
    text: str = ""
    settings: MessageSettings | None = None
    attachments: list[Attachment] | None = None
    # Agent messages: normalized CLI payload
    content: dict[str, Any] | None = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER


@dataclass
class StoredEvent:
    """A live event forwarded to clients, kept for reconnect snapshots."""
    type: str  # "claude_message" carries agent output
    data: dict[str, Any] | None = None
    order: int | None = None
    timestamp: str | None = None


@dataclass
class HistoryRecord:
    """One entry of a session's persisted history."""
    type: HistoryType
    content: Any
    timestamp: str
    uuid: str | None = None
    tool_name: str | None = None
    tool_id: str | None = None
    tool_input: dict[str, Any] | None = None
    is_error: bool | None = None
    attachments: list[Attachment] | None = None


@dataclass
class TranscriptMessage:
    """A transcript entry as delivered to clients."""
    id: str
    source: str  # "user" or "agent"
    order: int
    timestamp: str
    text: str | None = None
    attachments: list[Attachment] | None = None
    message: dict[str, Any] | None = None


@dataclass
class ExitInfo:
    code: int | None
    timestamp: str
    unexpected: bool


@dataclass
class SessionRuntime:
    """Lifecycle snapshot of a session's CLI process."""
    phase: SessionPhase = SessionPhase.LOADING
    process_state: ProcessState = ProcessState.UNKNOWN
    activity: SessionActivity = SessionActivity.IDLE
    last_exit: ExitInfo | None = None
    updated_at: str = field(default_factory=utc_iso)


@dataclass
class RuntimeUpdate:
    """Fields supplied to SessionRuntimeMachine.mark_runtime().

    Unset fields keep their previous value on merge, except
    ``last_exit``, which is cleared unless supplied.
    """
    phase: SessionPhase | None = None
    process_state: ProcessState | None = None
    activity: SessionActivity | None = None
    last_exit: ExitInfo | None = None
    updated_at: str | None = None


@dataclass
class PendingInteractiveRequest:
    """A tool call waiting for a human decision (permission, question, plan)."""
    request_id: str
    tool_name: str
    tool_use_id: str = ""
    input: dict[str, Any] = field(default_factory=dict)
    plan_content: str | None = None
    timestamp: str = field(default_factory=utc_iso)


@dataclass
class SessionStore:
    """Per-session mutable record. Owned exclusively by the session core."""
    session_id: str
    runtime: SessionRuntime = field(default_factory=SessionRuntime)
    transcript: list[TranscriptMessage] = field(default_factory=list)
    queue: list[QueuedMessage] = field(default_factory=list)
    pending_interactive_request: PendingInteractiveRequest | None = None
    next_order: int = 0
    initialized: bool = False
    hydrated_key: str | None = None
    hydrating_key: str | None = None
    hydrate_generation: int = 0
    hydrate_task: asyncio.Task[None] | None = field(default=None, repr=False)
    last_known_claude_session_id: str | None = None
    last_known_project_path: str | None = None
    last_hydrated_at: str | None = None
