"""Exception hierarchy for the session core.

Specific exceptions for each failure mode. Expected failures
(invalid transitions) are returned as values; broken invariants
(unknown ids) are raised.
"""
from __future__ import annotations

from .models import MessageState


class SessionCoreError(Exception):
    """Base exception for all session core errors."""


class TransitionError(SessionCoreError):
    """A message state change not permitted by the role's table.

    Returned inside an UpdateResult, never raised by the state machine.
    """
    def __init__(
        self,
        message_id: str,
        current_state: MessageState,
        attempted_state: MessageState,
    ):
        self.message_id = message_id
        self.current_state = current_state
        self.attempted_state = attempted_state
        super().__init__(
            f"Invalid transition for message {message_id}: "
            f"{current_state.value} -> {attempted_state.value}"
        )


class UnknownSessionError(SessionCoreError, KeyError):
    """Referenced session has no state in memory."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Unknown session: {session_id}")

    def __str__(self) -> str:
        return self.args[0]


class UnknownMessageError(SessionCoreError, KeyError):
    """Referenced message does not exist in the session."""
    def __init__(self, session_id: str, message_id: str):
        self.session_id = session_id
        self.message_id = message_id
        super().__init__(f"Unknown message {message_id} in session {session_id}")

    def __str__(self) -> str:
        return self.args[0]


class HistoryLoadError(SessionCoreError):
    """Persisted history exists but could not be read."""
    def __init__(self, claude_session_id: str, path: str, reason: str):
        self.claude_session_id = claude_session_id
        self.path = path
        self.reason = reason
        super().__init__(
            f"Failed to load history for {claude_session_id} from {path}: {reason}"
        )


class QueueFullError(SessionCoreError):
    """Session queue reached its configured capacity."""
    def __init__(self, session_id: str, max_size: int):
        self.session_id = session_id
        self.max_size = max_size
        super().__init__(
            f"Queue full for session {session_id} (max {max_size} messages)"
        )
