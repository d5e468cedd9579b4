"""Per-session message state machine and storage.

Pure state: no logging of user-visible events and no emission.
MessageStateService layers both on top.

Single-event-loop usage only. Every method runs to completion without
awaiting, so a check-then-write inside one call cannot interleave
with another caller.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import TransitionError, UnknownMessageError, UnknownSessionError
from .lifecycle import is_initial_state, is_valid_transition
from .models import (
    TERMINAL_ERROR_STATES,
    HistoryRecord,
    HistoryType,
    MessageRole,
    MessageSettings,
    MessageState,
    MessageWithState,
    QueuedMessage,
    utc_iso,
)
from .transcript import history_message_id, history_to_agent_payload

# Queued messages have no transcript slot yet; they sort after every
# ordered message, by queue position.
_QUEUED_BASE_ORDER = 1_000_000_000


@dataclass
class UpdateResult:
    """Outcome of MessageStateMachine.update_state()."""
    ok: bool
    message: MessageWithState | None = None
    old_state: MessageState | None = None
    error: TransitionError | None = None


def snapshot_order(message: MessageWithState) -> int:
    if message.order is not None:
        return message.order
    return _QUEUED_BASE_ORDER + (message.queue_position or 0)


class MessageStateMachine:
    """Messages indexed by session id, then message id, plus order counters."""

    def __init__(self) -> None:
        self._messages: dict[str, dict[str, MessageWithState]] = {}
        self._order_counters: dict[str, int] = {}

    def _session_map(self, session_id: str) -> dict[str, MessageWithState]:
        return self._messages.setdefault(session_id, {})

    def allocate_order(self, session_id: str) -> int:
        """Return the session's next order value and advance the counter."""
        current = self._order_counters.get(session_id, 0)
        self._order_counters[session_id] = current + 1
        return current

    def create_user_message(
        self,
        session_id: str,
        queued: QueuedMessage,
        *,
        state: MessageState = MessageState.PENDING,
    ) -> MessageWithState:
        """Track a new user message.

        Messages created directly in ACCEPTED are queued and get a
        queue position equal to the number of accepted messages ahead.
        """
        if not is_initial_state(MessageRole.USER, state):
            raise ValueError(f"User messages cannot start in {state.value}")

        queue_position = None
        if state == MessageState.ACCEPTED:
            queue_position = self.get_queued_message_count(session_id)

        message = MessageWithState(
            id=queued.id,
            role=MessageRole.USER,
            state=state,
            timestamp=queued.timestamp,
            order=self.allocate_order(session_id),
            queue_position=queue_position,
            text=queued.text,
            settings=queued.settings,
            attachments=queued.attachments,
        )
        self._session_map(session_id)[queued.id] = message
        return message

    def create_rejected_message(
        self,
        session_id: str,
        message_id: str,
        error_message: str,
        text: str = "",
    ) -> MessageWithState:
        # Rejected messages never reach the transcript, so no order.
        message = MessageWithState(
            id=message_id,
            role=MessageRole.USER,
            state=MessageState.REJECTED,
            text=text,
            error_message=error_message,
        )
        self._session_map(session_id)[message_id] = message
        return message

    def create_agent_message(
        self,
        session_id: str,
        message_id: str,
        content: dict | None = None,
    ) -> MessageWithState:
        message = MessageWithState(
            id=message_id,
            role=MessageRole.AGENT,
            state=MessageState.STREAMING,
            order=self.allocate_order(session_id),
            content=content,
        )
        self._session_map(session_id)[message_id] = message
        return message

    def update_state(
        self,
        session_id: str,
        message_id: str,
        new_state: MessageState,
        *,
        queue_position: int | None = None,
        error_message: str | None = None,
    ) -> UpdateResult:
        """Apply a validated state change plus optional metadata.

        Invalid transitions come back as a failed UpdateResult. Unknown
        session or message ids raise.
        """
        messages = self._messages.get(session_id)
        if messages is None:
            raise UnknownSessionError(session_id)
        message = messages.get(message_id)
        if message is None:
            raise UnknownMessageError(session_id, message_id)

        if not is_valid_transition(message.role, message.state, new_state):
            return UpdateResult(
                ok=False,
                message=message,
                error=TransitionError(message_id, message.state, new_state),
            )

        old_state = message.state
        message.state = new_state
        if queue_position is not None:
            message.queue_position = queue_position
        elif old_state == MessageState.ACCEPTED:
            message.queue_position = None
        if error_message is not None:
            message.error_message = error_message
        return UpdateResult(ok=True, message=message, old_state=old_state)

    def get_message(self, session_id: str, message_id: str) -> MessageWithState | None:
        return self._messages.get(session_id, {}).get(message_id)

    def has_message(self, session_id: str, message_id: str) -> bool:
        return message_id in self._messages.get(session_id, {})

    def get_all_messages(self, session_id: str) -> list[MessageWithState]:
        """Messages in transcript order, without terminal error states."""
        messages = self._messages.get(session_id, {})
        visible = [m for m in messages.values() if m.state not in TERMINAL_ERROR_STATES]
        return sorted(visible, key=snapshot_order)

    def remove_message(self, session_id: str, message_id: str) -> bool:
        messages = self._messages.get(session_id)
        if not messages or message_id not in messages:
            return False
        del messages[message_id]
        return True

    def clear_session(self, session_id: str) -> None:
        self._messages.pop(session_id, None)
        self._order_counters.pop(session_id, None)

    def clear_all_sessions(self) -> None:
        self._messages.clear()
        self._order_counters.clear()

    def load_from_history(self, session_id: str, history: list[HistoryRecord]) -> None:
        """Populate a session from persisted history.

        Messages already in memory win: a session that holds any message
        is left untouched, so repeated loads never duplicate or clobber.
        """
        if self._messages.get(session_id):
            return

        messages = self._session_map(session_id)
        for index, record in enumerate(history):
            # One history row can yield several records sharing a uuid.
            order = self.allocate_order(session_id)
            message_id = f"{history_message_id(record, index)}-{order}"
            if record.type == HistoryType.USER:
                messages[message_id] = MessageWithState(
                    id=message_id,
                    role=MessageRole.USER,
                    state=MessageState.COMMITTED,
                    timestamp=record.timestamp,
                    order=order,
                    text=str(record.content),
                    attachments=record.attachments,
                )
            else:
                messages[message_id] = MessageWithState(
                    id=message_id,
                    role=MessageRole.AGENT,
                    state=MessageState.COMPLETE,
                    timestamp=record.timestamp,
                    order=order,
                    content=history_to_agent_payload(record),
                )

    def ensure_history_loaded(self, session_id: str, history: list[HistoryRecord]) -> bool:
        """Reload history, keeping queued messages queued.

        Returns False, leaving state alone, when any non-queued message
        is present (history is already in memory).
        """
        queued: list[QueuedMessage] = []
        for message in self.get_all_messages(session_id):
            if not (message.is_user and message.state == MessageState.ACCEPTED):
                return False
            queued.append(QueuedMessage(
                id=message.id,
                text=message.text,
                timestamp=message.timestamp or utc_iso(),
                settings=message.settings or MessageSettings(),
                attachments=message.attachments,
            ))

        self.clear_session(session_id)
        self.load_from_history(session_id, history)
        for item in queued:
            self.create_user_message(session_id, item, state=MessageState.ACCEPTED)
        return True

    def get_message_count(self, session_id: str) -> int:
        return len(self._messages.get(session_id, {}))

    def get_session_count(self) -> int:
        return len(self._messages)

    def get_queued_message_count(self, session_id: str) -> int:
        return sum(
            1
            for m in self._messages.get(session_id, {}).values()
            if m.is_user and m.state == MessageState.ACCEPTED
        )
