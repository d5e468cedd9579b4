"""Message state service: MessageStateMachine plus logging and events.

Every creation and successful state change is logged and published as
a ``message_state_changed`` event. History loads restore existing
state and publish nothing.
"""
from __future__ import annotations

import logging
import time

from agentdock.adapters.events import MessageStateChanged, MessagesSnapshot
from agentdock.adapters.publisher import SessionPublisher

from .message_state import MessageStateMachine, snapshot_order
from .models import (
    HistoryRecord,
    MessageState,
    MessageWithState,
    PendingInteractiveRequest,
    QueuedMessage,
    StoredEvent,
    TranscriptMessage,
    utc_iso,
)
from .transcript import should_include_stream_event

logger = logging.getLogger(__name__)


def _to_transcript_message(message: MessageWithState) -> TranscriptMessage:
    if message.is_user:
        return TranscriptMessage(
            id=message.id,
            source="user",
            order=snapshot_order(message),
            timestamp=message.timestamp,
            text=message.text,
            attachments=message.attachments,
        )
    return TranscriptMessage(
        id=message.id,
        source="agent",
        order=snapshot_order(message),
        timestamp=message.timestamp,
        message=message.content,
    )


class MessageStateService:
    """Logs and publishes everything the message state machine does."""

    def __init__(self, publisher: SessionPublisher | None = None) -> None:
        self.machine = MessageStateMachine()
        self.publisher = publisher or SessionPublisher()
        # Live events per session, replayed into reconnect snapshots
        self._event_store: dict[str, list[StoredEvent]] = {}

    def allocate_order(self, session_id: str) -> int:
        return self.machine.allocate_order(session_id)

    def create_user_message(
        self,
        session_id: str,
        queued: QueuedMessage,
        *,
        state: MessageState = MessageState.ACCEPTED,
    ) -> MessageWithState:
        """Track a user message the backend has received (ACCEPTED by default)."""
        message = self.machine.create_user_message(session_id, queued, state=state)
        logger.info(
            "User message created: session=%s id=%s state=%s queue_position=%s order=%s",
            session_id, message.id, message.state.value,
            message.queue_position, message.order,
        )
        self._emit_state_change(session_id, message)
        return message

    def create_rejected_message(
        self,
        session_id: str,
        message_id: str,
        error_message: str,
        text: str = "",
    ) -> MessageWithState:
        message = self.machine.create_rejected_message(session_id, message_id, error_message, text)
        logger.info(
            "User message rejected: session=%s id=%s error=%s",
            session_id, message_id, error_message,
        )
        self._emit_state_change(session_id, message)
        return message

    def update_state(
        self,
        session_id: str,
        message_id: str,
        new_state: MessageState,
        *,
        queue_position: int | None = None,
        error_message: str | None = None,
    ) -> bool:
        if not self.machine.has_message(session_id, message_id):
            logger.warning(
                "Message not found for state update: session=%s id=%s new_state=%s",
                session_id, message_id, new_state.value,
            )
            return False

        result = self.machine.update_state(
            session_id, message_id, new_state,
            queue_position=queue_position,
            error_message=error_message,
        )
        if not result.ok:
            logger.warning("%s (session=%s)", result.error, session_id)
            return False

        logger.info(
            "Message state updated: session=%s id=%s %s -> %s",
            session_id, message_id,
            result.old_state.value if result.old_state else None, new_state.value,
        )
        self._emit_state_change(session_id, result.message)
        return True

    def get_message(self, session_id: str, message_id: str) -> MessageWithState | None:
        return self.machine.get_message(session_id, message_id)

    def has_message(self, session_id: str, message_id: str) -> bool:
        return self.machine.has_message(session_id, message_id)

    def get_all_messages(self, session_id: str) -> list[MessageWithState]:
        return self.machine.get_all_messages(session_id)

    def get_message_count(self, session_id: str) -> int:
        return self.machine.get_message_count(session_id)

    def remove_message(self, session_id: str, message_id: str) -> bool:
        removed = self.machine.remove_message(session_id, message_id)
        if removed:
            logger.info("Message removed: session=%s id=%s", session_id, message_id)
        return removed

    def clear_session(self, session_id: str) -> None:
        count = self.machine.get_message_count(session_id)
        if count:
            logger.info("Session messages cleared: session=%s count=%d", session_id, count)
        self.machine.clear_session(session_id)
        self._event_store.pop(session_id, None)

    def clear_all_sessions(self) -> None:
        count = self.machine.get_session_count()
        self.machine.clear_all_sessions()
        self._event_store.clear()
        if count:
            logger.info("All sessions cleared: %d", count)

    # ── Event store ──

    def store_event(self, session_id: str, event: StoredEvent) -> None:
        """Keep a forwarded live event so a reconnecting client can replay it."""
        self._event_store.setdefault(session_id, []).append(event)

    def get_stored_events(self, session_id: str) -> list[StoredEvent]:
        return list(self._event_store.get(session_id, []))

    def clear_stored_events(self, session_id: str) -> None:
        """Drop live events once the session is reloaded from history."""
        self._event_store.pop(session_id, None)

    def _stored_agent_messages(self, session_id: str) -> list[TranscriptMessage]:
        messages: list[TranscriptMessage] = []
        for index, event in enumerate(self._event_store.get(session_id, [])):
            if event.type != "claude_message" or event.data is None or event.order is None:
                continue
            if event.data.get("type") == "stream_event" and event.data.get("event") is not None:
                if not should_include_stream_event(event.data["event"]):
                    continue
            messages.append(TranscriptMessage(
                id=f"evt-{session_id}-{index}",
                source="agent",
                order=event.order,
                timestamp=event.timestamp or utc_iso(),
                message=event.data,
            ))
        return messages

    def inject_committed_user_message(
        self,
        session_id: str,
        text: str,
        *,
        message_id: str | None = None,
    ) -> MessageWithState:
        """Add a synthetic user message that reads as already sent and answered."""
        queued = QueuedMessage(
            id=message_id or f"injected-{int(time.time() * 1000)}",
            text=text,
            timestamp=utc_iso(),
        )
        message = self.machine.create_user_message(
            session_id, queued, state=MessageState.ACCEPTED,
        )
        self.machine.update_state(session_id, queued.id, MessageState.DISPATCHED)
        self.machine.update_state(session_id, queued.id, MessageState.COMMITTED)
        logger.info(
            "Injected committed user message: session=%s id=%s length=%d",
            session_id, queued.id, len(text),
        )
        self._emit_state_change(session_id, message)
        return message

    def load_from_history(self, session_id: str, history: list[HistoryRecord]) -> None:
        existing = self.machine.get_message_count(session_id)
        if existing:
            logger.info(
                "Skipping history load, session %s already has %d messages",
                session_id, existing,
            )
            return
        self.machine.load_from_history(session_id, history)
        logger.info(
            "Loaded messages from history: session=%s count=%d",
            session_id, self.machine.get_message_count(session_id),
        )

    def ensure_history_loaded(self, session_id: str, history: list[HistoryRecord]) -> bool:
        queued_before = self.machine.get_queued_message_count(session_id)
        loaded = self.machine.ensure_history_loaded(session_id, history)
        if not loaded:
            logger.info(
                "Skipping history load, session %s already has non-queued messages",
                session_id,
            )
            return False
        logger.info(
            "Loaded history with queued preservation: session=%s history=%d queued=%d",
            session_id, len(history), queued_before,
        )
        return True

    def send_snapshot(
        self,
        session_id: str,
        *,
        load_request_id: str | None = None,
        pending_interactive_request: PendingInteractiveRequest | None = None,
    ) -> MessagesSnapshot:
        """Publish the full message list, then re-announce queued messages.

        Live agent output held in the event store is merged in by order.
        """
        messages = self.machine.get_all_messages(session_id)
        flattened = [_to_transcript_message(m) for m in messages]
        flattened.extend(self._stored_agent_messages(session_id))
        flattened.sort(key=lambda entry: entry.order)
        event = MessagesSnapshot(
            session_id=session_id,
            messages=flattened,
            load_request_id=load_request_id,
            pending_interactive_request=pending_interactive_request,
        )
        self.publisher.publish(event)

        for message in messages:
            if message.is_user and message.state == MessageState.ACCEPTED:
                self._emit_state_change(session_id, message)

        logger.info("Messages snapshot sent: session=%s count=%d", session_id, len(flattened))
        return event

    def compute_session_status(self, session_id: str, is_running: bool) -> dict[str, str]:
        if is_running:
            return {"phase": "running"}
        if self.machine.get_queued_message_count(session_id):
            return {"phase": "starting"}
        return {"phase": "ready"}

    def _emit_state_change(self, session_id: str, message: MessageWithState) -> None:
        user_message = None
        if message.is_user and (
            message.state == MessageState.ACCEPTED
            or (message.state == MessageState.DISPATCHED and message.order is not None)
        ):
            user_message = {
                "text": message.text,
                "timestamp": message.timestamp,
                "attachments": message.attachments,
                "settings": message.settings,
                "order": message.order,
            }
        self.publisher.publish(MessageStateChanged(
            session_id=session_id,
            message_id=message.id,
            new_state=message.state.value,
            queue_position=message.queue_position if message.is_user else None,
            error_message=message.error_message if message.is_user else None,
            user_message=user_message,
        ))
