"""Fan-out of session events to subscribed listeners.

Listeners are plain synchronous callables. The core never awaits a
transport, so emission order equals execution order per session.
EventBus.make_listener() bridges these events into an async consumer.
"""
from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any

from agentdock.adapters.events import (
    SessionEvent,
    SessionReplayBatch,
    SessionRuntimeUpdated,
    SessionSnapshot,
)
from agentdock.engine.models import SessionRuntime, SessionStore
from agentdock.engine.transcript import normalize_transcript

logger = logging.getLogger(__name__)

SessionEventListener = Callable[[SessionEvent], None]

# Observability sink: (session_id, trace_record). Informational only.
TraceSink = Callable[[str, dict[str, Any]], None]


class SessionPublisher:
    """Builds snapshot/delta events and hands them to every listener."""

    def __init__(self, trace_sink: TraceSink | None = None) -> None:
        self._listeners: list[SessionEventListener] = []
        self._trace_sink = trace_sink

    def subscribe(self, listener: SessionEventListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def has_listener(self, listener: SessionEventListener) -> bool:
        return listener in self._listeners

    def publish(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Never let listener errors break the core
                logger.exception(
                    "Session event listener failed for %s (%s)",
                    event.session_id, event.event_type,
                )

    def get_parity_logger(self) -> TraceSink:
        return self._trace

    def _trace(self, session_id: str, data: dict[str, Any]) -> None:
        if self._trace_sink is None:
            return
        try:
            self._trace_sink(session_id, data)
        except Exception as exc:
            logger.warning("Trace sink failed for %s: %s", session_id, exc)

    def emit_delta(self, session_id: str, runtime: SessionRuntime) -> None:
        self.publish(SessionRuntimeUpdated(
            session_id=session_id,
            runtime=copy.deepcopy(runtime),
        ))

    def forward_snapshot(
        self,
        store: SessionStore,
        *,
        reason: str,
        include_parity_snapshot: bool = False,
        load_request_id: str | None = None,
    ) -> SessionSnapshot:
        transcript = copy.deepcopy(store.transcript)
        parity = normalize_transcript(transcript) if include_parity_snapshot else None
        event = SessionSnapshot(
            session_id=store.session_id,
            reason=reason,
            include_parity_snapshot=include_parity_snapshot,
            load_request_id=load_request_id,
            runtime=copy.deepcopy(store.runtime),
            transcript=transcript,
            queue=copy.deepcopy(store.queue),
            pending_interactive_request=copy.deepcopy(store.pending_interactive_request),
            parity=parity,
        )
        if include_parity_snapshot:
            self._trace(store.session_id, {
                "path": "snapshot",
                "reason": reason,
                "transcript_count": len(transcript),
                "queue_count": len(store.queue),
            })
        self.publish(event)
        return event

    def forward_replay_batch(
        self,
        store: SessionStore,
        *,
        reason: str,
        include_parity_snapshot: bool = False,
        load_request_id: str | None = None,
    ) -> SessionReplayBatch:
        transcript = copy.deepcopy(store.transcript)
        event = SessionReplayBatch(
            session_id=store.session_id,
            reason=reason,
            load_request_id=load_request_id,
            runtime=copy.deepcopy(store.runtime),
            transcript=transcript,
            queue=copy.deepcopy(store.queue),
            pending_interactive_request=copy.deepcopy(store.pending_interactive_request),
            parity=normalize_transcript(transcript) if include_parity_snapshot else None,
        )
        self.publish(event)
        return event
