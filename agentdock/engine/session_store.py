"""Session store service: the facade transports and process managers call.

Owns the registry of SessionStore entries and wires together the
runtime machine, the hydrator and the publisher. All methods except
``subscribe`` are synchronous and run to completion on the event loop.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import Any

from agentdock.adapters.event_bus import EventBus
from agentdock.adapters.publisher import SessionEventListener, SessionPublisher, TraceSink

from . import session_queue
from .config import CoreConfig
from .hydrator import HistoryLoader, SessionHydrator
from .models import (
    ExitInfo,
    PendingInteractiveRequest,
    ProcessState,
    QueuedMessage,
    RuntimeUpdate,
    SessionActivity,
    SessionPhase,
    SessionRuntime,
    SessionStore,
    TranscriptMessage,
    utc_iso,
)
from .registry import SessionStoreRegistry
from .runtime_machine import SessionRuntimeMachine
from .transcript import (
    append_agent_event,
    commit_sent_user_message_with_order,
    inject_committed_user_message,
)

logger = logging.getLogger(__name__)

# Signature: callback(message, context) -> None
ErrorReporter = Callable[[str, dict[str, Any]], None]


def _log_warning(message: str, context: dict[str, Any]) -> None:
    logger.warning("%s: %s", message, context)


def _runtime_update(runtime: SessionRuntime) -> RuntimeUpdate:
    return RuntimeUpdate(
        phase=runtime.phase,
        process_state=runtime.process_state,
        activity=runtime.activity,
        last_exit=runtime.last_exit,
        updated_at=runtime.updated_at,
    )


class SessionStoreService:
    """Per-session transcript, queue and runtime state, with event fan-out."""

    def __init__(
        self,
        load_history: HistoryLoader,
        *,
        config: CoreConfig | None = None,
        trace_sink: TraceSink | None = None,
        now_iso: Callable[[], str] = utc_iso,
        report_error: ErrorReporter | None = None,
    ) -> None:
        self.config = config or CoreConfig()
        self.registry = SessionStoreRegistry()
        self.publisher = SessionPublisher(trace_sink=trace_sink)
        self.runtime_machine = SessionRuntimeMachine(
            on_delta=self.publisher.emit_delta,
            now_iso=now_iso,
        )
        self.hydrator = SessionHydrator(
            load_history,
            now_iso=now_iso,
            trace_sink=self.publisher.get_parity_logger(),
        )
        self._now_iso = now_iso
        self._report_error = report_error or _log_warning
        self._background_tasks: set[asyncio.Task[None]] = set()

    # ── Listeners ──────────────────────────────────────────────

    def add_listener(self, listener: SessionEventListener) -> Callable[[], None]:
        return self.publisher.subscribe(listener)

    def emit_delta(self, session_id: str, runtime: SessionRuntime) -> None:
        self.publisher.emit_delta(session_id, runtime)

    def attach_event_bus(self) -> EventBus:
        """Subscribe a new EventBus sized by config.event_queue_size."""
        bus = EventBus(maxsize=self.config.event_queue_size)
        self.publisher.subscribe(bus.make_listener())
        return bus

    # ── Subscription ───────────────────────────────────────────

    async def subscribe(
        self,
        session_id: str,
        *,
        claude_project_path: str | None,
        claude_session_id: str | None,
        session_runtime: SessionRuntime,
        load_request_id: str | None = None,
    ) -> None:
        """Hydrate a session for a newly attached client and replay it."""
        store = self.registry.get_or_create(session_id)
        store.last_known_project_path = claude_project_path
        store.last_known_claude_session_id = claude_session_id

        await self.hydrator.ensure_hydrated(
            store,
            claude_session_id=claude_session_id,
            claude_project_path=claude_project_path,
        )

        self.runtime_machine.mark_runtime(
            store, _runtime_update(session_runtime), replace=True, emit_delta=False,
        )
        self.publisher.forward_replay_batch(
            store,
            reason="subscribe_load",
            include_parity_snapshot=True,
            load_request_id=load_request_id,
        )
        logger.info(
            "Session subscribed: %s phase=%s transcript=%d queue=%d",
            session_id, store.runtime.phase.value,
            len(store.transcript), len(store.queue),
        )

    # ── Queue ──────────────────────────────────────────────────

    def enqueue(self, session_id: str, message: QueuedMessage) -> dict[str, Any]:
        store = self.registry.get_or_create(session_id)
        result = session_queue.enqueue_message(store, message, self.config.max_queue_size)
        if "error" in result:
            return result
        self.publisher.forward_snapshot(store, reason="enqueue")
        return result

    def remove_queued_message(self, session_id: str, message_id: str) -> bool:
        store = self.registry.get_or_create(session_id)
        if not session_queue.remove_queued_message(store, message_id):
            return False
        self.publisher.forward_snapshot(store, reason="remove_queued_message")
        return True

    def dequeue_next(self, session_id: str, *, emit_snapshot: bool = True) -> QueuedMessage | None:
        store = self.registry.get_or_create(session_id)
        message = session_queue.dequeue_next(store)
        if message is not None and emit_snapshot:
            self.publisher.forward_snapshot(store, reason="dequeue")
        return message

    def requeue_front(self, session_id: str, message: QueuedMessage) -> None:
        store = self.registry.get_or_create(session_id)
        session_queue.requeue_front(store, message)
        self.publisher.forward_snapshot(store, reason="requeue")

    def clear_queued_work(self, session_id: str, *, emit_snapshot: bool = True) -> None:
        store = self.registry.get_or_create(session_id)
        if session_queue.clear_queued_work(store) and emit_snapshot:
            self.publisher.forward_snapshot(store, reason="queue_cleared")

    # ── Transcript ─────────────────────────────────────────────

    def allocate_order(self, session_id: str) -> int:
        store = self.registry.get_or_create(session_id)
        order = store.next_order
        store.next_order += 1
        return order

    def commit_sent_user_message(
        self, session_id: str, message: QueuedMessage, *, emit_snapshot: bool = True,
    ) -> int:
        """Place a dispatched user message at the next order. Returns the order."""
        order = self.allocate_order(session_id)
        self.commit_sent_user_message_at_order(
            session_id, message, order, emit_snapshot=emit_snapshot,
        )
        return order

    def commit_sent_user_message_at_order(
        self,
        session_id: str,
        message: QueuedMessage,
        order: int,
        *,
        emit_snapshot: bool = True,
    ) -> None:
        store = self.registry.get_or_create(session_id)
        commit_sent_user_message_with_order(store, message, order)
        if emit_snapshot:
            self.publisher.forward_snapshot(store, reason="commit_user_message")

    def append_agent_event(self, session_id: str, payload: dict[str, Any]) -> int:
        store = self.registry.get_or_create(session_id)
        trace = self.publisher.get_parity_logger()
        return append_agent_event(
            store,
            payload,
            now_iso=self._now_iso,
            on_trace=lambda data: trace(session_id, data),
        )

    def inject_committed_user_message(
        self, session_id: str, text: str, *, message_id: str | None = None,
    ) -> TranscriptMessage:
        store = self.registry.get_or_create(session_id)
        entry = inject_committed_user_message(
            store,
            text,
            message_id=message_id or f"injected-{store.next_order}-{self._now_iso()}",
            now_iso=self._now_iso,
        )
        self.publisher.forward_snapshot(store, reason="inject_user_message")
        return entry

    def get_transcript(self, session_id: str) -> list[TranscriptMessage]:
        store = self.registry.get(session_id)
        return copy.deepcopy(store.transcript) if store else []

    # ── Pending interactive request ────────────────────────────

    def set_pending_interactive_request(
        self, session_id: str, request: PendingInteractiveRequest,
    ) -> None:
        store = self.registry.get_or_create(session_id)
        session_queue.set_pending_interactive_request(store, request)
        self.publisher.forward_snapshot(store, reason="pending_request_set")

    def get_pending_interactive_request(self, session_id: str) -> PendingInteractiveRequest | None:
        store = self.registry.get(session_id)
        return store.pending_interactive_request if store else None

    def clear_pending_interactive_request(self, session_id: str) -> None:
        store = self.registry.get_or_create(session_id)
        if session_queue.clear_pending_interactive_request(store):
            self.publisher.forward_snapshot(store, reason="pending_request_cleared")

    def clear_pending_interactive_request_if_matches(self, session_id: str, request_id: str) -> None:
        store = self.registry.get_or_create(session_id)
        if session_queue.clear_pending_interactive_request_if_matches(store, request_id):
            self.publisher.forward_snapshot(store, reason="pending_request_cleared")

    # ── Runtime ────────────────────────────────────────────────

    def mark_starting(self, session_id: str) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            RuntimeUpdate(
                phase=SessionPhase.STARTING,
                process_state=ProcessState.ALIVE,
                activity=SessionActivity.IDLE,
            ),
        )

    def mark_running(self, session_id: str) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            RuntimeUpdate(
                phase=SessionPhase.RUNNING,
                process_state=ProcessState.ALIVE,
                activity=SessionActivity.WORKING,
            ),
        )

    def mark_idle(self, session_id: str, process_state: ProcessState) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            RuntimeUpdate(
                phase=SessionPhase.IDLE,
                process_state=process_state,
                activity=SessionActivity.IDLE,
            ),
        )

    def mark_stopping(self, session_id: str) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            RuntimeUpdate(phase=SessionPhase.STOPPING),
        )

    def mark_error(self, session_id: str) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            RuntimeUpdate(phase=SessionPhase.ERROR),
        )

    def mark_process_exit(self, session_id: str, code: int | None) -> asyncio.Task[None] | None:
        """Reset a session after its process exited and rehydrate it.

        Returns the background rehydration task, or None when the
        session has no known history to reload or no event loop is
        running. The task never raises; failures go to the error reporter.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        store = self.registry.get_or_create(session_id)
        unexpected = code is None or code != 0
        now = self._now_iso()

        store.queue = []
        store.pending_interactive_request = None
        store.transcript = []
        store.next_order = 0
        store.initialized = False
        store.hydrated_key = None
        store.hydrate_generation += 1
        store.hydrate_task = None
        store.hydrating_key = None

        self.runtime_machine.mark_runtime(store, RuntimeUpdate(
            phase=SessionPhase.ERROR if unexpected else SessionPhase.IDLE,
            process_state=ProcessState.STOPPED,
            activity=SessionActivity.IDLE,
            last_exit=ExitInfo(code=code, timestamp=now, unexpected=unexpected),
            updated_at=now,
        ))
        logger.info(
            "Process exited for session %s (code=%s, unexpected=%s)",
            session_id, code, unexpected,
        )
        self.publisher.forward_snapshot(
            store, reason="process_exit_reset", include_parity_snapshot=True,
        )

        claude_session_id = store.last_known_claude_session_id
        project_path = store.last_known_project_path
        if not (claude_session_id and project_path):
            return None

        if loop is None:
            self._report_error(
                "Cannot rehydrate transcript after process exit: no running event loop",
                {"session_id": session_id, "claude_session_id": claude_session_id},
            )
            return None

        task = loop.create_task(
            self._rehydrate_after_exit(store, claude_session_id, project_path)
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _rehydrate_after_exit(
        self, store: SessionStore, claude_session_id: str, project_path: str,
    ) -> None:
        try:
            await self.hydrator.ensure_hydrated(
                store,
                claude_session_id=claude_session_id,
                claude_project_path=project_path,
            )
        except Exception as exc:
            self._report_error(
                "Failed to rehydrate transcript after process exit",
                {"session_id": store.session_id, "error": str(exc)},
            )
            return
        self.publisher.forward_snapshot(
            store, reason="process_exit_rehydrate", include_parity_snapshot=True,
        )

    def set_runtime_snapshot(
        self, session_id: str, runtime: SessionRuntime, *, emit_delta: bool = True,
    ) -> SessionRuntime:
        return self.runtime_machine.mark_runtime(
            self.registry.get_or_create(session_id),
            _runtime_update(runtime),
            replace=True,
            emit_delta=emit_delta,
        )

    def get_runtime_snapshot(self, session_id: str) -> SessionRuntime:
        return copy.deepcopy(self.registry.get_or_create(session_id).runtime)

    # ── Queries and housekeeping ───────────────────────────────

    def emit_session_snapshot(self, session_id: str, load_request_id: str | None = None) -> None:
        store = self.registry.get_or_create(session_id)
        self.publisher.forward_snapshot(
            store,
            reason="manual_emit",
            include_parity_snapshot=True,
            load_request_id=load_request_id,
        )

    def get_queue_length(self, session_id: str) -> int:
        return self.registry.get_queue_length(session_id)

    def get_queue_snapshot(self, session_id: str) -> list[QueuedMessage]:
        return self.registry.get_queue_snapshot(session_id)

    def get_all_pending_requests(self) -> dict[str, PendingInteractiveRequest]:
        return self.registry.get_all_pending_requests()

    def clear_session(self, session_id: str) -> None:
        self.registry.clear_session(session_id)

    def clear_all_sessions(self) -> None:
        self.registry.clear_all_sessions()
