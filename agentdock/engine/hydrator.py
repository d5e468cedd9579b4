"""Race-safe loading of persisted history into a session transcript.

Concurrency model (single event loop):

- Requests for the key already loaded are no-ops.
- Requests for the key currently loading await the same task.
- Every new attempt (and every reset elsewhere) bumps
  ``store.hydrate_generation``. A load only commits if the generation
  it captured is still current when the history arrives; otherwise its
  result is dropped. Superseded loads run to completion, they are
  never cancelled.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .models import HistoryRecord, SessionStore, utc_iso
from .transcript import build_transcript_from_history, message_sort_key, set_next_order_from_transcript

logger = logging.getLogger(__name__)

# Signature: async def loader(claude_session_id, claude_project_path) -> list[HistoryRecord]
HistoryLoader = Callable[[str | None, str | None], Awaitable[list[HistoryRecord]]]

# Signature: sink(session_id, trace_record) -> None
TraceSink = Callable[[str, dict[str, Any]], None]

_MISSING = "none"


def build_hydrate_key(claude_session_id: str | None, claude_project_path: str | None) -> str:
    """Identity of a persisted-history source. Absent parts become ``none``."""
    return f"{claude_project_path or _MISSING}::{claude_session_id or _MISSING}"


def _retrieve_exception(task: asyncio.Task[None]) -> None:
    # Awaiters may all be cancelled before the load fails.
    if not task.cancelled():
        task.exception()


class SessionHydrator:
    """Reconciles SessionStore transcripts with persisted history."""

    def __init__(
        self,
        load_history: HistoryLoader,
        now_iso: Callable[[], str] = utc_iso,
        trace_sink: TraceSink | None = None,
    ) -> None:
        self._load_history = load_history
        self._now_iso = now_iso
        self._trace_sink = trace_sink

    async def ensure_hydrated(
        self,
        store: SessionStore,
        *,
        claude_session_id: str | None,
        claude_project_path: str | None,
    ) -> None:
        """Make ``store.transcript`` reflect the given history source.

        Loader errors propagate to every awaiting caller; the store is
        left as it was.
        """
        key = build_hydrate_key(claude_session_id, claude_project_path)

        if store.initialized and store.hydrated_key == key:
            return

        task = store.hydrate_task
        if task is not None and store.hydrating_key == key:
            logger.debug("Joining in-flight hydration for %s (%s)", store.session_id, key)
            await asyncio.shield(task)
            return

        store.hydrate_generation += 1
        generation = store.hydrate_generation
        store.hydrating_key = key
        task = asyncio.ensure_future(self._hydrate(
            store,
            key=key,
            generation=generation,
            claude_session_id=claude_session_id,
            claude_project_path=claude_project_path,
        ))
        task.add_done_callback(_retrieve_exception)
        store.hydrate_task = task
        await asyncio.shield(task)

    async def _hydrate(
        self,
        store: SessionStore,
        *,
        key: str,
        generation: int,
        claude_session_id: str | None,
        claude_project_path: str | None,
    ) -> None:
        try:
            history = await self._load_history(claude_session_id, claude_project_path)
            transcript = build_transcript_from_history(history)
            transcript.sort(key=message_sort_key)
            self._trace(store.session_id, {
                "path": "hydrate_loaded",
                "hydrate_key": key,
                "generation": generation,
                "history_count": len(history),
                "transcript_count": len(transcript),
            })

            if store.hydrate_generation != generation:
                logger.debug(
                    "Hydration result for %s lost to a newer generation (%d != %d)",
                    store.session_id, generation, store.hydrate_generation,
                )
                return

            store.transcript = transcript
            set_next_order_from_transcript(store)
            store.initialized = True
            store.hydrated_key = key
            store.last_hydrated_at = self._now_iso()
            logger.info(
                "Session %s hydrated: %d messages (next_order=%d)",
                store.session_id, len(transcript), store.next_order,
            )
        finally:
            if store.hydrate_generation == generation:
                store.hydrate_task = None
                store.hydrating_key = None

    def _trace(self, session_id: str, data: dict[str, Any]) -> None:
        if self._trace_sink is None:
            return
        try:
            self._trace_sink(session_id, data)
        except Exception as exc:
            logger.warning("Trace sink failed for %s: %s", session_id, exc)
