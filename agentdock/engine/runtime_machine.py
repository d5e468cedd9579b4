"""Session runtime state applier.

Applies phase / process-state / activity updates to a SessionStore
and reports every change through a delta callback. Legal combinations
are the caller's concern; nothing is validated here.
"""
from __future__ import annotations

from collections.abc import Callable

from .models import RuntimeUpdate, SessionRuntime, SessionStore, utc_iso

# Signature: callback(session_id, runtime) -> None
RuntimeDeltaCallback = Callable[[str, SessionRuntime], None]


class SessionRuntimeMachine:

    def __init__(
        self,
        on_delta: RuntimeDeltaCallback | None = None,
        now_iso: Callable[[], str] = utc_iso,
    ) -> None:
        self._on_delta = on_delta
        self._now_iso = now_iso

    def mark_runtime(
        self,
        store: SessionStore,
        updates: RuntimeUpdate,
        *,
        replace: bool = False,
        emit_delta: bool = True,
    ) -> SessionRuntime:
        """Apply ``updates`` to ``store.runtime`` and return the new runtime.

        Merge mode keeps the previous snapshot's other fields, but
        ``last_exit`` only survives when supplied again in this call.
        Replace mode builds the runtime from ``updates`` alone.
        """
        updated_at = updates.updated_at or self._now_iso()
        if replace:
            runtime = SessionRuntime(last_exit=updates.last_exit, updated_at=updated_at)
            if updates.phase is not None:
                runtime.phase = updates.phase
            if updates.process_state is not None:
                runtime.process_state = updates.process_state
            if updates.activity is not None:
                runtime.activity = updates.activity
        else:
            runtime = SessionRuntime(
                phase=updates.phase if updates.phase is not None else store.runtime.phase,
                process_state=(
                    updates.process_state
                    if updates.process_state is not None
                    else store.runtime.process_state
                ),
                activity=(
                    updates.activity if updates.activity is not None else store.runtime.activity
                ),
                last_exit=updates.last_exit,
                updated_at=updated_at,
            )
        store.runtime = runtime

        if emit_delta and self._on_delta is not None:
            self._on_delta(store.session_id, runtime)
        return runtime
