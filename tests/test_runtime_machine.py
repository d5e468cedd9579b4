"""SessionRuntimeMachine merge/replace semantics and delta emission."""

from __future__ import annotations

from agentdock.engine.models import (
    ExitInfo,
    ProcessState,
    RuntimeUpdate,
    SessionActivity,
    SessionPhase,
    SessionStore,
)
from agentdock.engine.runtime_machine import SessionRuntimeMachine


def _make_machine():
    deltas = []
    machine = SessionRuntimeMachine(
        on_delta=lambda session_id, runtime: deltas.append((session_id, runtime)),
        now_iso=lambda: "2026-02-14T00:00:00+00:00",
    )
    return machine, deltas


def test_fresh_store_runtime_defaults():
    runtime = SessionStore(session_id="s1").runtime
    assert runtime.phase == SessionPhase.LOADING
    assert runtime.process_state == ProcessState.UNKNOWN
    assert runtime.activity == SessionActivity.IDLE
    assert runtime.last_exit is None


def test_merge_keeps_unsupplied_fields():
    machine, _ = _make_machine()
    store = SessionStore(session_id="s1")
    machine.mark_runtime(store, RuntimeUpdate(
        phase=SessionPhase.RUNNING,
        process_state=ProcessState.ALIVE,
        activity=SessionActivity.WORKING,
    ))
    runtime = machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.STOPPING))

    assert runtime.phase == SessionPhase.STOPPING
    assert runtime.process_state == ProcessState.ALIVE
    assert runtime.activity == SessionActivity.WORKING
    assert store.runtime is runtime


def test_merge_clears_last_exit_unless_supplied():
    machine, _ = _make_machine()
    store = SessionStore(session_id="s1")
    exit_info = ExitInfo(code=1, timestamp="t", unexpected=True)
    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.ERROR, last_exit=exit_info))
    assert store.runtime.last_exit == exit_info

    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.STARTING))
    assert store.runtime.last_exit is None


def test_replace_uses_only_supplied_fields():
    machine, _ = _make_machine()
    store = SessionStore(session_id="s1")
    machine.mark_runtime(store, RuntimeUpdate(
        phase=SessionPhase.RUNNING,
        process_state=ProcessState.ALIVE,
        activity=SessionActivity.WORKING,
    ))
    runtime = machine.mark_runtime(
        store, RuntimeUpdate(phase=SessionPhase.IDLE), replace=True,
    )
    assert runtime.phase == SessionPhase.IDLE
    assert runtime.process_state == ProcessState.UNKNOWN
    assert runtime.activity == SessionActivity.IDLE


def test_updated_at_uses_clock_unless_supplied():
    machine, _ = _make_machine()
    store = SessionStore(session_id="s1")
    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.IDLE))
    assert store.runtime.updated_at == "2026-02-14T00:00:00+00:00"

    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.IDLE, updated_at="custom"))
    assert store.runtime.updated_at == "custom"


def test_delta_emitted_unless_suppressed():
    machine, deltas = _make_machine()
    store = SessionStore(session_id="s1")
    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.STARTING))
    machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.RUNNING), emit_delta=False)

    assert len(deltas) == 1
    assert deltas[0][0] == "s1"
    assert deltas[0][1].phase == SessionPhase.STARTING


def test_no_validation_of_combinations():
    machine, _ = _make_machine()
    store = SessionStore(session_id="s1")
    runtime = machine.mark_runtime(store, RuntimeUpdate(
        phase=SessionPhase.RUNNING,
        process_state=ProcessState.STOPPED,
        activity=SessionActivity.WORKING,
    ))
    assert runtime.phase == SessionPhase.RUNNING
    assert runtime.process_state == ProcessState.STOPPED


def test_machine_without_callback():
    machine = SessionRuntimeMachine()
    store = SessionStore(session_id="s1")
    runtime = machine.mark_runtime(store, RuntimeUpdate(phase=SessionPhase.IDLE))
    assert runtime.updated_at
