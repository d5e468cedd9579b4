"""MessageStateService: events, snapshots, injected messages, status."""

from __future__ import annotations

from agentdock.adapters.events import MessagesSnapshot, MessageStateChanged
from agentdock.engine.message_service import MessageStateService
from agentdock.engine.models import (
    HistoryRecord,
    HistoryType,
    MessageState,
    PendingInteractiveRequest,
    QueuedMessage,
    StoredEvent,
)


def _make_service():
    service = MessageStateService()
    events = []
    service.publisher.subscribe(events.append)
    return service, events


def _state_changes(events):
    return [e for e in events if isinstance(e, MessageStateChanged)]


def test_create_user_message_emits_accepted_with_content():
    service, events = _make_service()
    message = service.create_user_message("s1", QueuedMessage(id="m1", text="hello"))

    assert message.state == MessageState.ACCEPTED
    changes = _state_changes(events)
    assert len(changes) == 1
    assert changes[0].message_id == "m1"
    assert changes[0].new_state == "ACCEPTED"
    assert changes[0].queue_position == 0
    assert changes[0].user_message["text"] == "hello"


def test_update_state_emits_only_on_success():
    service, events = _make_service()
    service.create_user_message("s1", QueuedMessage(id="m1", text="hello"))

    assert service.update_state("s1", "m1", MessageState.DISPATCHED) is True
    assert service.update_state("s1", "m1", MessageState.ACCEPTED) is False
    assert service.update_state("s1", "ghost", MessageState.DISPATCHED) is False

    changes = _state_changes(events)
    assert [c.new_state for c in changes] == ["ACCEPTED", "DISPATCHED"]
    assert changes[1].user_message["order"] == 0


def test_rejected_message_event():
    service, events = _make_service()
    service.create_rejected_message("s1", "m1", "Queue full")
    change = _state_changes(events)[0]
    assert change.new_state == "REJECTED"
    assert change.error_message == "Queue full"
    assert change.user_message is None


def test_history_load_emits_nothing():
    service, events = _make_service()
    history = [
        HistoryRecord(type=HistoryType.USER, content="hi", timestamp="t0"),
        HistoryRecord(type=HistoryType.ASSISTANT, content="hey", timestamp="t1"),
    ]
    service.load_from_history("s1", history)
    service.load_from_history("s1", history)

    assert events == []
    assert service.get_message_count("s1") == 2


def test_ensure_history_loaded_keeps_queue():
    service, _ = _make_service()
    service.create_user_message("s1", QueuedMessage(id="q1", text="queued"))
    history = [HistoryRecord(type=HistoryType.USER, content="old", timestamp="t0")]

    assert service.ensure_history_loaded("s1", history) is True
    assert [m.id for m in service.get_all_messages("s1")][-1] == "q1"
    assert service.ensure_history_loaded("s1", history) is False


def test_inject_committed_user_message():
    service, events = _make_service()
    message = service.inject_committed_user_message("s1", "from an issue", message_id="inj-1")

    assert message.state == MessageState.COMMITTED
    assert service.get_message("s1", "inj-1") is message
    change = _state_changes(events)[-1]
    assert change.new_state == "COMMITTED"


def test_inject_generates_id_when_missing():
    service, _ = _make_service()
    message = service.inject_committed_user_message("s1", "text")
    assert message.id.startswith("injected-")


def test_send_snapshot_flattens_and_reannounces_queue():
    service, events = _make_service()
    service.load_from_history("s1", [
        HistoryRecord(type=HistoryType.USER, content="hi", timestamp="t0"),
        HistoryRecord(type=HistoryType.ASSISTANT, content="hey", timestamp="t1"),
    ])
    service.create_user_message("s1", QueuedMessage(id="q1", text="queued"))
    events.clear()

    pending = PendingInteractiveRequest(request_id="r1", tool_name="AskUserQuestion")
    snapshot = service.send_snapshot("s1", load_request_id="load-7", pending_interactive_request=pending)

    assert isinstance(events[0], MessagesSnapshot)
    assert events[0] is snapshot
    assert [m.source for m in snapshot.messages] == ["user", "agent", "user"]
    assert snapshot.messages[1].message["type"] == "assistant"
    assert snapshot.load_request_id == "load-7"
    assert snapshot.pending_interactive_request is pending
    assert [c.message_id for c in _state_changes(events)] == ["q1"]


def test_compute_session_status():
    service, _ = _make_service()
    assert service.compute_session_status("s1", True) == {"phase": "running"}
    assert service.compute_session_status("s1", False) == {"phase": "ready"}

    service.create_user_message("s1", QueuedMessage(id="m1", text="x"))
    assert service.compute_session_status("s1", False) == {"phase": "starting"}

    service.update_state("s1", "m1", MessageState.DISPATCHED)
    assert service.compute_session_status("s1", False) == {"phase": "ready"}


def test_remove_and_clear():
    service, _ = _make_service()
    service.create_user_message("s1", QueuedMessage(id="m1", text="x"))
    service.create_user_message("s2", QueuedMessage(id="m1", text="x"))
    assert service.remove_message("s1", "m1") is True
    assert service.has_message("s2", "m1")

    service.clear_session("s2")
    assert not service.has_message("s2", "m1")
    service.clear_all_sessions()
    assert service.allocate_order("s1") == 0


def _claude_event(data: dict, order: int) -> StoredEvent:
    return StoredEvent(type="claude_message", data=data, order=order, timestamp=f"t{order}")


def test_snapshot_merges_live_events_by_order():
    service, events = _make_service()
    service.load_from_history("s1", [HistoryRecord(type=HistoryType.USER, content="hi", timestamp="t0")])
    assistant = {"type": "assistant", "message": {"role": "assistant", "content": [{"type": "text", "text": "live"}]}}
    tool_start = {
        "type": "stream_event",
        "event": {"type": "content_block_start", "content_block": {"type": "tool_use", "id": "t1", "name": "Read"}},
    }
    delta = {"type": "stream_event", "event": {"type": "content_block_delta", "delta": {"text": "x"}}}
    assistant_order = service.allocate_order("s1")
    tool_order = service.allocate_order("s1")
    delta_order = service.allocate_order("s1")
    service.store_event("s1", _claude_event(tool_start, tool_order))
    service.store_event("s1", _claude_event(assistant, assistant_order))
    service.store_event("s1", _claude_event(delta, delta_order))
    service.create_user_message("s1", QueuedMessage(id="q1", text="queued"))
    service.store_event("s1", StoredEvent(type="status_update", data={"phase": "running"}, order=4))
    service.store_event("s1", StoredEvent(type="claude_message", data=assistant, order=None))

    snapshot = service.send_snapshot("s1")

    assert [(m.source, m.order) for m in snapshot.messages][:3] == [("user", 0), ("agent", 1), ("agent", 2)]
    assert snapshot.messages[1].message is assistant
    assert snapshot.messages[1].id == "evt-s1-1"
    assert snapshot.messages[1].timestamp == "t1"
    assert snapshot.messages[2].message is tool_start
    assert [m.id for m in snapshot.messages][-1] == "q1"
    assert len(snapshot.messages) == 4


def test_stored_events_cleared_with_session():
    service, _ = _make_service()
    service.store_event("s1", _claude_event({"type": "assistant"}, 0))
    service.store_event("s2", _claude_event({"type": "assistant"}, 0))
    assert len(service.get_stored_events("s1")) == 1

    service.clear_stored_events("s1")
    assert service.get_stored_events("s1") == []

    service.store_event("s1", _claude_event({"type": "assistant"}, 0))
    service.clear_session("s1")
    assert service.get_stored_events("s1") == []
    assert len(service.get_stored_events("s2")) == 1

    service.clear_all_sessions()
    assert service.get_stored_events("s2") == []
    assert service.send_snapshot("s2").messages == []
