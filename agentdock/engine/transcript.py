"""Transcript construction and ordering helpers.

Pure functions over a SessionStore's transcript. History records are
turned into transcript entries here, both for hydration and for the
message state machine's history load.
"""
from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from typing import Any

from .models import (
    HistoryRecord,
    HistoryType,
    QueuedMessage,
    SessionStore,
    TranscriptMessage,
    utc_iso,
)

# Parity trace callback: receives an informational dict.
TraceCallback = Callable[[dict[str, Any]], None]

# Agent payload kinds that carry something a client renders.
_RENDERABLE_AGENT_TYPES = frozenset({"assistant", "user", "stream_event", "result"})


def message_sort_key(message: TranscriptMessage) -> int:
    return message.order


def _deterministic_history_id(record: HistoryRecord, index: int) -> str:
    fingerprint = json.dumps(
        {
            "index": index,
            "type": record.type.value,
            "timestamp": record.timestamp,
            "content": record.content,
            "tool_name": record.tool_name,
            "tool_id": record.tool_id,
            "tool_input": record.tool_input,
            "is_error": bool(record.is_error),
        },
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()[:12]
    return f"history-{index}-{digest}"


def history_message_id(record: HistoryRecord, index: int) -> str:
    """Stable id for a history record: its uuid, else a content fingerprint."""
    return record.uuid or _deterministic_history_id(record, index)


def history_to_agent_payload(record: HistoryRecord) -> dict[str, Any]:
    """Convert a non-user history record into a CLI-shaped agent payload."""
    kind = record.type
    if kind == HistoryType.TOOL_USE and record.tool_name and record.tool_id:
        return {
            "type": "stream_event",
            "event": {
                "type": "content_block_start",
                "index": 0,
                "content_block": {
                    "type": "tool_use",
                    "id": record.tool_id,
                    "name": record.tool_name,
                    "input": record.tool_input or {},
                },
            },
        }
    if kind == HistoryType.TOOL_RESULT:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": record.tool_id or "unknown",
            "content": record.content,
        }
        if record.is_error is not None:
            block["is_error"] = record.is_error
        return {"type": "user", "message": {"role": "user", "content": [block]}}
    if kind == HistoryType.USER_TOOL_RESULT:
        return {"type": "user", "message": {"role": "user", "content": record.content}}
    if kind == HistoryType.THINKING:
        return {
            "type": "stream_event",
            "event": {
                "type": "content_block_start",
                "index": 0,
                "content_block": {"type": "thinking", "thinking": record.content},
            },
        }
    # assistant text, and tool_use records missing their id/name
    return {
        "type": "assistant",
        "message": {
            "role": "assistant",
            "content": [{"type": "text", "text": str(record.content)}],
        },
    }


def build_transcript_from_history(history: list[HistoryRecord]) -> list[TranscriptMessage]:
    """Build an ordered transcript from persisted history.

    Orders start at 0 and follow history order.
    """
    transcript: list[TranscriptMessage] = []
    order = 0
    for index, record in enumerate(history):
        message_id = f"{history_message_id(record, index)}-{order}"
        if record.type == HistoryType.USER:
            transcript.append(TranscriptMessage(
                id=message_id,
                source="user",
                order=order,
                timestamp=record.timestamp,
                text=str(record.content),
                attachments=record.attachments,
            ))
        else:
            transcript.append(TranscriptMessage(
                id=message_id,
                source="agent",
                order=order,
                timestamp=record.timestamp,
                message=history_to_agent_payload(record),
            ))
        order += 1
    return transcript


def upsert_transcript_message(store: SessionStore, message: TranscriptMessage) -> None:
    for idx, existing in enumerate(store.transcript):
        if existing.id == message.id:
            store.transcript[idx] = message
            break
    else:
        store.transcript.append(message)
    store.transcript.sort(key=message_sort_key)


def set_next_order_from_transcript(store: SessionStore) -> None:
    max_order = max((m.order for m in store.transcript), default=-1)
    store.next_order = max_order + 1


def _tool_use_start_id(payload: dict[str, Any]) -> str | None:
    if payload.get("type") != "stream_event":
        return None
    event = payload.get("event") or {}
    if event.get("type") != "content_block_start":
        return None
    block = event.get("content_block") or {}
    if block.get("type") != "tool_use":
        return None
    return block.get("id")


def _find_tool_use_start(store: SessionStore, tool_use_id: str) -> TranscriptMessage | None:
    for entry in store.transcript:
        if entry.source == "agent" and entry.message is not None:
            if _tool_use_start_id(entry.message) == tool_use_id:
                return entry
    return None


def should_include_stream_event(event: dict[str, Any]) -> bool:
    """Only block starts for tool use, tool results and thinking are kept."""
    if event.get("type") != "content_block_start":
        return False
    block = event.get("content_block") or {}
    return block.get("type") in {"tool_use", "tool_result", "thinking"}


def _is_renderable(payload: dict[str, Any]) -> bool:
    if payload.get("type") not in _RENDERABLE_AGENT_TYPES:
        return False
    if payload.get("type") == "stream_event":
        return should_include_stream_event(payload.get("event") or {})
    return True


def _is_duplicate_result(store: SessionStore, payload: dict[str, Any]) -> bool:
    if payload.get("type") != "result":
        return False
    return any(
        entry.source == "agent"
        and entry.message is not None
        and entry.message.get("type") == "result"
        and entry.message.get("result") == payload.get("result")
        for entry in store.transcript
    )


def append_agent_event(
    store: SessionStore,
    payload: dict[str, Any],
    *,
    now_iso: Callable[[], str] = utc_iso,
    on_trace: TraceCallback | None = None,
) -> int:
    """Record a live CLI event and return the order it occupies.

    A repeated tool_use start for the same tool id enriches the existing
    entry in place and keeps its order. Non-renderable events and
    duplicate results still consume an order but are not persisted.
    """
    trace = on_trace or (lambda _data: None)

    tool_use_id = _tool_use_start_id(payload)
    if tool_use_id:
        existing = _find_tool_use_start(store, tool_use_id)
        if existing is not None:
            existing.message = payload
            trace({
                "path": "live_stream_upserted",
                "reason": "duplicate_tool_use_start_enriched",
                "order": existing.order,
            })
            return existing.order

    order = store.next_order
    store.next_order += 1

    if not _is_renderable(payload) or _is_duplicate_result(store, payload):
        trace({
            "path": "live_stream_filtered",
            "reason": (
                "non_renderable_agent_message"
                if not _is_renderable(payload)
                else "duplicate_result_suppressed"
            ),
            "order": order,
        })
        return order

    store.transcript.append(TranscriptMessage(
        id=f"{store.session_id}-{order}",
        source="agent",
        order=order,
        timestamp=payload.get("timestamp") or now_iso(),
        message=payload,
    ))
    trace({"path": "live_stream_persisted", "order": order})
    return order


def commit_sent_user_message_with_order(
    store: SessionStore,
    message: QueuedMessage,
    order: int,
) -> None:
    upsert_transcript_message(store, TranscriptMessage(
        id=message.id,
        source="user",
        order=order,
        timestamp=message.timestamp,
        text=message.text,
        attachments=message.attachments,
    ))
    if store.next_order <= order:
        store.next_order = order + 1


def inject_committed_user_message(
    store: SessionStore,
    text: str,
    *,
    message_id: str,
    now_iso: Callable[[], str] = utc_iso,
) -> TranscriptMessage:
    entry = TranscriptMessage(
        id=message_id,
        source="user",
        order=store.next_order,
        timestamp=now_iso(),
        text=text,
    )
    store.next_order += 1
    upsert_transcript_message(store, entry)
    return entry


def normalize_transcript(messages: list[TranscriptMessage]) -> list[dict[str, Any]]:
    """Reduce a transcript to the fields compared by parity checks."""
    normalized: list[dict[str, Any]] = []
    for message in messages:
        if message.source == "user":
            normalized.append({
                "source": "user",
                "order": message.order,
                "text": message.text,
                "attachments": [
                    {"id": a.id, "name": a.name, "type": a.type, "size": a.size}
                    for a in message.attachments
                ] if message.attachments else None,
            })
        else:
            normalized.append({
                "source": "agent",
                "order": message.order,
                "message": message.message,
            })
    return normalized
