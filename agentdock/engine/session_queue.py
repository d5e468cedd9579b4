"""Queue and pending-request helpers over a SessionStore.

Plain functions; SessionStoreService decides when to publish.
"""
from __future__ import annotations

import logging
from typing import Union

from .errors import QueueFullError
from .models import PendingInteractiveRequest, QueuedMessage, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 100

EnqueueResult = Union[dict[str, int], dict[str, str]]


def enqueue_message(
    store: SessionStore,
    message: QueuedMessage,
    max_size: int = DEFAULT_MAX_QUEUE_SIZE,
) -> EnqueueResult:
    """Append ``message``; returns ``{"position": n}`` or ``{"error": reason}``."""
    if len(store.queue) >= max_size:
        err = QueueFullError(store.session_id, max_size)
        logger.warning("%s", err)
        return {"error": str(err)}
    store.queue.append(message)
    return {"position": len(store.queue) - 1}


def remove_queued_message(store: SessionStore, message_id: str) -> bool:
    for idx, queued in enumerate(store.queue):
        if queued.id == message_id:
            del store.queue[idx]
            return True
    return False


def dequeue_next(store: SessionStore) -> QueuedMessage | None:
    if not store.queue:
        return None
    return store.queue.pop(0)


def requeue_front(store: SessionStore, message: QueuedMessage) -> None:
    store.queue.insert(0, message)


def clear_queued_work(store: SessionStore) -> bool:
    """Drop the queue and any pending request. True if anything was dropped."""
    had_work = bool(store.queue) or store.pending_interactive_request is not None
    store.queue = []
    store.pending_interactive_request = None
    return had_work


def set_pending_interactive_request(
    store: SessionStore, request: PendingInteractiveRequest,
) -> None:
    store.pending_interactive_request = request


def clear_pending_interactive_request(store: SessionStore) -> bool:
    if store.pending_interactive_request is None:
        return False
    store.pending_interactive_request = None
    return True


def clear_pending_interactive_request_if_matches(store: SessionStore, request_id: str) -> bool:
    pending = store.pending_interactive_request
    if pending is None or pending.request_id != request_id:
        return False
    store.pending_interactive_request = None
    return True
