"""In-memory registry of SessionStore entries, keyed by session id."""
from __future__ import annotations

import copy
import logging

from .models import PendingInteractiveRequest, QueuedMessage, SessionStore

logger = logging.getLogger(__name__)


class SessionStoreRegistry:

    def __init__(self) -> None:
        self._stores: dict[str, SessionStore] = {}

    def get_or_create(self, session_id: str) -> SessionStore:
        store = self._stores.get(session_id)
        if store is None:
            store = SessionStore(session_id=session_id)
            self._stores[session_id] = store
            logger.debug("Created session store for %s", session_id)
        return store

    def get(self, session_id: str) -> SessionStore | None:
        return self._stores.get(session_id)

    def clear_session(self, session_id: str) -> None:
        self._stores.pop(session_id, None)

    def clear_all_sessions(self) -> None:
        self._stores.clear()

    def __len__(self) -> int:
        return len(self._stores)

    def get_all_pending_requests(self) -> dict[str, PendingInteractiveRequest]:
        return {
            session_id: store.pending_interactive_request
            for session_id, store in self._stores.items()
            if store.pending_interactive_request is not None
        }

    def get_queue_length(self, session_id: str) -> int:
        store = self._stores.get(session_id)
        return len(store.queue) if store else 0

    def get_queue_snapshot(self, session_id: str) -> list[QueuedMessage]:
        store = self._stores.get(session_id)
        return copy.deepcopy(store.queue) if store else []
