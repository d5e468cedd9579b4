"""Async event bus bridging session core listeners to async consumers.

The core publishes events synchronously. The EventBus queues them for
a transport's consumer loop (e.g. a socket pusher).
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from agentdock.adapters.events import SessionEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging publisher listeners to event consumers."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def _listener(self, event: SessionEvent) -> None:
        """Listener to pass to SessionPublisher.subscribe()."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "EventBus queue full, dropping: %s for %s (queue size: %d)",
                event.event_type,
                event.session_id,
                self._queue.qsize(),
            )

    def make_listener(self) -> Callable[[SessionEvent], None]:
        """Return the listener for SessionPublisher.subscribe()."""
        return self._listener

    async def emit(self, event: SessionEvent) -> None:
        """Manually emit an event (for transport-generated events)."""
        if self._closed:
            return
        try:
            # Backpressure instead of dropping
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[SessionEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def drain(self) -> list[SessionEvent]:
        """Return and remove every queued event without waiting."""
        events: list[SessionEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        self.drain()
        self._closed = False
