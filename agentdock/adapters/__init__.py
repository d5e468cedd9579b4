"""Adapters package - Bridge between the session core and transports.

Event types, the listener fan-out, and the async event bus that a
socket pusher (or any other consumer) drains.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "SessionEvent",
    "SessionPublisher",
    "dict_to_event",
    "event_to_dict",
]

from agentdock.adapters.event_bus import EventBus
from agentdock.adapters.events import SessionEvent, dict_to_event, event_to_dict
from agentdock.adapters.publisher import SessionPublisher
