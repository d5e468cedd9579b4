"""Message lifecycle state machine tables.

Defines valid transitions per message role and checks them.
Checking is pure; the state machine decides what to do with a
rejected transition.

User messages:

    PENDING ──> SENT ──> ACCEPTED ──> DISPATCHED ──> COMMITTED
                  │                        │
                  └──> REJECTED            └──> FAILED

    Any non-terminal state ──> CANCELLED

Agent messages:

    STREAMING ──┬──> COMPLETE
                └──> FAILED
"""
from __future__ import annotations

from .models import MessageRole, MessageState

USER_TRANSITIONS: dict[MessageState, set[MessageState]] = {
    MessageState.PENDING: {
        MessageState.SENT,
        MessageState.CANCELLED,
    },
    MessageState.SENT: {
        MessageState.ACCEPTED,
        MessageState.REJECTED,
        MessageState.CANCELLED,
    },
    MessageState.ACCEPTED: {
        MessageState.DISPATCHED,
        MessageState.CANCELLED,
    },
    MessageState.DISPATCHED: {
        MessageState.COMMITTED,
        MessageState.FAILED,
        MessageState.CANCELLED,
    },
    MessageState.COMMITTED: set(),
    MessageState.REJECTED: set(),
    MessageState.FAILED: set(),
    MessageState.CANCELLED: set(),
}

AGENT_TRANSITIONS: dict[MessageState, set[MessageState]] = {
    MessageState.STREAMING: {
        MessageState.COMPLETE,
        MessageState.FAILED,
    },
    MessageState.COMPLETE: set(),
    MessageState.FAILED: set(),
}

_TABLES: dict[MessageRole, dict[MessageState, set[MessageState]]] = {
    MessageRole.USER: USER_TRANSITIONS,
    MessageRole.AGENT: AGENT_TRANSITIONS,
}


def transitions_for(role: MessageRole | str) -> dict[MessageState, set[MessageState]]:
    """Return the transition table governing ``role``."""
    return _TABLES[MessageRole(role)]


def is_valid_transition(
    role: MessageRole | str,
    current: MessageState | str,
    target: MessageState | str,
) -> bool:
    """Check a transition against the role's table.

    Unknown roles, and states that do not belong to the role, are
    never valid.
    """
    try:
        table = transitions_for(role)
        current = MessageState(current)
        target = MessageState(target)
    except ValueError:
        return False
    if current not in table or target not in table:
        return False
    return target in table[current]


def is_initial_state(role: MessageRole | str, state: MessageState) -> bool:
    """States a message of ``role`` may be created in."""
    if MessageRole(role) == MessageRole.USER:
        return state in {MessageState.PENDING, MessageState.ACCEPTED}
    return state == MessageState.STREAMING
