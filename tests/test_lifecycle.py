"""Message lifecycle transition tables."""

from __future__ import annotations

import pytest

from agentdock.engine.lifecycle import (
    AGENT_TRANSITIONS,
    USER_TRANSITIONS,
    is_initial_state,
    is_valid_transition,
)
from agentdock.engine.models import TERMINAL_STATES, MessageRole, MessageState as S


# ── User table ──


def test_user_happy_path_is_valid():
    path = [S.PENDING, S.SENT, S.ACCEPTED, S.DISPATCHED, S.COMMITTED]
    for current, target in zip(path, path[1:]):
        assert is_valid_transition("user", current, target)


def test_user_cannot_skip_acceptance():
    assert is_valid_transition("user", S.PENDING, S.SENT) is True
    assert is_valid_transition("user", S.SENT, S.DISPATCHED) is False
    assert is_valid_transition("user", S.PENDING, S.COMMITTED) is False


@pytest.mark.parametrize("state", [S.PENDING, S.SENT, S.ACCEPTED, S.DISPATCHED])
def test_user_can_cancel_from_any_non_terminal_state(state):
    assert is_valid_transition(MessageRole.USER, state, S.CANCELLED)


def test_user_error_exits():
    assert is_valid_transition("user", S.SENT, S.REJECTED)
    assert is_valid_transition("user", S.DISPATCHED, S.FAILED)
    assert not is_valid_transition("user", S.ACCEPTED, S.REJECTED)


def test_user_states_foreign_to_role_are_invalid():
    assert not is_valid_transition("user", S.PENDING, S.STREAMING)
    assert not is_valid_transition("user", S.STREAMING, S.COMPLETE)


# ── Agent table ──


def test_agent_streaming_exits():
    assert is_valid_transition("agent", S.STREAMING, S.COMPLETE)
    assert is_valid_transition("agent", S.STREAMING, S.FAILED)
    assert not is_valid_transition("agent", S.STREAMING, S.COMMITTED)


def test_claude_alias_selects_agent_table():
    assert MessageRole("claude") is MessageRole.AGENT
    assert is_valid_transition("claude", S.STREAMING, S.COMPLETE)
    assert is_valid_transition("claude", S.COMPLETE, S.COMPLETE) is False


def test_agent_states_foreign_to_role_are_invalid():
    assert not is_valid_transition("agent", S.PENDING, S.SENT)


# ── Terminal states ──


def test_terminal_states_allow_nothing():
    for table in (USER_TRANSITIONS, AGENT_TRANSITIONS):
        for state, targets in table.items():
            if state in TERMINAL_STATES:
                assert targets == set()


def test_no_self_transitions():
    for role in ("user", "agent"):
        for state in S:
            assert not is_valid_transition(role, state, state)


def test_string_states_are_accepted():
    assert is_valid_transition("user", "ACCEPTED", "DISPATCHED")


def test_unknown_role_or_state_is_invalid():
    assert not is_valid_transition("system", "PENDING", "SENT")
    assert not is_valid_transition("user", "PENDING", "NOT_A_STATE")
    assert not is_valid_transition("user", "BOGUS", S.SENT)


def test_initial_states():
    assert is_initial_state("user", S.PENDING)
    assert is_initial_state("user", S.ACCEPTED)
    assert not is_initial_state("user", S.DISPATCHED)
    assert is_initial_state("agent", S.STREAMING)
    assert not is_initial_state("agent", S.COMPLETE)
