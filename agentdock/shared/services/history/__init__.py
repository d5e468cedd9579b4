"""Persisted CLI history loading."""

from .claude import ClaudeSessionHistoryLoader, parse_history_lines
from .normalize import encode_project_path

__all__ = [
    "ClaudeSessionHistoryLoader",
    "encode_project_path",
    "parse_history_lines",
]
