"""Normalization helpers for persisted CLI history."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Parse common CLI timestamp formats into aware UTC datetimes."""
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_text(value: Any) -> str:
    """Render arbitrary values into stable text for transcript storage."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        return str(value)


def normalize_tool_result_content(value: Any) -> str | list[dict[str, Any]]:
    """Keep text and image parts of a tool result; stringify anything else."""
    if isinstance(value, str):
        return value
    if not isinstance(value, list):
        return coerce_text(value)

    items: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        if item.get("type") == "text" and isinstance(item.get("text"), str):
            items.append({"type": "text", "text": item["text"]})
        elif item.get("type") == "image" and isinstance(item.get("source"), dict):
            items.append({"type": "image", "source": item["source"]})
    return items if items else coerce_text(value)


def encode_project_path(cwd: str) -> str:
    """Directory name the Claude CLI uses for a working directory.

    ``/Users/me/proj`` becomes ``-Users-me-proj``; ``C:\\work\\proj``
    becomes ``C-work-proj``.
    """
    if len(cwd) >= 3 and cwd[0].isalpha() and cwd[1] == ":" and cwd[2] in "\\/":
        return cwd[0] + cwd[2:].replace("\\", "-").replace("/", "-")
    return cwd.replace("/", "-")
