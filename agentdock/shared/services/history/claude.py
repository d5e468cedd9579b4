"""Claude CLI session history loader.

Reads ``<claude_config_dir>/projects/<encoded cwd>/<session id>.jsonl``
and splits every eligible row into HistoryRecord entries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from agentdock.engine.errors import HistoryLoadError
from agentdock.engine.models import HistoryRecord, HistoryType

from .normalize import encode_project_path, normalize_tool_result_content, parse_timestamp

logger = logging.getLogger(__name__)

_SAFE_SESSION_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_TOOL_USE_TYPES = frozenset({"tool_use", "server_tool_use", "mcp_tool_use"})

_TOOL_RESULT_TYPES = frozenset({
    "tool_result",
    "tool_search_tool_result",
    "web_fetch_tool_result",
    "web_search_tool_result",
    "code_execution_tool_result",
    "bash_code_execution_tool_result",
    "text_editor_code_execution_tool_result",
    "mcp_tool_result",
})


def is_safe_session_id(session_id: str) -> bool:
    return bool(_SAFE_SESSION_ID.match(session_id)) and ".." not in session_id


class ClaudeSessionHistoryLoader:
    """Loads persisted Claude CLI conversations as HistoryRecord lists."""

    def __init__(self, config_dir: str | Path | None = None) -> None:
        self._config_dir = Path(config_dir).expanduser() if config_dir else None

    @property
    def config_dir(self) -> Path:
        if self._config_dir is not None:
            return self._config_dir
        env_dir = os.getenv("CLAUDE_CONFIG_DIR")
        return Path(env_dir) if env_dir else Path.home() / ".claude"

    @property
    def projects_dir(self) -> Path:
        return self.config_dir / "projects"

    async def load_history(
        self,
        claude_session_id: str | None,
        claude_project_path: str | None,
    ) -> list[HistoryRecord]:
        """Return the session's history, or [] when there is none to load.

        Raises HistoryLoadError when the file exists but cannot be read.
        """
        if not claude_session_id:
            return []
        if not is_safe_session_id(claude_session_id):
            logger.warning("Refusing to load history for unsafe session id %r", claude_session_id)
            return []
        return await asyncio.to_thread(
            self._load_sync, claude_session_id, claude_project_path or "",
        )

    def resolve_session_file(self, claude_session_id: str, cwd: str) -> Path | None:
        """Expected location first, then every project directory."""
        file_name = f"{claude_session_id}.jsonl"
        if cwd:
            expected = self.projects_dir / encode_project_path(cwd) / file_name
            if expected.exists():
                return expected

        if not self.projects_dir.is_dir():
            return None
        for project_dir in sorted(self.projects_dir.iterdir()):
            if not project_dir.is_dir():
                continue
            candidate = project_dir / file_name
            if candidate.exists():
                logger.debug("Found %s outside its project dir: %s", file_name, candidate)
                return candidate
        return None

    def _load_sync(self, claude_session_id: str, cwd: str) -> list[HistoryRecord]:
        path = self.resolve_session_file(claude_session_id, cwd)
        if path is None:
            logger.info("No history file for Claude session %s", claude_session_id)
            return []
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            raise HistoryLoadError(claude_session_id, str(path), str(exc)) from exc

        records = parse_history_lines(lines, claude_session_id)
        logger.info(
            "Loaded %d history records for Claude session %s from %s",
            len(records), claude_session_id, path,
        )
        return records


def parse_history_lines(lines: list[str], claude_session_id: str) -> list[HistoryRecord]:
    """Convert JSONL rows into HistoryRecord entries in file order."""
    records: list[HistoryRecord] = []
    fallback_base = datetime.now(timezone.utc)

    for line_no, raw in enumerate(lines, start=1):
        if not raw.strip():
            continue
        try:
            row = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Skipping invalid JSON on line %d", line_no)
            continue
        if not isinstance(row, dict) or not _is_eligible(row, claude_session_id):
            continue

        message = row.get("message") if isinstance(row.get("message"), dict) else {}
        role = message.get("role")
        if role not in ("user", "assistant"):
            continue
        content = message.get("content")
        if not isinstance(content, (str, list)):
            continue

        timestamp = _row_timestamp(row, message, fallback_base, line_no)
        uuid = row.get("uuid") if isinstance(row.get("uuid"), str) else None
        if uuid is None and isinstance(message.get("id"), str):
            uuid = message["id"]

        if isinstance(content, str):
            records.append(HistoryRecord(
                type=HistoryType.ASSISTANT if role == "assistant" else HistoryType.USER,
                content=content,
                timestamp=timestamp,
                uuid=uuid,
            ))
            continue

        for chunk in content:
            record = _parse_chunk(role, chunk, timestamp, uuid)
            if record is not None:
                records.append(record)
    return records


def _is_eligible(row: dict[str, Any], claude_session_id: str) -> bool:
    if row.get("type") not in ("user", "assistant"):
        return False
    if row.get("isSidechain"):
        return False
    session_id = row.get("sessionId")
    if session_id and session_id != claude_session_id:
        return False
    return True


def _row_timestamp(
    row: dict[str, Any],
    message: dict[str, Any],
    fallback_base: datetime,
    line_no: int,
) -> str:
    for candidate in (row.get("timestamp"), row.get("createdAt"), message.get("timestamp")):
        if parse_timestamp(candidate) is not None:
            return candidate
    # Keeps file order when timestamps are unusable.
    return (fallback_base + timedelta(milliseconds=line_no)).isoformat()


def _parse_chunk(
    role: str, chunk: Any, timestamp: str, uuid: str | None,
) -> HistoryRecord | None:
    if not isinstance(chunk, dict):
        return None
    chunk_type = chunk.get("type")

    if chunk_type in ("text", "text_delta"):
        if not isinstance(chunk.get("text"), str):
            return None
        return HistoryRecord(
            type=HistoryType.ASSISTANT if role == "assistant" else HistoryType.USER,
            content=chunk["text"],
            timestamp=timestamp,
            uuid=uuid,
        )

    if role == "assistant":
        if chunk_type in ("thinking", "thinking_delta"):
            if not isinstance(chunk.get("thinking"), str):
                return None
            return HistoryRecord(
                type=HistoryType.THINKING,
                content=chunk["thinking"],
                timestamp=timestamp,
                uuid=uuid,
            )
        if chunk_type in _TOOL_USE_TYPES:
            tool_name = chunk.get("name") if isinstance(chunk.get("name"), str) else None
            return HistoryRecord(
                type=HistoryType.TOOL_USE,
                content=tool_name or "Tool call",
                timestamp=timestamp,
                uuid=uuid,
                tool_name=tool_name,
                tool_id=chunk.get("id") if isinstance(chunk.get("id"), str) else None,
                tool_input=chunk.get("input") if isinstance(chunk.get("input"), dict) else None,
            )
        return None

    if chunk_type in _TOOL_RESULT_TYPES:
        tool_id = chunk.get("tool_use_id")
        is_error = chunk.get("is_error")
        return HistoryRecord(
            type=HistoryType.TOOL_RESULT,
            content=normalize_tool_result_content(chunk.get("content")),
            timestamp=timestamp,
            uuid=uuid,
            tool_id=tool_id if isinstance(tool_id, str) else None,
            is_error=is_error if isinstance(is_error, bool) else None,
        )
    return None
