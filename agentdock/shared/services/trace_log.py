"""Per-session JSONL trace log.

Every trace record lands as one JSON line in
``<trace_dir>/<session id>.jsonl``. Purely informational: write
failures are logged and dropped.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class SessionTraceLogger:
    """Appends trace records to one file per session."""

    def __init__(self, trace_dir: str | Path) -> None:
        self.trace_dir = Path(trace_dir).expanduser()
        self.trace_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, session_id: str) -> Path:
        return self.trace_dir / f"{_UNSAFE_CHARS.sub('_', session_id)}.jsonl"

    def __call__(self, session_id: str, record: dict[str, Any]) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            **record,
        }
        path = self.path_for(session_id)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            logger.warning("Failed to write trace record to %s: %s", path, exc)

    def read(self, session_id: str) -> list[dict[str, Any]]:
        """Return every record written for a session, oldest first."""
        path = self.path_for(session_id)
        if not path.exists():
            return []
        records: list[dict[str, Any]] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping corrupt trace line in %s", path)
        return records


def build_trace_sink(trace_dir: str | Path | None) -> SessionTraceLogger | None:
    """Trace sink for ``trace_dir``, or None when tracing is disabled."""
    if not trace_dir:
        return None
    return SessionTraceLogger(trace_dir)
