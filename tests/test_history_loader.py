"""Claude JSONL history loader."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from agentdock.engine.errors import HistoryLoadError
from agentdock.engine.models import HistoryType
from agentdock.engine.transcript import build_transcript_from_history
from agentdock.shared.services.history import ClaudeSessionHistoryLoader, encode_project_path
from agentdock.shared.services.history.normalize import normalize_tool_result_content

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "history"
SESSION_ID = "provider-session-1"


def _write_session(claude_dir: Path, cwd: str, session_id: str, lines: list[str]) -> Path:
    project_dir = claude_dir / "projects" / encode_project_path(cwd)
    project_dir.mkdir(parents=True, exist_ok=True)
    path = project_dir / f"{session_id}.jsonl"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def _fixture_lines() -> list[str]:
    return (FIXTURES_DIR / "claude_session.jsonl").read_text(encoding="utf-8").splitlines()


def test_encode_project_path():
    assert encode_project_path("/Users/test/project") == "-Users-test-project"
    assert encode_project_path("C:\\work\\proj") == "C-work-proj"


@pytest.mark.asyncio
async def test_loads_and_splits_content_blocks(tmp_path):
    _write_session(tmp_path, "/Users/test/project", SESSION_ID, _fixture_lines())
    loader = ClaudeSessionHistoryLoader(tmp_path)

    history = await loader.load_history(SESSION_ID, "/Users/test/project")

    assert [r.type for r in history] == [
        HistoryType.USER,
        HistoryType.THINKING,
        HistoryType.ASSISTANT,
        HistoryType.TOOL_USE,
        HistoryType.TOOL_RESULT,
    ]
    assert history[0].content == "hello"
    assert history[0].uuid == "u-1"
    assert history[1].content == "thinking..."
    assert history[2].content == "hi"
    assert history[1].uuid == history[2].uuid == "a-1"

    tool_use = history[3]
    assert (tool_use.content, tool_use.tool_name, tool_use.tool_id) == ("Read", "Read", "tool-1")
    assert tool_use.tool_input == {"path": "a.ts"}

    tool_result = history[4]
    assert tool_result.content == "ok"
    assert tool_result.tool_id == "tool-1"
    assert tool_result.is_error is None
    assert tool_result.timestamp == "2026-02-14T00:00:03.000Z"


@pytest.mark.asyncio
async def test_history_builds_a_transcript(tmp_path):
    _write_session(tmp_path, "/Users/test/project", SESSION_ID, _fixture_lines())
    history = await ClaudeSessionHistoryLoader(tmp_path).load_history(SESSION_ID, "/Users/test/project")

    transcript = build_transcript_from_history(history)
    assert [m.order for m in transcript] == [0, 1, 2, 3, 4]
    assert len({m.id for m in transcript}) == 5
    assert transcript[3].message["event"]["content_block"]["id"] == "tool-1"
    assert transcript[4].message["message"]["content"][0]["tool_use_id"] == "tool-1"


@pytest.mark.asyncio
async def test_falls_back_to_scanning_projects(tmp_path):
    _write_session(tmp_path, "/Users/test/original", "sess-2", [json.dumps({
        "type": "user",
        "sessionId": "sess-2",
        "message": {"role": "user", "content": "hello from original cwd"},
    })])
    history = await ClaudeSessionHistoryLoader(tmp_path).load_history("sess-2", "/Users/test/different")
    assert len(history) == 1
    assert history[0].content == "hello from original cwd"


@pytest.mark.asyncio
async def test_missing_id_or_file_yields_empty(tmp_path):
    loader = ClaudeSessionHistoryLoader(tmp_path)
    assert await loader.load_history(None, "/x") == []
    assert await loader.load_history("missing-session", "/x") == []
    assert await loader.load_history("../../etc/passwd", "/x") == []


@pytest.mark.asyncio
async def test_unreadable_file_raises(tmp_path):
    project_dir = tmp_path / "projects" / encode_project_path("/Users/test/dir")
    (project_dir / "sess-dir.jsonl").mkdir(parents=True)

    with pytest.raises(HistoryLoadError) as exc_info:
        await ClaudeSessionHistoryLoader(tmp_path).load_history("sess-dir", "/Users/test/dir")
    assert exc_info.value.claude_session_id == "sess-dir"
    assert exc_info.value.path.endswith("sess-dir.jsonl")


@pytest.mark.asyncio
async def test_invalid_timestamps_fall_back_in_file_order(tmp_path):
    _write_session(tmp_path, "/p", "sess-ts", [
        json.dumps({
            "type": "user", "sessionId": "sess-ts", "timestamp": "not-a-date",
            "message": {"role": "user", "content": "first"},
        }),
        json.dumps({
            "type": "assistant", "sessionId": "sess-ts", "createdAt": "also-bad",
            "message": {"role": "assistant", "timestamp": "still-bad", "content": "second"},
        }),
    ])
    history = await ClaudeSessionHistoryLoader(tmp_path).load_history("sess-ts", "/p")

    first = datetime.fromisoformat(history[0].timestamp)
    second = datetime.fromisoformat(history[1].timestamp)
    assert first > datetime(2000, 1, 1, tzinfo=timezone.utc)
    assert second > first


@pytest.mark.asyncio
async def test_config_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path))
    _write_session(tmp_path, "/p", SESSION_ID, _fixture_lines())
    history = await ClaudeSessionHistoryLoader().load_history(SESSION_ID, "/p")
    assert len(history) == 5


def test_tool_result_content_normalization():
    assert normalize_tool_result_content("plain") == "plain"
    assert normalize_tool_result_content([
        {"type": "text", "text": "a"},
        {"type": "image", "source": {"data": "x"}},
        {"type": "other"},
    ]) == [{"type": "text", "text": "a"}, {"type": "image", "source": {"data": "x"}}]
    assert normalize_tool_result_content({"k": 1}) == '{"k": 1}'
