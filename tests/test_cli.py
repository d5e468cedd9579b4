"""agentdock-history CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentdock.engine.cli import format_entry, main
from agentdock.engine.models import TranscriptMessage
from agentdock.shared.services.history import encode_project_path

FIXTURE = Path(__file__).parent / "fixtures" / "history" / "claude_session.jsonl"
SESSION_ID = "provider-session-1"


@pytest.fixture
def claude_dir(tmp_path, monkeypatch):
    for name in ("CLAUDE_CONFIG_DIR", "AGENTDOCK_TRACE_DIR", "AGENTDOCK_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    project_dir = tmp_path / "projects" / encode_project_path("/Users/test/project")
    project_dir.mkdir(parents=True)
    (project_dir / f"{SESSION_ID}.jsonl").write_text(FIXTURE.read_text(encoding="utf-8"), encoding="utf-8")
    return tmp_path


def test_prints_one_line_per_entry(claude_dir, capsys):
    main([SESSION_ID, "--claude-dir", str(claude_dir), "--project-path", "/Users/test/project"])
    lines = capsys.readouterr().out.splitlines()

    assert len(lines) == 5
    assert lines[0].split() == ["0", "user", "hello"]
    assert "[thinking] thinking..." in lines[1]
    assert lines[2].endswith("hi")
    assert "[tool_use] Read" in lines[3]
    assert "[tool_result tool-1]" in lines[4]


def test_json_output_scans_projects_without_path(claude_dir, capsys):
    main([SESSION_ID, "--claude-dir", str(claude_dir), "--json"])
    payload = json.loads(capsys.readouterr().out)

    assert [entry["order"] for entry in payload] == [0, 1, 2, 3, 4]
    assert payload[0]["source"] == "user"
    assert payload[0]["text"] == "hello"
    assert payload[3]["message"]["event"]["content_block"]["name"] == "Read"


def test_missing_session(claude_dir, capsys):
    main(["not-there", "--claude-dir", str(claude_dir)])
    assert "No history found for session not-there" in capsys.readouterr().out


def test_unreadable_history_exits_nonzero(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("AGENTDOCK_TRACE_DIR", raising=False)
    (tmp_path / "projects" / "-p" / "broken.jsonl").mkdir(parents=True)

    with pytest.raises(SystemExit) as exc_info:
        main(["broken", "--claude-dir", str(tmp_path), "--project-path", "/p"])
    assert exc_info.value.code == 1
    assert "Error: Failed to load history for broken" in capsys.readouterr().err


def test_trace_dir_from_config_file(claude_dir, tmp_path, capsys):
    config_path = tmp_path / "agentdock.yaml"
    trace_dir = tmp_path / "traces"
    config_path.write_text(f"core:\n  trace_dir: {trace_dir}\n", encoding="utf-8")

    main([SESSION_ID, "--claude-dir", str(claude_dir), "--config", str(config_path)])

    assert (trace_dir / f"{SESSION_ID}.jsonl").exists()


def test_format_entry_truncates():
    entry = TranscriptMessage(id="u", source="user", order=12, timestamp="t", text="x" * 300)
    line = format_entry(entry)
    assert line.startswith("   12  user ")
    assert line.endswith("...")
    assert len(line) == len("   12  user   ") + 120
