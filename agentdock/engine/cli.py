"""CLI entry point for inspecting a persisted session.

Usage:
    agentdock-history 217df94b-a1f0-43b4-b457-764295a557ec
    agentdock-history SESSION_ID --project-path /Users/me/proj --json
    agentdock-history SESSION_ID --claude-dir ~/.claude-alt --verbose
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from agentdock.shared.services.history import ClaudeSessionHistoryLoader
from agentdock.shared.services.trace_log import build_trace_sink

from .config import CoreConfig
from .errors import HistoryLoadError
from .models import SessionRuntime, TranscriptMessage
from .session_store import SessionStoreService
from .yaml_config import load_yaml_config


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="agentdock-history",
        description="Hydrate a Claude CLI session and print its transcript",
    )
    parser.add_argument("session_id", help="Claude session id (JSONL file stem)")
    parser.add_argument(
        "--project-path",
        default=None,
        help="Working directory the session ran in (default: scan all projects)",
    )
    parser.add_argument(
        "--claude-dir",
        default=None,
        help="Claude config directory (default: $CLAUDE_CONFIG_DIR or ~/.claude)",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file with a 'core' section",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the transcript as JSON",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    config = load_yaml_config(args.config) if args.config else CoreConfig.from_env()
    if args.claude_dir is not None:
        config.claude_config_dir = args.claude_dir

    # Configure logging
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        transcript = asyncio.run(_hydrate(config, args.session_id, args.project_path))
    except HistoryLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(1)

    if args.json:
        payload = [asdict(entry) for entry in transcript]
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
        return

    if not transcript:
        print(f"No history found for session {args.session_id}")
        return
    for entry in transcript:
        print(format_entry(entry))


async def _hydrate(
    config: CoreConfig, session_id: str, project_path: str | None,
) -> list[TranscriptMessage]:
    loader = ClaudeSessionHistoryLoader(config.claude_config_dir)
    service = SessionStoreService(
        loader.load_history,
        config=config,
        trace_sink=build_trace_sink(config.trace_dir),
    )
    await service.subscribe(
        session_id,
        claude_project_path=project_path,
        claude_session_id=session_id,
        session_runtime=SessionRuntime(),
    )
    return service.get_transcript(session_id)


def format_entry(entry: TranscriptMessage) -> str:
    """One line per transcript entry: order, source, then a short summary."""
    if entry.source == "user":
        summary = (entry.text or "").replace("\n", " ")
    else:
        summary = _summarize_agent_payload(entry.message or {})
    if len(summary) > 120:
        summary = summary[:117] + "..."
    return f"{entry.order:>5}  {entry.source:<5}  {summary}"


def _summarize_agent_payload(payload: dict) -> str:
    kind = payload.get("type")
    if kind == "stream_event":
        block = (payload.get("event") or {}).get("content_block") or {}
        if block.get("type") == "tool_use":
            return f"[tool_use] {block.get('name', '?')}"
        if block.get("type") == "thinking":
            return "[thinking] " + str(block.get("thinking", "")).replace("\n", " ")
        return f"[{block.get('type', 'event')}]"
    content = (payload.get("message") or {}).get("content")
    if isinstance(content, list):
        parts = []
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                parts.append(str(block.get("text", "")))
            elif block.get("type") == "tool_result":
                parts.append(f"[tool_result {block.get('tool_use_id', '?')}]")
        return " ".join(parts).replace("\n", " ")
    return str(content or kind or "")


if __name__ == "__main__":
    main()
