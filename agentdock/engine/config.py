"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via AGENTDOCK_* env vars
(and CLAUDE_CONFIG_DIR for the history location).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_claude_config_dir() -> str:
    return str(Path.home() / ".claude")


@dataclass
class CoreConfig:
    """Session core configuration."""

    # Root of the Claude CLI's own state; history lives under projects/
    claude_config_dir: str = ""

    # Per-session queue capacity
    max_queue_size: int = 100

    # Directory for per-session JSONL trace logs. None disables tracing.
    trace_dir: str | None = None

    # EventBus queue capacity
    event_queue_size: int = 5000

    # Logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.claude_config_dir:
            self.claude_config_dir = _default_claude_config_dir()

    @property
    def claude_projects_dir(self) -> Path:
        return Path(self.claude_config_dir).expanduser() / "projects"

    @classmethod
    def from_env(cls) -> CoreConfig:
        """Load configuration from AGENTDOCK_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("AGENTDOCK_")
        }
        if overrides:
            logger.info(
                "CoreConfig.from_env: AGENTDOCK_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("CoreConfig.from_env: no AGENTDOCK_* env vars set, using defaults")

        config = cls(
            claude_config_dir=os.getenv("CLAUDE_CONFIG_DIR", ""),
            max_queue_size=int(os.getenv(
                "AGENTDOCK_MAX_QUEUE_SIZE", str(cls.max_queue_size)
            )),
            trace_dir=os.getenv("AGENTDOCK_TRACE_DIR") or None,
            event_queue_size=int(os.getenv(
                "AGENTDOCK_EVENT_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            log_level=os.getenv("AGENTDOCK_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "CoreConfig.from_env: claude_dir=%s max_queue=%d trace_dir=%s log_level=%s",
            config.claude_config_dir, config.max_queue_size,
            config.trace_dir, config.log_level,
        )
        return config
