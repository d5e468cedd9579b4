"""YAML configuration loader.

Values in the file override environment-derived defaults.

Example YAML:
    core:
      claude_config_dir: ~/.claude
      max_queue_size: 50
      trace_dir: /var/log/agentdock/traces
      event_queue_size: 2000
      log_level: DEBUG
"""
from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path

import yaml

from .config import CoreConfig

logger = logging.getLogger(__name__)

_INT_FIELDS = frozenset({"max_queue_size", "event_queue_size"})


def load_yaml_config(path: str | Path, base: CoreConfig | None = None) -> CoreConfig:
    """Load the ``core:`` section of a YAML file onto ``base``.

    ``base`` defaults to ``CoreConfig.from_env()``. Unknown keys are
    logged and ignored.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute(),
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    config = base if base is not None else CoreConfig.from_env()
    core_raw = raw.get("core") or {}
    if not isinstance(core_raw, dict):
        raise ValueError(f"'core' section in {path} must be a mapping")

    known = {f.name for f in fields(CoreConfig)}
    for key, value in core_raw.items():
        if key not in known:
            logger.warning("load_yaml_config: ignoring unknown core key %r in %s", key, path)
            continue
        if key in _INT_FIELDS:
            value = int(value)
        elif key == "claude_config_dir":
            value = str(Path(str(value)).expanduser())
        elif value is not None:
            value = str(value)
        setattr(config, key, value)

    logger.info(
        "load_yaml_config: loaded %s (core keys: %s)",
        path.name, ", ".join(sorted(core_raw)) if core_raw else "(none)",
    )
    return config
