"""Load optional tracker configuration from `.dev_tracker/config.yaml`."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .constants import (
    ACTIVITY_TAIL_LIMIT,
    ANIMATION_DURATION,
    CONFIG_FILE,
    DEFAULT_API_BASE_URL,
    DEFAULT_HOST,
    DEFAULT_PORT,
    STATE_DIR_NAME,
    UNDO_TIMEOUT,
)
from .io_utils import _load_data_with_error

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class TrackerConfig:
    """Effective settings for the workflow engine, server and sync client."""

    animation_duration: float = ANIMATION_DURATION
    undo_timeout: float = UNDO_TIMEOUT
    activity_tail_limit: int = ACTIVITY_TAIL_LIMIT
    seed_sample_data: bool = True
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    api_base_url: str = DEFAULT_API_BASE_URL


def _as_seconds(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return max(0.0, value)


def _as_int(raw: Any, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _as_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def config_from_mapping(data: Mapping[str, Any]) -> TrackerConfig:
    """Build a :class:`TrackerConfig` from a loose mapping, ignoring bad values."""
    cfg = TrackerConfig()
    workflow = data.get("workflow")
    if isinstance(workflow, dict):
        if "animation_duration" in workflow:
            cfg.animation_duration = _as_seconds(workflow["animation_duration"], cfg.animation_duration)
        if "undo_timeout" in workflow:
            cfg.undo_timeout = _as_seconds(workflow["undo_timeout"], cfg.undo_timeout)
        if "activity_tail_limit" in workflow:
            cfg.activity_tail_limit = max(0, _as_int(workflow["activity_tail_limit"], cfg.activity_tail_limit))
    server = data.get("server")
    if isinstance(server, dict):
        if server.get("host"):
            cfg.host = str(server["host"])
        if "port" in server:
            cfg.port = _as_int(server["port"], cfg.port)
        if "seed_sample_data" in server:
            cfg.seed_sample_data = _as_bool(server["seed_sample_data"], cfg.seed_sample_data)
    sync = data.get("sync")
    if isinstance(sync, dict) and sync.get("api_base_url"):
        cfg.api_base_url = str(sync["api_base_url"])
    return cfg


def apply_env_overrides(cfg: TrackerConfig, environ: Optional[Mapping[str, str]] = None) -> TrackerConfig:
    """Apply ``DEV_TRACKER_*`` (and the legacy ``PORT``) environment overrides."""
    env = os.environ if environ is None else environ
    port = env.get("DEV_TRACKER_PORT") or env.get("PORT")
    if port:
        cfg.port = _as_int(port, cfg.port)
    if env.get("DEV_TRACKER_API_URL"):
        cfg.api_base_url = env["DEV_TRACKER_API_URL"]
    if env.get("DEV_TRACKER_ANIMATION_DURATION"):
        cfg.animation_duration = _as_seconds(env["DEV_TRACKER_ANIMATION_DURATION"], cfg.animation_duration)
    if env.get("DEV_TRACKER_UNDO_TIMEOUT"):
        cfg.undo_timeout = _as_seconds(env["DEV_TRACKER_UNDO_TIMEOUT"], cfg.undo_timeout)
    if env.get("DEV_TRACKER_SEED"):
        cfg.seed_sample_data = _as_bool(env["DEV_TRACKER_SEED"], cfg.seed_sample_data)
    return cfg


def load_tracker_config(
    project_dir: Path,
    environ: Optional[Mapping[str, str]] = None,
) -> tuple[TrackerConfig, str | None]:
    """Load the optional tracker config file and environment overrides.

    Args:
        project_dir: Directory holding the `.dev_tracker/` state directory.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        A tuple of `(config, error_message)`. A missing file yields defaults and no error;
        an unreadable file yields defaults plus the error text.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    cfg = config_from_mapping({} if err else data)
    return apply_env_overrides(cfg, environ), err
