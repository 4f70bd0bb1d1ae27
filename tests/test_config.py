from __future__ import annotations

from pathlib import Path

import yaml

from dev_tracker.config import TrackerConfig, config_from_mapping, load_tracker_config


def _write_config(project_dir: Path, data: object) -> None:
    state_dir = project_dir / ".dev_tracker"
    state_dir.mkdir(parents=True, exist_ok=True)
    (state_dir / "config.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    cfg, err = load_tracker_config(tmp_path, environ={})
    assert err is None
    assert cfg == TrackerConfig()
    assert cfg.port == 5000
    assert cfg.animation_duration == 0.5
    assert cfg.undo_timeout == 5.0
    assert cfg.api_base_url == "http://localhost:5000/api"


def test_file_values_are_applied(tmp_path: Path) -> None:
    _write_config(tmp_path, {
        "workflow": {"animation_duration": 0.2, "undo_timeout": "8", "activity_tail_limit": 5},
        "server": {"host": "0.0.0.0", "port": 8080, "seed_sample_data": "no"},
        "sync": {"api_base_url": "http://tracker.internal/api"},
    })
    cfg, err = load_tracker_config(tmp_path, environ={})
    assert err is None
    assert cfg.animation_duration == 0.2
    assert cfg.undo_timeout == 8.0
    assert cfg.activity_tail_limit == 5
    assert (cfg.host, cfg.port) == ("0.0.0.0", 8080)
    assert cfg.seed_sample_data is False
    assert cfg.api_base_url == "http://tracker.internal/api"


def test_env_overrides_file(tmp_path: Path) -> None:
    _write_config(tmp_path, {"server": {"port": 8080}})
    cfg, _ = load_tracker_config(
        tmp_path,
        environ={"PORT": "9000", "DEV_TRACKER_UNDO_TIMEOUT": "2.5", "DEV_TRACKER_SEED": "false"},
    )
    assert cfg.port == 9000
    assert cfg.undo_timeout == 2.5
    assert cfg.seed_sample_data is False

    cfg, _ = load_tracker_config(tmp_path, environ={"PORT": "9000", "DEV_TRACKER_PORT": "7000"})
    assert cfg.port == 7000


def test_bad_values_fall_back(tmp_path: Path) -> None:
    cfg = config_from_mapping({
        "workflow": {"animation_duration": "soon", "undo_timeout": -3},
        "server": {"port": "http"},
        "sync": "not-a-mapping",
    })
    assert cfg.animation_duration == 0.5
    assert cfg.undo_timeout == 0.0
    assert cfg.port == 5000


def test_unreadable_file_reports_error(tmp_path: Path) -> None:
    state_dir = tmp_path / ".dev_tracker"
    state_dir.mkdir()
    (state_dir / "config.yaml").write_text("workflow: [unterminated", encoding="utf-8")

    cfg, err = load_tracker_config(tmp_path, environ={})
    assert err is not None
    assert "YAMLError" in err
    assert cfg == TrackerConfig()
