"""Tests for the `dev-tracker` command line (cli.py)."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from dev_tracker import cli
from dev_tracker.cli import main
from dev_tracker.config import TrackerConfig
from dev_tracker.storage import TrackerStore
from dev_tracker.sync import TrackerApiClient


def _run(project_dir: Path, capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, str]:
    capsys.readouterr()
    code = main(["--project-dir", str(project_dir), *argv])
    return code, capsys.readouterr().out


def test_developers_list_seeds_sample_roster(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out = _run(tmp_path, capsys, "developers", "list", "--json")
    assert code == 0
    names = [d["name"] for d in json.loads(out)["developers"]]
    assert names == ["Jane", "Mike", "Sara", "Liam"]


def test_developers_table(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out = _run(tmp_path, capsys, "developers", "list", "--filter", "busy")
    assert code == 0
    assert "Sara" in out
    assert "Jane" not in out


def test_complete_settles_and_persists(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out = _run(tmp_path, capsys, "complete", "1", "primary")
    assert code == 0
    dev = json.loads(out)["developer"]
    assert (dev["primary"], dev["secondary"], dev["done"]) == ("Optimize DB", "", 8)

    state = TrackerStore(tmp_path / ".dev_tracker").load()
    assert state is not None
    assert state.developers[0].primary == "Optimize DB"

    code, out = _run(tmp_path, capsys, "log", "--json")
    entries = json.loads(out)["activity"]
    assert entries[0]["taskName"] == "Refactor Auth"
    assert entries[0]["type"] == "completion"


def test_complete_rejects_bad_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--project-dir", str(tmp_path), "complete", "1", "tertiary"]) == 1
    assert main(["--project-dir", str(tmp_path), "complete", "99", "primary"]) == 1


def test_backlog_commands(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out = _run(tmp_path, capsys, "backlog", "add", "Cache warmup", "--priority", "high", "--hours", "abc")
    assert code == 0
    item = json.loads(out)["item"]
    assert (item["id"], item["priority"], item["estimatedHours"]) == (5, "high", 0)

    code, _ = _run(tmp_path, capsys, "backlog", "remove", "5")
    assert code == 0
    code, _ = _run(tmp_path, capsys, "backlog", "remove", "5")
    assert code == 1

    code, out = _run(tmp_path, capsys, "backlog", "list", "--json")
    assert [b["id"] for b in json.loads(out)["backlog"]] == [1, 2, 3, 4]


def test_assign_and_edit(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out = _run(tmp_path, capsys, "developers", "add", "Priya")
    assert code == 0
    new_id = json.loads(out)["developer"]["id"]

    code, out = _run(tmp_path, capsys, "assign", "Triage alerts", "--to", "priya")
    assert json.loads(out)["field"] == "quickFix"

    code, out = _run(tmp_path, capsys, "edit", str(new_id), "primary", "User search")
    assert code == 0
    assert json.loads(out)["developer"]["primary"] == "User search"

    code, out = _run(tmp_path, capsys, "backlog", "list", "--json")
    assert "User search" not in [b["task"] for b in json.loads(out)["backlog"]]


def test_no_command_prints_help(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--project-dir", str(tmp_path)]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_log_limit_defaults_to_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    state_dir = tmp_path / ".dev_tracker"
    state_dir.mkdir()
    (state_dir / "config.yaml").write_text("workflow:\n  activity_tail_limit: 1\n", encoding="utf-8")
    _run(tmp_path, capsys, "backlog", "add", "Cache warmup")
    _run(tmp_path, capsys, "backlog", "add", "Rotate keys")

    code, out = _run(tmp_path, capsys, "log", "--json")
    assert code == 0
    entries = json.loads(out)["activity"]
    assert [e["taskName"] for e in entries] == ["Rotate keys"]

    code, out = _run(tmp_path, capsys, "log", "--limit", "5", "--json")
    assert len(json.loads(out)["activity"]) == 2


# ---------------------------------------------------------------------------
# REST sync
# ---------------------------------------------------------------------------

def _fake_remote(monkeypatch: pytest.MonkeyPatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def _make_client(config: TrackerConfig) -> TrackerApiClient:
        return TrackerApiClient(config.api_base_url, transport=httpx.MockTransport(_record))

    monkeypatch.setattr(cli, "_make_client", _make_client)
    return seen


def _accept(request: httpx.Request) -> httpx.Response:
    if request.method == "POST":
        return httpx.Response(201, json={"id": 900})
    return httpx.Response(200, json={})


def test_remote_flag_pushes_changes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = _fake_remote(monkeypatch, _accept)

    code, _ = _run(tmp_path, capsys, "backlog", "add", "Local only")
    assert code == 0
    assert seen == []

    code, _ = _run(
        tmp_path, capsys, "--remote", "--api-url", "http://remote.test/api", "complete", "1", "primary"
    )
    assert code == 0
    assert {r.url.host for r in seen} == {"remote.test"}
    assert [(r.method, r.url.path) for r in seen] == [
        ("POST", "/api/activity-log"),
        ("PUT", "/api/developers/1"),
    ]
    assert json.loads(seen[1].content)["primary_task"] == "Optimize DB"


def test_remote_failure_keeps_local_change(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    _fake_remote(monkeypatch, lambda request: httpx.Response(503))

    code, out = _run(tmp_path, capsys, "--remote", "backlog", "add", "Cache warmup")
    assert code == 0
    assert json.loads(out)["item"]["task"] == "Cache warmup"
    state = TrackerStore(tmp_path / ".dev_tracker").load()
    assert state is not None
    assert state.backlog[-1].task == "Cache warmup"


def _remote_board(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/developers":
        return httpx.Response(200, json=[{
            "id": 7, "name": "Ana", "avatar": "", "done": 3,
            "quick_fix": "", "primary_task": "Billing export", "secondary_task": "",
            "status": "busy",
        }])
    if path == "/api/backlog":
        return httpx.Response(200, json=[])
    if path == "/api/activity-log":
        return httpx.Response(200, json=[{
            "id": 1, "date": "2026-01-01T00:00:00+00:00", "name": "System",
            "task_type": "developer", "task_name": "Ana", "type": "system",
        }])
    return httpx.Response(404)


def test_sync_pull_replaces_local_state(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = _fake_remote(monkeypatch, _remote_board)
    _run(tmp_path, capsys, "backlog", "add", "Local only")

    code, out = _run(tmp_path, capsys, "sync", "pull")
    assert code == 0
    assert json.loads(out) == {"developers": 1, "backlog": 0, "activity": 1}
    assert all(r.method == "GET" for r in seen)

    code, out = _run(tmp_path, capsys, "developers", "list", "--json")
    developers = json.loads(out)["developers"]
    assert [(d["id"], d["name"], d["primary"]) for d in developers] == [(7, "Ana", "Billing export")]
    code, out = _run(tmp_path, capsys, "backlog", "list", "--json")
    assert json.loads(out)["backlog"] == []


def test_sync_pull_failure_leaves_local_state(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    _fake_remote(monkeypatch, lambda request: httpx.Response(503))
    _run(tmp_path, capsys, "backlog", "add", "Keep me")

    assert main(["--project-dir", str(tmp_path), "sync", "pull"]) == 1
    state = TrackerStore(tmp_path / ".dev_tracker").load()
    assert state is not None
    assert [d.name for d in state.developers] == ["Jane", "Mike", "Sara", "Liam"]
    assert state.backlog[-1].task == "Keep me"
