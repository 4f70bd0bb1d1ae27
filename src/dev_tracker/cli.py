from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import TrackerConfig, load_tracker_config
from .constants import STATE_DIR_NAME
from .server.api import build_engine, create_app
from .storage import TrackerStore
from .sync import ApiError, TrackerApiClient, pull_state
from .workflow.clock import ManualScheduler
from .workflow.engine import WorkflowEngine
from .workflow.model import SlotField

console = Console()


def _configure_logging(level: str = "WARNING") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _load_config(project_dir: Path, api_url: Optional[str] = None) -> TrackerConfig:
    config, err = load_tracker_config(project_dir)
    if err:
        logger.warning("Using default config: {}", err)
    if api_url:
        config.api_base_url = api_url
    return config


def _make_client(config: TrackerConfig) -> TrackerApiClient:
    return TrackerApiClient(config.api_base_url)


def _ctx(args: argparse.Namespace) -> tuple[WorkflowEngine, ManualScheduler]:
    """Open the project's tracker with a manual clock; every change is saved.

    With ``--remote`` every change is also pushed to the configured REST API.
    """
    project_dir = _resolve_project_dir(args.project_dir)
    config = _load_config(project_dir, args.api_url)
    if args.remote:
        args.api_client = _make_client(config)
    scheduler = ManualScheduler()
    engine, _ = build_engine(project_dir, config, scheduler, api_client=args.api_client)
    return engine, scheduler


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _parse_slot(raw: str) -> Optional[SlotField]:
    try:
        return SlotField.parse(raw)
    except ValueError as exc:
        sys.stderr.write(str(exc) + "\n")
        return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _developers_list(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    developers = engine.filter_developers(args.filter, args.search or "")
    if args.json:
        _emit_json({"developers": [d.to_dict() for d in developers]})
        return 0
    table = Table(title="Developers")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Done", justify="right")
    table.add_column("Quick fix")
    table.add_column("Primary")
    table.add_column("Secondary")
    for dev in developers:
        status_style = "yellow" if dev.status == "busy" else "green"
        table.add_row(
            str(dev.id),
            dev.name,
            f"[{status_style}]{dev.status}[/{status_style}]",
            str(dev.done),
            dev.quick_fix or "[dim]-[/dim]",
            dev.primary or "[dim]-[/dim]",
            dev.secondary or "[dim]-[/dim]",
        )
    console.print(table)
    return 0


def _developers_add(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    dev = engine.add_developer(args.name, avatar=args.avatar, status=args.status)
    if dev is None:
        sys.stderr.write("Developer name is required\n")
        return 1
    _emit_json({"developer": dev.to_dict()})
    return 0


def _backlog_list(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    items = engine.state.backlog
    if args.json:
        _emit_json({"backlog": [b.to_dict() for b in items]})
        return 0
    table = Table(title="Backlog")
    table.add_column("ID", justify="right")
    table.add_column("Task")
    table.add_column("Priority")
    table.add_column("Hours", justify="right")
    colors = {"high": "red", "medium": "yellow", "low": "green"}
    for item in items:
        color = colors.get(item.priority.value, "white")
        table.add_row(
            str(item.id),
            item.task,
            f"[{color}]{item.priority.value}[/{color}]",
            str(item.estimated_hours),
        )
    console.print(table)
    return 0


def _backlog_add(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    item = engine.add_backlog_item(args.task, args.priority, args.hours)
    if item is None:
        sys.stderr.write("Backlog task is required\n")
        return 1
    _emit_json({"item": item.to_dict()})
    return 0


def _backlog_remove(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    removed = engine.remove_backlog_item(args.backlog_id)
    _emit_json({"removed": removed, "backlog_id": args.backlog_id})
    return 0 if removed else 1


def _assign(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    result = engine.quick_assign(args.task, args.priority, args.hours, args.to or "")
    if result is None:
        sys.stderr.write("Task text is required\n")
        return 1
    _emit_json(result.to_dict())
    return 0


def _edit(args: argparse.Namespace) -> int:
    slot = _parse_slot(args.field)
    if slot is None:
        return 1
    engine, _ = _ctx(args)
    dev = engine.edit_slot(args.developer_id, slot, args.text.strip())
    if dev is None:
        sys.stderr.write(f"Developer {args.developer_id} not found\n")
        return 1
    _emit_json({"developer": dev.to_dict()})
    return 0


def _complete(args: argparse.Namespace) -> int:
    slot = _parse_slot(args.field)
    if slot is None:
        return 1
    engine, scheduler = _ctx(args)
    if not engine.complete(args.developer_id, slot):
        sys.stderr.write(f"Nothing to complete in {args.developer_id}/{slot.value}\n")
        return 1
    # Let the fade settle; the undo window cannot outlive this process.
    scheduler.advance(engine.animation_duration)
    dev = engine.get_developer(args.developer_id)
    _emit_json({"developer": dev.to_dict() if dev else None})
    return 0


def _log(args: argparse.Namespace) -> int:
    engine, _ = _ctx(args)
    limit = args.limit
    if limit is None:
        limit = _load_config(_resolve_project_dir(args.project_dir)).activity_tail_limit
    entries = engine.activity_tail(limit)
    if args.json:
        _emit_json({"activity": [e.to_dict() for e in entries]})
        return 0
    table = Table(title="Activity")
    table.add_column("When")
    table.add_column("Who")
    table.add_column("Type")
    table.add_column("What")
    for entry in entries:
        table.add_row(entry.date, entry.name, entry.type.value, f"{entry.task_type}: {entry.task_name}")
    console.print(table)
    return 0


def _sync_pull(args: argparse.Namespace) -> int:
    """Replace the local roster, backlog and activity log with the remote copy."""
    project_dir = _resolve_project_dir(args.project_dir)
    config = _load_config(project_dir, args.api_url)
    with _make_client(config) as client:
        try:
            remote = pull_state(client)
        except ApiError as exc:
            sys.stderr.write(f"Pull from {config.api_base_url} failed: {exc}\n")
            return 1

    store = TrackerStore(project_dir / STATE_DIR_NAME)
    with store.transaction() as state:
        state.developers = remote.developers
        state.backlog = remote.backlog
        state.activity_log = remote.activity_log
    logger.info("Pulled tracker state from {}", config.api_base_url)
    _emit_json({
        "developers": len(remote.developers),
        "backlog": len(remote.backlog),
        "activity": len(remote.activity_log),
    })
    return 0


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'dev-tracker[server]'\n")
        return 1

    project_dir = _resolve_project_dir(args.project_dir)
    config = _load_config(project_dir)
    host = args.host or config.host
    port = args.port or config.port
    app = create_app(project_dir=project_dir, config=config)
    logger.info("Serving dev tracker on {}:{}", host, port)
    uvicorn.run(app, host=host, port=port)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dev Tracker - team task slots, backlog and activity feed")
    parser.add_argument("--project-dir", default=None, help="Project directory (default: current directory)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--remote",
        action="store_true",
        help="Also push every change to the REST API (sync.api_base_url)",
    )
    parser.add_argument("--api-url", default=None, help="Override the REST API base URL")
    subparsers = parser.add_subparsers(dest="command")

    server = subparsers.add_parser("server", help="Start the web server")
    server.add_argument("--host", default=None)
    server.add_argument("--port", type=int, default=None)
    server.set_defaults(func=_server)

    developers = subparsers.add_parser("developers", help="Manage the roster")
    dev_sub = developers.add_subparsers(dest="developers_command")
    dlist = dev_sub.add_parser("list", help="List developers")
    dlist.add_argument("--filter", default="all", choices=["all", "active", "busy"])
    dlist.add_argument("--search", default="")
    dlist.add_argument("--json", action="store_true")
    dlist.set_defaults(func=_developers_list)
    dadd = dev_sub.add_parser("add", help="Add a developer")
    dadd.add_argument("name")
    dadd.add_argument("--avatar", default=None)
    dadd.add_argument("--status", default="active")
    dadd.set_defaults(func=_developers_add)

    backlog = subparsers.add_parser("backlog", help="Manage the backlog")
    backlog_sub = backlog.add_subparsers(dest="backlog_command")
    blist = backlog_sub.add_parser("list", help="List backlog items")
    blist.add_argument("--json", action="store_true")
    blist.set_defaults(func=_backlog_list)
    badd = backlog_sub.add_parser("add", help="Add a backlog item")
    badd.add_argument("task")
    badd.add_argument("--priority", default="medium", choices=["low", "medium", "high"])
    badd.add_argument("--hours", default="0")
    badd.set_defaults(func=_backlog_add)
    bremove = backlog_sub.add_parser("remove", help="Remove a backlog item")
    bremove.add_argument("backlog_id", type=int)
    bremove.set_defaults(func=_backlog_remove)

    assign = subparsers.add_parser("assign", help="Quick-assign a task to a developer or the backlog")
    assign.add_argument("task")
    assign.add_argument("--to", default="", help="Case-insensitive fragment of the developer's name")
    assign.add_argument("--priority", default="medium", choices=["low", "medium", "high"])
    assign.add_argument("--hours", default="0")
    assign.set_defaults(func=_assign)

    edit = subparsers.add_parser("edit", help="Overwrite a developer's task slot")
    edit.add_argument("developer_id", type=int)
    edit.add_argument("field", help="quickFix, primary or secondary")
    edit.add_argument("text")
    edit.set_defaults(func=_edit)

    complete = subparsers.add_parser("complete", help="Complete a developer's task slot")
    complete.add_argument("developer_id", type=int)
    complete.add_argument("field", help="quickFix, primary or secondary")
    complete.set_defaults(func=_complete)

    log = subparsers.add_parser("log", help="Show the activity feed")
    log.add_argument("--limit", type=int, default=None, help="Entries to show (default: workflow.activity_tail_limit)")
    log.add_argument("--json", action="store_true")
    log.set_defaults(func=_log)

    sync = subparsers.add_parser("sync", help="Exchange state with the REST API")
    sync_sub = sync.add_subparsers(dest="sync_command")
    pull = sync_sub.add_parser("pull", help="Replace local developers, backlog and activity with the remote copy")
    pull.set_defaults(func=_sync_pull)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    args.api_client = None
    try:
        return int(handler(args) or 0)
    finally:
        if args.api_client is not None:
            args.api_client.close()


if __name__ == "__main__":
    raise SystemExit(main())
