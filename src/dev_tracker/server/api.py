"""FastAPI web server for the developer task tracker."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..config import TrackerConfig, load_tracker_config
from ..constants import STATE_DIR_NAME
from ..storage import TrackerStore, attach_store
from ..sync import RemoteSync, TrackerApiClient
from ..sync.transform import activity_to_db, backlog_to_db, chat_to_db, developer_to_db
from ..workflow.clock import AsyncioScheduler, Scheduler
from ..workflow.engine import WorkflowEngine
from ..workflow.model import (
    ActivityLogEntry,
    BacklogItem,
    ChatMessage,
    Developer,
    SlotField,
    TrackerState,
    default_state,
)
from .events import EventHub
from .models import (
    ActivityCreate,
    BacklogCreate,
    ChatCreate,
    DeveloperCreate,
    DeveloperUpdate,
    QuickAssignRequest,
    SlotEditRequest,
)


# ---------------------------------------------------------------------------
# Persistence-shape rows
# ---------------------------------------------------------------------------

def _developer_row(dev: Developer) -> dict[str, Any]:
    return {"id": dev.id, **developer_to_db(dev.to_dict())}


def _backlog_row(item: BacklogItem) -> dict[str, Any]:
    return {"id": item.id, **backlog_to_db(item.to_dict())}


def _activity_row(entry: ActivityLogEntry) -> dict[str, Any]:
    return {"id": entry.id, "date": entry.date, **activity_to_db(entry.to_dict())}


def _chat_row(chat_key: str, message: ChatMessage) -> dict[str, Any]:
    row = chat_to_db({**message.to_dict(), "chatKey": chat_key})
    return {"id": message.id, "timestamp": message.timestamp, **row}


def _parse_slot(raw: str) -> SlotField:
    try:
        return SlotField.parse(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def build_engine(
    project_dir: Path,
    config: TrackerConfig,
    scheduler: Optional[Scheduler] = None,
    api_client: Optional[TrackerApiClient] = None,
) -> tuple[WorkflowEngine, TrackerStore]:
    """Load (or seed) tracker state and wire an engine that persists every change.

    With *api_client* every change is also mirrored to that REST API.
    """
    store = TrackerStore(project_dir / STATE_DIR_NAME)
    state = store.load()
    if state is None:
        state = default_state() if config.seed_sample_data else TrackerState()
        logger.info("Starting with a fresh tracker (seeded={})", config.seed_sample_data)
    else:
        logger.info(
            "Loaded tracker state: {} developers, {} backlog items",
            len(state.developers),
            len(state.backlog),
        )
    engine = WorkflowEngine(
        state,
        scheduler or AsyncioScheduler(),
        animation_duration=config.animation_duration,
        undo_timeout=config.undo_timeout,
    )
    attach_store(engine, store)
    if api_client is not None:
        RemoteSync(engine, api_client).start()
        logger.info("Mirroring tracker changes to {}", api_client.base_url)
    return engine, store


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    scheduler: Optional[Scheduler] = None,
    config: Optional[TrackerConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Directory holding `.dev_tracker/` (defaults to the cwd).
        enable_cors: Whether to enable permissive CORS.
        scheduler: Timer source for fades and undo expiry (event loop by default).
        config: Explicit config; loaded from the project directory when omitted.

    Returns:
        Configured FastAPI app.
    """
    project_dir = (project_dir or Path.cwd()).resolve()
    if config is None:
        config, err = load_tracker_config(project_dir)
        if err:
            logger.warning("Using default config: {}", err)

    engine, store = build_engine(project_dir, config, scheduler)
    hub = EventHub()
    engine.subscribe(hub.publish_sync)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hub.attach_loop(asyncio.get_running_loop())
        yield
        engine.close()

    app = FastAPI(
        title="Dev Tracker",
        description="Team task tracker: developer slots, backlog, activity feed and chat threads",
        version="1.0.0",
        lifespan=lifespan,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    app.state.engine = engine
    app.state.store = store
    app.state.hub = hub
    app.state.config = config
    tail_limit = config.activity_tail_limit

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "message": "Dev tracker backend is running"}

    # ------------------------------------------------------------------
    # Developers
    # ------------------------------------------------------------------

    @app.get("/api/developers")
    async def list_developers() -> list[dict[str, Any]]:
        return [_developer_row(d) for d in engine.state.developers]

    @app.post("/api/developers", status_code=201)
    async def create_developer(body: DeveloperCreate) -> dict[str, Any]:
        dev = engine.add_developer(
            body.name, avatar=body.avatar, status=body.status, log_activity=False
        )
        if dev is None:
            raise HTTPException(status_code=400, detail="Developer name is required")
        extra = {
            "done": body.done or None,
            "quick_fix": body.quick_fix or None,
            "primary_task": body.primary_task or None,
            "secondary_task": body.secondary_task or None,
        }
        if any(v is not None for v in extra.values()):
            engine.update_developer(dev.id, extra)
        return _developer_row(dev)

    @app.put("/api/developers/{developer_id}")
    async def update_developer(developer_id: int, body: DeveloperUpdate) -> dict[str, Any]:
        dev = engine.update_developer(developer_id, body.model_dump())
        if dev is None:
            raise HTTPException(status_code=404, detail=f"Developer {developer_id} not found")
        return _developer_row(dev)

    # ------------------------------------------------------------------
    # Slot workflow
    # ------------------------------------------------------------------

    @app.post("/api/developers/{developer_id}/slots/{field}/complete")
    async def complete_slot(developer_id: int, field: str) -> dict[str, Any]:
        slot = _parse_slot(field)
        if engine.get_developer(developer_id) is None:
            raise HTTPException(status_code=404, detail=f"Developer {developer_id} not found")
        accepted = engine.complete(developer_id, slot)
        return {
            "accepted": accepted,
            "state": engine.slot_state(developer_id, slot).value,
            "settlesIn": engine.animation_duration if accepted else None,
        }

    @app.put("/api/developers/{developer_id}/slots/{field}")
    async def edit_slot(developer_id: int, field: str, body: SlotEditRequest) -> dict[str, Any]:
        slot = _parse_slot(field)
        if engine.get_developer(developer_id) is None:
            raise HTTPException(status_code=404, detail=f"Developer {developer_id} not found")
        dev = engine.edit_slot(developer_id, slot, body.text.strip())
        current = engine.get_developer(developer_id)
        return {"accepted": dev is not None, "developer": current.to_dict() if current else None}

    @app.get("/api/undo")
    async def get_undo() -> dict[str, Any]:
        record = engine.undo_record
        return {"undo": record.to_dict(engine.scheduler.now()) if record else None}

    @app.post("/api/undo")
    async def undo() -> dict[str, Any]:
        record = engine.undo()
        if record is None:
            return {"accepted": False, "undo": None, "developer": None}
        dev = engine.get_developer(record.developer_id)
        return {
            "accepted": True,
            "undo": record.to_dict(),
            "developer": dev.to_dict() if dev else None,
        }

    @app.post("/api/quick-assign")
    async def quick_assign(body: QuickAssignRequest) -> dict[str, Any]:
        result = engine.quick_assign(body.task, body.priority, body.hours, body.assign_to)
        if result is None:
            raise HTTPException(status_code=400, detail="Task text is required")
        return result.to_dict()

    @app.get("/api/board")
    async def board(
        status_filter: str = Query("all", alias="filter", pattern="^(all|active|busy)$"),
        search: str = Query(""),
    ) -> dict[str, Any]:
        return engine.snapshot(status=status_filter, search=search, tail=tail_limit)

    # ------------------------------------------------------------------
    # Backlog
    # ------------------------------------------------------------------

    @app.get("/api/backlog")
    async def list_backlog() -> list[dict[str, Any]]:
        return [_backlog_row(b) for b in engine.state.backlog]

    @app.post("/api/backlog", status_code=201)
    async def create_backlog_item(body: BacklogCreate) -> dict[str, Any]:
        item = engine.add_backlog_item(
            body.task, body.priority, body.estimated_hours, log_activity=False
        )
        if item is None:
            raise HTTPException(status_code=400, detail="Backlog task is required")
        return _backlog_row(item)

    @app.delete("/api/backlog/{backlog_id}", status_code=204)
    async def delete_backlog_item(backlog_id: int) -> Response:
        if not engine.remove_backlog_item(backlog_id):
            raise HTTPException(status_code=404, detail=f"Backlog item {backlog_id} not found")
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Activity log & chat threads
    # ------------------------------------------------------------------

    @app.get("/api/activity-log")
    async def list_activity_log() -> list[dict[str, Any]]:
        return [_activity_row(e) for e in engine.activity_by_date()]

    @app.post("/api/activity-log", status_code=201)
    async def create_activity_entry(body: ActivityCreate) -> dict[str, Any]:
        entry = engine.append_log(body.name, body.task_type, body.task_name, body.type)
        return _activity_row(entry)

    @app.get("/api/chat-threads/{chat_key}")
    async def get_chat_thread(chat_key: str) -> list[dict[str, Any]]:
        return [_chat_row(chat_key, m) for m in engine.chat_thread(chat_key)]

    @app.post("/api/chat-threads", status_code=201)
    async def create_chat_message(body: ChatCreate) -> dict[str, Any]:
        if not body.msg.strip():
            raise HTTPException(status_code=400, detail="Message text is required")
        message = engine.add_chat_message(
            body.chat_key,
            body.msg,
            body.customer,
            who=body.who,
            prefix_customer=False,
        )
        if message is None:
            raise HTTPException(status_code=404, detail=f"Chat target {body.chat_key} not found")
        return _chat_row(body.chat_key, message)

    @app.websocket("/ws/events")
    async def event_stream(websocket: WebSocket) -> None:
        await hub.handle_connection(websocket, snapshot=lambda: engine.snapshot(tail=tail_limit))

    return app
