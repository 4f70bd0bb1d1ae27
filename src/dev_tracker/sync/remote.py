"""Optimistic mirroring of engine events to the REST persistence API."""

from __future__ import annotations

from typing import Any, Callable, Optional

from loguru import logger

from ..workflow.engine import TrackerEvent, WorkflowEngine
from ..workflow.model import ActivityLogEntry, BacklogItem, Developer, TrackerState
from .client import ApiError, TrackerApiClient
from .transform import (
    activity_from_db,
    activity_to_db,
    backlog_from_db,
    backlog_to_db,
    chat_to_db,
    developer_from_db,
    developer_to_db,
)


def pull_state(client: TrackerApiClient) -> TrackerState:
    """Build a :class:`TrackerState` from the remote roster, backlog and log.

    Chat threads are fetched lazily per key, so they are not part of the pull.
    """
    developers = [Developer.from_dict(developer_from_db(row)) for row in client.list_developers()]
    backlog = [BacklogItem.from_dict(backlog_from_db(row)) for row in client.list_backlog()]
    entries = [ActivityLogEntry.from_dict(activity_from_db(row)) for row in client.list_activity_log()]
    entries.sort(key=lambda e: e.id)
    return TrackerState(developers=developers, backlog=backlog, activity_log=entries)


class RemoteSync:
    """Push every local change to the remote store.

    Local state is authoritative: a failed push is logged and dropped, never
    rolled back.  Records created locally are mapped to the ids the remote
    assigns so later updates and deletes hit the right rows; when the create
    itself failed, later pushes for that record are skipped.
    """

    def __init__(self, engine: WorkflowEngine, client: TrackerApiClient) -> None:
        self.engine = engine
        self.client = client
        self.failures = 0
        self._developer_ids: dict[int, int] = {}
        self._backlog_ids: dict[int, int] = {}
        # Local records whose create push failed; the remote has no row for them.
        self._unsynced_developers: set[int] = set()
        self._unsynced_backlog: set[int] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "developer.created": self._on_developer_created,
            "developer.updated": self._on_developer_changed,
            "slot.completed": self._on_developer_changed,
            "slot.restored": self._on_developer_changed,
            "backlog.created": self._on_backlog_created,
            "backlog.removed": self._on_backlog_removed,
            "activity.appended": self._on_activity,
            "chat.appended": self._on_chat,
        }

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.engine.subscribe(self.handle)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: TrackerEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            return
        try:
            handler(event.payload)
        except ApiError as exc:
            self.failures += 1
            logger.error("Remote sync of {} failed: {}", event.type, exc)

    # -- handlers -------------------------------------------------------

    def _on_developer_created(self, payload: dict[str, Any]) -> None:
        developer = payload["developer"]
        self._unsynced_developers.add(developer["id"])
        created = self.client.create_developer(developer_to_db(developer))
        self._unsynced_developers.discard(developer["id"])
        if isinstance(created, dict) and created.get("id") is not None:
            self._developer_ids[developer["id"]] = int(created["id"])

    def _on_developer_changed(self, payload: dict[str, Any]) -> None:
        developer = payload["developer"]
        if developer["id"] in self._unsynced_developers:
            logger.warning("Skipping remote update of developer {}: it was never created remotely", developer["id"])
            return
        remote_id = self._developer_ids.get(developer["id"], developer["id"])
        self.client.update_developer(remote_id, developer_to_db(developer))

    def _on_backlog_created(self, payload: dict[str, Any]) -> None:
        item = payload["item"]
        self._unsynced_backlog.add(item["id"])
        created = self.client.create_backlog_item(backlog_to_db(item))
        self._unsynced_backlog.discard(item["id"])
        if isinstance(created, dict) and created.get("id") is not None:
            self._backlog_ids[item["id"]] = int(created["id"])

    def _on_backlog_removed(self, payload: dict[str, Any]) -> None:
        item = payload["item"]
        if item["id"] in self._unsynced_backlog:
            self._unsynced_backlog.discard(item["id"])
            logger.warning("Skipping remote delete of backlog item {}: it was never created remotely", item["id"])
            return
        remote_id = self._backlog_ids.pop(item["id"], item["id"])
        self.client.delete_backlog_item(remote_id)

    def _on_activity(self, payload: dict[str, Any]) -> None:
        self.client.create_activity_entry(activity_to_db(payload["entry"]))

    def _on_chat(self, payload: dict[str, Any]) -> None:
        message = dict(payload["message"], chatKey=payload["chatKey"])
        self.client.create_chat_message(chat_to_db(message))
