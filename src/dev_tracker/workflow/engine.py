"""Workflow engine: task slots, completion fades, promotion and undo.

This is the single entry-point for mutating tracker state.  It owns the
roster, backlog, activity log and chat threads, plus two kinds of transient
timers handed to a :class:`~dev_tracker.workflow.clock.Scheduler`:

* one fade timer per slot that is mid-completion (the slot is *Fading*), and
* at most one expiry timer for the current :class:`UndoRecord`.

Precondition and lookup failures are silent no-ops: operations return
``False`` / ``None`` instead of raising.  Subscribers receive a
:class:`TrackerEvent` after every state change.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..constants import (
    ACTIVITY_TAIL_LIMIT,
    ANIMATION_DURATION,
    BACKLOG_ACTOR,
    CHAT_AUTHOR,
    QUICK_ADD_ACTOR,
    SYSTEM_ACTOR,
    UNDO_TIMEOUT,
)
from ..utils import _now_iso, _parse_iso, coerce_hours
from .clock import ManualScheduler, Scheduler, TimerHandle
from .model import (
    ActivityLogEntry,
    BacklogItem,
    ChatMessage,
    Developer,
    DeveloperStatus,
    LogType,
    Priority,
    SlotField,
    SlotState,
    TrackerState,
    UndoRecord,
    parse_chat_key,
)

logger = logging.getLogger(__name__)

SlotKey = tuple[int, SlotField]
Listener = Callable[["TrackerEvent"], None]

_DEVELOPER_FIELDS = {"name", "avatar", "done", "status"}


@dataclass(frozen=True)
class TrackerEvent:
    """A state change, published to subscribers after it is applied."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


@dataclass(frozen=True)
class QuickAssignResult:
    """Where a quick-added task ended up."""

    target: str  # "developer" or "backlog"
    task: str
    developer_id: Optional[int] = None
    field: Optional[SlotField] = None
    backlog_item: Optional[BacklogItem] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "task": self.task,
            "developerId": self.developer_id,
            "field": self.field.value if self.field else None,
            "backlogItem": self.backlog_item.to_dict() if self.backlog_item else None,
        }


class WorkflowEngine:
    """Own the tracker state and drive every slot transition.

    Parameters
    ----------
    state:
        Initial state (an empty tracker when omitted).
    scheduler:
        Source of delayed callbacks.  Defaults to a :class:`ManualScheduler`,
        which only advances when told to.
    animation_duration / undo_timeout:
        Fade length and Undo Record lifetime, in scheduler seconds.
    timestamp:
        Produces the display timestamp stamped on log entries and chat messages.
    """

    def __init__(
        self,
        state: Optional[TrackerState] = None,
        scheduler: Optional[Scheduler] = None,
        *,
        animation_duration: float = ANIMATION_DURATION,
        undo_timeout: float = UNDO_TIMEOUT,
        timestamp: Callable[[], str] = _now_iso,
    ) -> None:
        self.state = state or TrackerState()
        self.scheduler: Scheduler = scheduler or ManualScheduler()
        self.animation_duration = animation_duration
        self.undo_timeout = undo_timeout
        self._timestamp = timestamp
        self._lock = threading.RLock()
        self._fading: dict[SlotKey, TimerHandle] = {}
        self._undo: Optional[UndoRecord] = None
        self._undo_timer: Optional[TimerHandle] = None
        self._listeners: list[Listener] = []
        self._next_log_id = max((e.id for e in self.state.activity_log), default=0) + 1
        self._next_chat_id = max(
            (m.id for msgs in self.state.chats.values() for m in msgs),
            default=0,
        ) + 1

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event_type: str, **payload: Any) -> None:
        event = TrackerEvent(event_type, payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Tracker listener failed on %s", event_type)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _find_developer(self, developer_id: int) -> Optional[Developer]:
        for dev in self.state.developers:
            if dev.id == developer_id:
                return dev
        return None

    def _find_backlog_item(self, backlog_id: int) -> Optional[BacklogItem]:
        for item in self.state.backlog:
            if item.id == backlog_id:
                return item
        return None

    def get_developer(self, developer_id: int) -> Optional[Developer]:
        return self._find_developer(developer_id)

    def get_backlog_item(self, backlog_id: int) -> Optional[BacklogItem]:
        return self._find_backlog_item(backlog_id)

    def is_fading(self, developer_id: int, slot: SlotField) -> bool:
        return (developer_id, slot) in self._fading

    def slot_state(self, developer_id: int, slot: SlotField) -> Optional[SlotState]:
        dev = self._find_developer(developer_id)
        if dev is None:
            return None
        if self.is_fading(developer_id, slot):
            return SlotState.FADING
        return SlotState.FILLED if dev.get_slot(slot) else SlotState.EMPTY

    @property
    def undo_record(self) -> Optional[UndoRecord]:
        return self._undo

    # ------------------------------------------------------------------
    # Completion / promotion / undo
    # ------------------------------------------------------------------

    def complete(self, developer_id: int, slot: SlotField) -> bool:
        """Start the fade for a filled slot.  The slot settles after ``animation_duration``.

        Returns ``False`` (and changes nothing) for unknown developers, empty
        slots, and slots that are already Fading.
        """
        with self._lock:
            dev = self._find_developer(developer_id)
            if dev is None:
                logger.debug("complete ignored: developer %s not found", developer_id)
                return False
            task_name = dev.get_slot(slot)
            if not task_name:
                logger.debug("complete ignored: %s/%s is empty", developer_id, slot.value)
                return False
            key = (developer_id, slot)
            if key in self._fading:
                logger.debug("complete ignored: %s/%s already fading", developer_id, slot.value)
                return False

            self._fading[key] = self.scheduler.call_later(
                self.animation_duration,
                lambda: self._settle(developer_id, slot, task_name),
            )
            self._emit("slot.fading", developerId=developer_id, field=slot.value, taskName=task_name)
            return True

    def _settle(self, developer_id: int, slot: SlotField, task_name: str) -> None:
        with self._lock:
            self._fading.pop((developer_id, slot), None)
            dev = self._find_developer(developer_id)
            if dev is None:
                return

            dev.done += 1
            if slot is SlotField.PRIMARY:
                # A Fading secondary is locked until its own settle clears it.
                if (developer_id, SlotField.SECONDARY) in self._fading:
                    dev.primary = ""
                else:
                    dev.primary = dev.secondary
                    dev.secondary = ""
            else:
                dev.set_slot(slot, "")

            entry = self._append_log(dev.name, slot.value, task_name, LogType.COMPLETION)
            self._replace_undo(UndoRecord(
                developer_id=developer_id,
                field=slot,
                task_name=task_name,
                expires_at=self.scheduler.now() + self.undo_timeout,
            ))
            logger.info("Completed %s/%s: %s (done=%d)", developer_id, slot.value, task_name, dev.done)
            self._emit(
                "slot.completed",
                developer=dev.to_dict(),
                field=slot.value,
                taskName=task_name,
                entry=entry.to_dict(),
            )

    def _replace_undo(self, record: UndoRecord) -> None:
        self._cancel_undo_timer()
        self._undo = record
        self._undo_timer = self.scheduler.call_later(self.undo_timeout, lambda: self._expire_undo(record))

    def _cancel_undo_timer(self) -> None:
        if self._undo_timer is not None:
            self._undo_timer.cancel()
            self._undo_timer = None

    def _expire_undo(self, record: UndoRecord) -> None:
        with self._lock:
            # A replaced record's timer must never clear its successor.
            if self._undo is not record:
                return
            self._undo = None
            self._undo_timer = None
            logger.info("Undo window closed for %s/%s", record.developer_id, record.field.value)
            self._emit("undo.expired", developerId=record.developer_id, field=record.field.value)

    def undo(self) -> Optional[UndoRecord]:
        """Reverse the most recent completion while its window is open.

        The recorded slot is overwritten with the pre-completion text and
        ``done`` drops by one (never below 0).  A primary completion's
        promotion is *not* reversed: the promoted text is overwritten and the
        secondary slot stays empty.  If the slot was refilled and is Fading
        again, that fade is cancelled and the refilled text is dropped.
        """
        with self._lock:
            record = self._undo
            if record is None:
                logger.debug("undo ignored: nothing to undo")
                return None
            self._cancel_undo_timer()
            self._undo = None

            key = (record.developer_id, record.field)
            pending = self._fading.pop(key, None)
            if pending is not None:
                pending.cancel()

            dev = self._find_developer(record.developer_id)
            if dev is None:
                return record
            dev.set_slot(record.field, record.task_name)
            dev.done = max(0, dev.done - 1)
            logger.info("Undid %s/%s: %s", record.developer_id, record.field.value, record.task_name)
            self._emit("slot.restored", developer=dev.to_dict(), field=record.field.value, taskName=record.task_name)
            return record

    # ------------------------------------------------------------------
    # Slot edits & assignment
    # ------------------------------------------------------------------

    def edit_slot(self, developer_id: int, slot: SlotField, text: str) -> Optional[Developer]:
        """Overwrite a slot's text; claims a backlog item whose task matches exactly.

        Returns the developer, or ``None`` when the developer is unknown or the
        slot is Fading.
        """
        with self._lock:
            if self.is_fading(developer_id, slot):
                logger.debug("edit ignored: %s/%s is fading", developer_id, slot.value)
                return None
            dev = self._find_developer(developer_id)
            if dev is None:
                return None
            dev.set_slot(slot, text)
            self._emit("developer.updated", developer=dev.to_dict())
            if text:
                claimed = next((b for b in self.state.backlog if b.task == text), None)
                if claimed is not None:
                    self._remove_backlog(claimed, reason="claimed")
            return dev

    def quick_assign(
        self,
        task: str,
        priority: Any = Priority.MEDIUM,
        hours: Any = 0,
        assignee: str = "",
    ) -> Optional[QuickAssignResult]:
        """Put a new task on the first developer whose name contains *assignee*.

        The task lands in the first empty slot (quick fix, primary, secondary);
        when all three are filled it overwrites the secondary slot.  Without a
        matching developer the task goes to the backlog instead.

        A Fading secondary is overwritten as well, so its pending settle
        clears the new task without logging it.
        """
        text = (task or "").strip()
        if not text:
            return None
        with self._lock:
            dev = None
            if assignee:
                needle = assignee.lower()
                dev = next((d for d in self.state.developers if needle in d.name.lower()), None)

            if dev is None:
                item = self._create_backlog_item(text, priority, hours, actor=QUICK_ADD_ACTOR)
                return QuickAssignResult(target="backlog", task=text, backlog_item=item)

            slot = dev.first_empty_slot() or SlotField.SECONDARY
            dev.set_slot(slot, text)
            self._append_log(QUICK_ADD_ACTOR, "assigned", f'"{text}" to {dev.name}', LogType.ASSIGNMENT)
            logger.info("Assigned %r to %s (%s)", text, dev.name, slot.value)
            self._emit("developer.updated", developer=dev.to_dict())
            return QuickAssignResult(target="developer", task=text, developer_id=dev.id, field=slot)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def add_developer(
        self,
        name: str,
        *,
        avatar: Optional[str] = None,
        status: str = DeveloperStatus.ACTIVE.value,
        log_activity: bool = True,
    ) -> Optional[Developer]:
        """Append a developer with empty slots and ``done=0``.

        The persistence API passes ``log_activity=False``: its writes are plain
        record storage and must not add feed entries of their own.
        """
        clean = (name or "").strip()
        if not clean:
            return None
        with self._lock:
            new_id = max((d.id for d in self.state.developers), default=0) + 1
            dev = Developer(
                id=new_id,
                name=clean,
                avatar=avatar or f"https://i.pravatar.cc/40?u={int(time.time() * 1000)}",
                status=status or DeveloperStatus.ACTIVE.value,
            )
            self.state.developers.append(dev)
            if log_activity:
                self._append_log(SYSTEM_ACTOR, "developer", f"Added {clean}", LogType.SYSTEM)
            logger.info("Added developer %s (%s)", new_id, clean)
            self._emit("developer.created", developer=dev.to_dict())
            return dev

    def update_developer(self, developer_id: int, changes: dict[str, Any]) -> Optional[Developer]:
        """Overwrite developer fields wholesale (sync/persistence path).

        Slot keys may use any :meth:`SlotField.parse` spelling.  Slots that are
        currently Fading keep their text; ``done`` is floored at 0.
        """
        with self._lock:
            dev = self._find_developer(developer_id)
            if dev is None:
                return None
            for key, value in changes.items():
                if value is None:
                    continue
                if key in _DEVELOPER_FIELDS:
                    if key == "done":
                        dev.done = max(0, int(value))
                    else:
                        setattr(dev, key, str(value))
                    continue
                try:
                    slot = SlotField.parse(key)
                except ValueError:
                    continue
                if not self.is_fading(developer_id, slot):
                    dev.set_slot(slot, str(value))
            self._emit("developer.updated", developer=dev.to_dict())
            return dev

    def filter_developers(self, status: str = "all", search: str = "") -> list[Developer]:
        """Roster view: optional status filter plus case-insensitive name search."""
        needle = (search or "").lower()
        out: list[Developer] = []
        for dev in self.state.developers:
            if status and status != "all" and dev.status != status:
                continue
            if needle and needle not in dev.name.lower():
                continue
            out.append(dev)
        return out

    def roster(self, status: str = "all", search: str = "") -> list[dict[str, Any]]:
        """Developers with per-slot Fading flags, ready for rendering."""
        rows = []
        for dev in self.filter_developers(status, search):
            row = dev.to_dict()
            row["fading"] = {slot.value: self.is_fading(dev.id, slot) for slot in SlotField}
            rows.append(row)
        return rows

    # ------------------------------------------------------------------
    # Backlog
    # ------------------------------------------------------------------

    def add_backlog_item(
        self,
        task: str,
        priority: Any = Priority.MEDIUM,
        hours: Any = 0,
        *,
        log_activity: bool = True,
    ) -> Optional[BacklogItem]:
        """Append a backlog item; non-numeric *hours* become 0."""
        text = (task or "").strip()
        if not text:
            return None
        with self._lock:
            return self._create_backlog_item(
                text, priority, hours, actor=BACKLOG_ACTOR if log_activity else None
            )

    def _create_backlog_item(self, text: str, priority: Any, hours: Any, *, actor: Optional[str]) -> BacklogItem:
        new_id = max((b.id for b in self.state.backlog), default=0) + 1
        item = BacklogItem(
            id=new_id,
            task=text,
            priority=Priority.coerce(priority),
            estimated_hours=coerce_hours(hours),
        )
        self.state.backlog.append(item)
        if actor:
            self._append_log(actor, "added", item.task, LogType.BACKLOG)
        logger.info("Backlog item %s added: %s", item.id, item.task)
        self._emit("backlog.created", item=item.to_dict())
        return item

    def remove_backlog_item(self, backlog_id: int) -> bool:
        with self._lock:
            item = self._find_backlog_item(backlog_id)
            if item is None:
                return False
            self._remove_backlog(item, reason="deleted")
            return True

    def _remove_backlog(self, item: BacklogItem, *, reason: str) -> None:
        self.state.backlog = [b for b in self.state.backlog if b.id != item.id]
        logger.info("Backlog item %s %s", item.id, reason)
        self._emit("backlog.removed", item=item.to_dict(), reason=reason)

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def append_log(
        self,
        name: str,
        task_type: str,
        task_name: str,
        log_type: Any = LogType.COMPLETION,
    ) -> ActivityLogEntry:
        """Append an arbitrary entry (used by the persistence API)."""
        with self._lock:
            return self._append_log(name, task_type, task_name, LogType.coerce(log_type))

    def _append_log(self, name: str, task_type: str, task_name: str, log_type: LogType) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            id=self._next_log_id,
            date=self._timestamp(),
            name=name,
            task_type=task_type,
            task_name=task_name,
            type=log_type,
        )
        self._next_log_id += 1
        self.state.activity_log.append(entry)
        self._emit("activity.appended", entry=entry.to_dict())
        return entry

    def activity_tail(self, limit: int = ACTIVITY_TAIL_LIMIT) -> list[ActivityLogEntry]:
        """The last *limit* entries, most recent first."""
        if limit <= 0:
            return []
        return list(reversed(self.state.activity_log[-limit:]))

    def activity_by_date(self) -> list[ActivityLogEntry]:
        """Whole log ordered by timestamp, newest first (id breaks ties)."""
        def _key(entry: ActivityLogEntry) -> tuple[float, int]:
            parsed = _parse_iso(entry.date)
            return (parsed.timestamp() if parsed else 0.0, entry.id)

        return sorted(self.state.activity_log, key=_key, reverse=True)

    # ------------------------------------------------------------------
    # Chat threads
    # ------------------------------------------------------------------

    def chat_title(self, chat_key: str) -> str:
        """Task text a chat thread is about, or ``""`` if the target is gone."""
        try:
            kind, target_id, slot = parse_chat_key(chat_key)
        except ValueError:
            return ""
        if kind == "backlog":
            item = self._find_backlog_item(target_id)
            return item.task if item else ""
        dev = self._find_developer(target_id)
        return dev.get_slot(slot) if dev and slot else ""

    def chat_thread(self, chat_key: str) -> list[ChatMessage]:
        return list(self.state.chats.get(chat_key, []))

    def add_chat_message(
        self,
        chat_key: str,
        msg: str,
        customer: str = "",
        who: str = CHAT_AUTHOR,
        *,
        prefix_customer: bool = True,
    ) -> Optional[ChatMessage]:
        """Add a note to a slot or backlog thread.

        A customer name prefixes the stored text with ``[Customer: <name>]``
        unless *prefix_customer* is off (messages replayed from the store).
        Notes for empty slots or missing targets are ignored.
        """
        note = (msg or "").strip()
        customer = (customer or "").strip()
        with self._lock:
            if not note or not self.chat_title(chat_key):
                return None
            text = f"[Customer: {customer}] {note}" if customer and prefix_customer else note
            message = ChatMessage(
                id=self._next_chat_id,
                who=who or CHAT_AUTHOR,
                msg=text,
                timestamp=self._timestamp(),
                customer=customer,
            )
            self._next_chat_id += 1
            self.state.chats.setdefault(chat_key, []).append(message)
            self._emit("chat.appended", chatKey=chat_key, message=message.to_dict())
            return message

    # ------------------------------------------------------------------
    # Snapshots & shutdown
    # ------------------------------------------------------------------

    def snapshot(self, *, status: str = "all", search: str = "", tail: int = ACTIVITY_TAIL_LIMIT) -> dict[str, Any]:
        """Read-only view for presentation: roster, undo toast, activity tail."""
        with self._lock:
            undo = self._undo.to_dict(self.scheduler.now()) if self._undo else None
            return {
                "developers": self.roster(status, search),
                "backlog": [b.to_dict() for b in self.state.backlog],
                "undo": undo,
                "activity": [e.to_dict() for e in self.activity_tail(tail)],
            }

    def close(self) -> None:
        """Cancel every pending timer; Fading slots stay as they are."""
        with self._lock:
            for handle in self._fading.values():
                handle.cancel()
            self._fading.clear()
            self._cancel_undo_timer()
            self._undo = None
