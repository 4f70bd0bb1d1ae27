"""Data model for the developer task tracker.

Developers carry three task slots (quick fix, primary, secondary); the
backlog, activity log and chat threads live next to them in a single
:class:`TrackerState`.  Every record serializes to the camelCase shape the
presentation layer consumes; the snake_case persistence shape is handled by
:mod:`dev_tracker.sync.transform`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..constants import SAMPLE_BACKLOG, SAMPLE_DEVELOPERS
from ..utils import _now_iso, coerce_hours


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SlotField(str, Enum):
    """The three task slots every developer owns, in assignment order."""

    QUICK_FIX = "quickFix"
    PRIMARY = "primary"
    SECONDARY = "secondary"

    @property
    def attr(self) -> str:
        return _SLOT_ATTRS[self]

    @classmethod
    def parse(cls, raw: Any) -> "SlotField":
        """Resolve a slot from its wire name, attribute name or persistence column."""
        if isinstance(raw, cls):
            return raw
        key = str(raw).strip()
        slot = _SLOT_ALIASES.get(key) or _SLOT_ALIASES.get(key.lower())
        if slot is None:
            raise ValueError(f"Unknown slot field '{raw}'; expected one of {[s.value for s in cls]}")
        return slot


_SLOT_ATTRS = {
    SlotField.QUICK_FIX: "quick_fix",
    SlotField.PRIMARY: "primary",
    SlotField.SECONDARY: "secondary",
}

_SLOT_ALIASES = {
    "quickFix": SlotField.QUICK_FIX,
    "quickfix": SlotField.QUICK_FIX,
    "quick_fix": SlotField.QUICK_FIX,
    "primary": SlotField.PRIMARY,
    "primary_task": SlotField.PRIMARY,
    "secondary": SlotField.SECONDARY,
    "secondary_task": SlotField.SECONDARY,
}


class SlotState(str, Enum):
    """Observable state of a single slot."""

    EMPTY = "empty"
    FILLED = "filled"
    FADING = "fading"


class DeveloperStatus(str, Enum):
    """Known roster statuses.  Other values are stored verbatim."""

    ACTIVE = "active"
    BUSY = "busy"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def coerce(cls, raw: Any) -> "Priority":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.MEDIUM


class LogType(str, Enum):
    """Category tag of an activity log entry."""

    COMPLETION = "completion"
    SYSTEM = "system"
    BACKLOG = "backlog"
    ASSIGNMENT = "assignment"

    @classmethod
    def coerce(cls, raw: Any) -> "LogType":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.SYSTEM


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Developer:
    """A roster member and their three task slots."""

    id: int
    name: str = ""
    avatar: str = ""
    done: int = 0
    quick_fix: str = ""
    primary: str = ""
    secondary: str = ""
    status: str = DeveloperStatus.ACTIVE.value

    def get_slot(self, slot: SlotField) -> str:
        return getattr(self, slot.attr)

    def set_slot(self, slot: SlotField, text: str) -> None:
        setattr(self, slot.attr, text)

    def first_empty_slot(self) -> Optional[SlotField]:
        for slot in SlotField:
            if not self.get_slot(slot):
                return slot
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "done": self.done,
            "quickFix": self.quick_fix,
            "primary": self.primary,
            "secondary": self.secondary,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Developer":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or ""),
            avatar=str(data.get("avatar") or ""),
            done=max(0, int(data.get("done") or 0)),
            quick_fix=str(data.get("quickFix") or ""),
            primary=str(data.get("primary") or ""),
            secondary=str(data.get("secondary") or ""),
            status=str(data.get("status") or DeveloperStatus.ACTIVE.value),
        )


@dataclass
class BacklogItem:
    id: int
    task: str = ""
    priority: Priority = Priority.MEDIUM
    estimated_hours: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task": self.task,
            "priority": self.priority.value,
            "estimatedHours": self.estimated_hours,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacklogItem":
        return cls(
            id=int(data.get("id") or 0),
            task=str(data.get("task") or ""),
            priority=Priority.coerce(data.get("priority")),
            estimated_hours=coerce_hours(data.get("estimatedHours")),
        )


@dataclass(frozen=True)
class ActivityLogEntry:
    """An immutable line of the activity feed."""

    id: int
    date: str
    name: str
    task_type: str
    task_name: str
    type: LogType = LogType.COMPLETION

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "name": self.name,
            "taskType": self.task_type,
            "taskName": self.task_name,
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityLogEntry":
        return cls(
            id=int(data.get("id") or 0),
            date=str(data.get("date") or _now_iso()),
            name=str(data.get("name") or ""),
            task_type=str(data.get("taskType") or ""),
            task_name=str(data.get("taskName") or ""),
            type=LogType.coerce(data.get("type")),
        )


@dataclass(frozen=True)
class ChatMessage:
    id: int
    who: str
    msg: str
    timestamp: str
    customer: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "who": self.who,
            "msg": self.msg,
            "timestamp": self.timestamp,
            "customer": self.customer,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            id=int(data.get("id") or 0),
            who=str(data.get("who") or ""),
            msg=str(data.get("msg") or ""),
            timestamp=str(data.get("timestamp") or _now_iso()),
            customer=str(data.get("customer") or ""),
        )


@dataclass(frozen=True)
class UndoRecord:
    """The single redeemable completion: which slot, and the text it held."""

    developer_id: int
    field: SlotField
    task_name: str
    expires_at: float

    def remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    def to_dict(self, now: Optional[float] = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "developerId": self.developer_id,
            "field": self.field.value,
            "taskName": self.task_name,
        }
        if now is not None:
            data["remainingSeconds"] = round(self.remaining(now), 3)
        return data


# ---------------------------------------------------------------------------
# Chat keys
# ---------------------------------------------------------------------------

BACKLOG_CHAT_PREFIX = "backlog-"


def chat_key_for_slot(developer_id: int, slot: SlotField) -> str:
    return f"{developer_id}-{slot.value}"


def chat_key_for_backlog(backlog_id: int) -> str:
    return f"{BACKLOG_CHAT_PREFIX}{backlog_id}"


def parse_chat_key(chat_key: str) -> tuple[str, int, Optional[SlotField]]:
    """Split a chat key into ``(kind, id, slot)``.

    ``kind`` is ``"backlog"`` or ``"slot"``.  Raises ``ValueError`` for keys
    that match neither form.
    """
    key = chat_key.strip()
    if key.startswith(BACKLOG_CHAT_PREFIX):
        return "backlog", int(key[len(BACKLOG_CHAT_PREFIX):]), None
    dev_part, sep, slot_part = key.partition("-")
    if not sep:
        raise ValueError(f"Malformed chat key '{chat_key}'")
    return "slot", int(dev_part), SlotField.parse(slot_part)


# ---------------------------------------------------------------------------
# Aggregate state
# ---------------------------------------------------------------------------

@dataclass
class TrackerState:
    """Everything the workflow engine owns, minus transient timers."""

    developers: list[Developer] = field(default_factory=list)
    backlog: list[BacklogItem] = field(default_factory=list)
    activity_log: list[ActivityLogEntry] = field(default_factory=list)
    chats: dict[str, list[ChatMessage]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "developers": [d.to_dict() for d in self.developers],
            "backlog": [b.to_dict() for b in self.backlog],
            "activity_log": [e.to_dict() for e in self.activity_log],
            "chats": {key: [m.to_dict() for m in msgs] for key, msgs in self.chats.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerState":
        chats_raw = data.get("chats") or {}
        chats: dict[str, list[ChatMessage]] = {}
        if isinstance(chats_raw, dict):
            for key, msgs in chats_raw.items():
                if isinstance(msgs, list):
                    chats[str(key)] = [ChatMessage.from_dict(m) for m in msgs if isinstance(m, dict)]
        return cls(
            developers=[Developer.from_dict(d) for d in list(data.get("developers") or []) if isinstance(d, dict)],
            backlog=[BacklogItem.from_dict(b) for b in list(data.get("backlog") or []) if isinstance(b, dict)],
            activity_log=[
                ActivityLogEntry.from_dict(e) for e in list(data.get("activity_log") or []) if isinstance(e, dict)
            ],
            chats=chats,
        )


def default_state() -> TrackerState:
    """Sample roster and backlog used to seed an empty tracker."""
    return TrackerState(
        developers=[Developer.from_dict(d) for d in SAMPLE_DEVELOPERS],
        backlog=[BacklogItem.from_dict(b) for b in SAMPLE_BACKLOG],
    )
