"""Task workflow engine for the developer tracker.

Slots move Empty -> Filled -> Fading -> (Empty | promoted), with a single
time-limited Undo Record for the last completion.
"""

from .clock import AsyncioScheduler, ManualScheduler, Scheduler
from .engine import QuickAssignResult, TrackerEvent, WorkflowEngine
from .model import (
    ActivityLogEntry,
    BacklogItem,
    ChatMessage,
    Developer,
    LogType,
    Priority,
    SlotField,
    SlotState,
    TrackerState,
    UndoRecord,
)

__all__ = [
    "ActivityLogEntry",
    "AsyncioScheduler",
    "BacklogItem",
    "ChatMessage",
    "Developer",
    "LogType",
    "ManualScheduler",
    "Priority",
    "QuickAssignResult",
    "Scheduler",
    "SlotField",
    "SlotState",
    "TrackerEvent",
    "TrackerState",
    "UndoRecord",
    "WorkflowEngine",
]
