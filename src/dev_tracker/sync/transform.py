"""Map between the engine's camelCase records and the REST persistence shape.

The persistence shape uses snake_case columns (``quick_fix``,
``primary_task``, ``estimated_hours`` ...).  Missing slot columns read back
as empty strings.
"""

from __future__ import annotations

from typing import Any

from ..utils import coerce_hours


def developer_from_db(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "avatar": row.get("avatar"),
        "done": row.get("done"),
        "quickFix": row.get("quick_fix") or "",
        "primary": row.get("primary_task") or "",
        "secondary": row.get("secondary_task") or "",
        "status": row.get("status"),
    }


def developer_to_db(developer: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": developer.get("name"),
        "avatar": developer.get("avatar"),
        "done": developer.get("done"),
        "quick_fix": developer.get("quickFix"),
        "primary_task": developer.get("primary"),
        "secondary_task": developer.get("secondary"),
        "status": developer.get("status"),
    }


def backlog_from_db(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "task": row.get("task"),
        "priority": row.get("priority"),
        "estimatedHours": coerce_hours(row.get("estimated_hours")),
    }


def backlog_to_db(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "task": item.get("task"),
        "priority": item.get("priority"),
        "estimated_hours": item.get("estimatedHours"),
    }


def activity_from_db(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "date": row.get("date"),
        "name": row.get("name"),
        "taskType": row.get("task_type"),
        "taskName": row.get("task_name"),
        "type": row.get("type"),
    }


def activity_to_db(entry: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": entry.get("name"),
        "task_type": entry.get("taskType"),
        "task_name": entry.get("taskName"),
        "type": entry.get("type"),
    }


def chat_from_db(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "who": row.get("who"),
        "msg": row.get("msg"),
        "timestamp": row.get("timestamp"),
        "customer": row.get("customer"),
    }


def chat_to_db(message: dict[str, Any]) -> dict[str, Any]:
    return {
        "chat_key": message.get("chatKey"),
        "who": message.get("who"),
        "msg": message.get("msg"),
        "customer": message.get("customer"),
    }
