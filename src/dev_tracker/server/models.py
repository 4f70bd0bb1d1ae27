"""Pydantic request models for the tracker API (snake_case persistence shape)."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel

Hours = Union[int, float, str, None]


class DeveloperCreate(BaseModel):
    name: str
    avatar: Optional[str] = None
    done: int = 0
    quick_fix: str = ""
    primary_task: str = ""
    secondary_task: str = ""
    status: str = "active"


class DeveloperUpdate(BaseModel):
    """Fields left out (or null) keep their stored value."""

    name: Optional[str] = None
    avatar: Optional[str] = None
    done: Optional[int] = None
    quick_fix: Optional[str] = None
    primary_task: Optional[str] = None
    secondary_task: Optional[str] = None
    status: Optional[str] = None


class BacklogCreate(BaseModel):
    task: str
    priority: str = "medium"
    estimated_hours: Hours = 0


class ActivityCreate(BaseModel):
    name: str
    task_type: str = ""
    task_name: str = ""
    type: str = "completion"


class ChatCreate(BaseModel):
    chat_key: str
    who: str = "Me"
    msg: str
    customer: str = ""


class SlotEditRequest(BaseModel):
    text: str = ""


class QuickAssignRequest(BaseModel):
    task: str
    priority: str = "medium"
    hours: Hours = 0
    assign_to: str = ""
