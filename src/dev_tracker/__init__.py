"""Provide the public `dev_tracker` package exports."""

from __future__ import annotations

from .workflow import SlotField, TrackerState, WorkflowEngine

__all__ = ["SlotField", "TrackerState", "WorkflowEngine"]
