"""Provide utility helpers for timestamps and loose numeric input."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # If a naive timestamp slips in, assume UTC to avoid crashes.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def coerce_hours(value: Any) -> int:
    """Parse an hours estimate the way a lenient form field would.

    Integers pass through, a leading integer is taken from strings
    (``"3h"`` -> 3, ``"4.5"`` -> 4), and anything else becomes 0.
    Negative estimates are clamped to 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, int(value))
    if value is None:
        return 0
    match = _LEADING_INT_RE.match(str(value))
    if not match:
        return 0
    return max(0, int(match.group(1)))
