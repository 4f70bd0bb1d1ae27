"""Delayed-callback schedulers used by the workflow engine.

The engine never sleeps.  It asks a :class:`Scheduler` to run a callback
later and keeps the returned handle so the callback can be cancelled.
:class:`ManualScheduler` drives time explicitly (tests, the CLI) and
:class:`AsyncioScheduler` hands callbacks to the running event loop (server).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Port for single-shot delayed callbacks measured in seconds."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


# ---------------------------------------------------------------------------
# Manual (virtual) clock
# ---------------------------------------------------------------------------

@dataclass
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock: callbacks only fire inside :meth:`advance`.

    Timers due at the same instant fire in scheduling order.  A callback
    that schedules further timers sees them fire within the same
    ``advance`` call when they fall inside the advanced window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._timers: list[_ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(due=self._now + max(0.0, float(delay)), seq=next(self._seq), callback=callback)
        self._timers.append(timer)
        return timer

    def pending(self) -> int:
        """Number of scheduled, uncancelled timers."""
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order.  Returns how many fired."""
        target = self._now + max(0.0, float(seconds))
        fired = 0
        while True:
            timer = self._next_due(target)
            if timer is None:
                break
            self._timers.remove(timer)
            self._now = max(self._now, timer.due)
            fired += 1
            timer.callback()
        self._now = target
        self._timers = [t for t in self._timers if not t.cancelled]
        return fired

    def run_all(self) -> int:
        """Advance exactly far enough to fire every pending timer."""
        fired = 0
        while True:
            live = [t for t in self._timers if not t.cancelled]
            if not live:
                return fired
            fired += self.advance(max(t.due for t in live) - self._now)

    def _next_due(self, target: float) -> Optional[_ManualTimer]:
        due = [t for t in self._timers if not t.cancelled and t.due <= target]
        if not due:
            return None
        return min(due, key=lambda t: (t.due, t.seq))


# ---------------------------------------------------------------------------
# asyncio-backed clock
# ---------------------------------------------------------------------------

class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop.

    When no loop is given, the loop running at the time of each call is used,
    so the scheduler can be created before the server starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _resolve_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._resolve_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._resolve_loop().call_later(max(0.0, float(delay)), self._guard(callback))

    @staticmethod
    def _guard(callback: Callable[[], None]) -> Callable[[], None]:
        def _run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")

        return _run
