from __future__ import annotations

import asyncio

from dev_tracker.workflow.clock import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    def test_fires_in_due_order(self) -> None:
        clock = ManualScheduler()
        fired: list[str] = []
        clock.call_later(2.0, lambda: fired.append("late"))
        clock.call_later(1.0, lambda: fired.append("early"))
        clock.call_later(1.0, lambda: fired.append("early-second"))

        assert clock.advance(0.5) == 0
        assert clock.advance(1.5) == 3
        assert fired == ["early", "early-second", "late"]
        assert clock.now() == 2.0

    def test_cancelled_timer_never_fires(self) -> None:
        clock = ManualScheduler()
        fired: list[int] = []
        handle = clock.call_later(1.0, lambda: fired.append(1))
        handle.cancel()

        assert clock.pending() == 0
        assert clock.advance(5.0) == 0
        assert fired == []

    def test_nested_timers_fire_within_window(self) -> None:
        clock = ManualScheduler(start=10.0)
        seen: list[float] = []

        def _first() -> None:
            seen.append(clock.now())
            clock.call_later(1.0, lambda: seen.append(clock.now()))

        clock.call_later(1.0, _first)
        assert clock.advance(3.0) == 2
        assert seen == [11.0, 12.0]
        assert clock.now() == 13.0

    def test_run_all(self) -> None:
        clock = ManualScheduler()
        fired: list[int] = []
        clock.call_later(0.5, lambda: clock.call_later(5.0, lambda: fired.append(2)))
        clock.call_later(0.1, lambda: fired.append(1))

        assert clock.run_all() == 3
        assert fired == [1, 2]
        assert clock.now() == 5.5
        assert clock.pending() == 0


class TestAsyncioScheduler:
    def test_callback_runs_on_loop(self) -> None:
        async def _run() -> list[str]:
            scheduler = AsyncioScheduler()
            done = asyncio.Event()
            seen: list[str] = []

            def _callback() -> None:
                seen.append("fired")
                done.set()

            start = scheduler.now()
            scheduler.call_later(0.01, _callback)
            await asyncio.wait_for(done.wait(), timeout=2)
            assert scheduler.now() >= start
            return seen

        assert asyncio.run(_run()) == ["fired"]

    def test_failing_callback_is_contained(self) -> None:
        async def _run() -> bool:
            scheduler = AsyncioScheduler()
            done = asyncio.Event()

            def _boom() -> None:
                raise RuntimeError("boom")

            scheduler.call_later(0, _boom)
            scheduler.call_later(0.01, done.set)
            await asyncio.wait_for(done.wait(), timeout=2)
            return True

        assert asyncio.run(_run()) is True

    def test_cancel(self) -> None:
        async def _run() -> list[int]:
            scheduler = AsyncioScheduler()
            fired: list[int] = []
            handle = scheduler.call_later(0.01, lambda: fired.append(1))
            handle.cancel()
            await asyncio.sleep(0.05)
            return fired

        assert asyncio.run(_run()) == []
