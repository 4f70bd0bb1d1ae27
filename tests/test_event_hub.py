from __future__ import annotations

import asyncio
import json
import threading

from dev_tracker.server.events import EventHub
from dev_tracker.workflow.engine import TrackerEvent


class _FakeSocket:
    def __init__(self, done: asyncio.Event | None = None, fail: bool = False) -> None:
        self.sent: list[dict[str, object]] = []
        self.done = done
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))
        if self.done is not None:
            self.done.set()


def test_publish_sync_from_background_thread_uses_attached_loop() -> None:
    async def _run() -> None:
        hub = EventHub()
        done = asyncio.Event()
        socket = _FakeSocket(done)
        hub._clients[1] = socket  # type: ignore[assignment]
        hub.attach_loop(asyncio.get_running_loop())

        event = TrackerEvent("undo.expired", {"developerId": 1, "field": "primary"})
        worker = threading.Thread(target=lambda: hub.publish_sync(event))
        worker.start()
        worker.join(timeout=2)

        await asyncio.wait_for(done.wait(), timeout=2)
        assert socket.sent == [
            {"type": "undo.expired", "payload": {"developerId": 1, "field": "primary"}, "seq": 1},
        ]

    asyncio.run(_run())


def test_publish_drops_failing_clients() -> None:
    async def _run() -> None:
        hub = EventHub()
        good = _FakeSocket()
        hub._clients[1] = good  # type: ignore[assignment]
        hub._clients[2] = _FakeSocket(fail=True)  # type: ignore[assignment]

        await hub.publish({"type": "backlog.created", "payload": {}})
        await hub.publish({"type": "backlog.removed", "payload": {}})

        assert hub.client_count == 1
        assert [m["seq"] for m in good.sent] == [1, 2]

    asyncio.run(_run())


def test_publish_sync_without_clients_is_noop() -> None:
    hub = EventHub()
    hub.publish_sync(TrackerEvent("slot.fading", {}))
    assert hub.client_count == 0
