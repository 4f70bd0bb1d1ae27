from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from ..workflow.engine import TrackerEvent


class EventHub:
    """Fan engine events out to connected websocket clients.

    Engine callbacks may fire on the event loop (timers, request handlers) or
    on a foreign thread; :meth:`publish_sync` routes both onto the attached loop.
    """

    def __init__(self) -> None:
        self._clients: dict[int, WebSocket] = {}
        self._counter = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._loop = loop

    async def handle_connection(
        self,
        websocket: WebSocket,
        snapshot: Optional[Callable[[], dict[str, Any]]] = None,
    ) -> None:
        # Remember the active event loop so background threads can publish safely.
        self.attach_loop(asyncio.get_running_loop())
        await websocket.accept()
        cid = id(websocket)
        self._clients[cid] = websocket
        logger.debug("Event stream connected: clients={}", len(self._clients))
        try:
            hello: dict[str, Any] = {"type": "connected", "payload": {}}
            if snapshot is not None:
                hello["payload"] = {"board": snapshot()}
            await websocket.send_text(json.dumps(hello))
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                action = message.get("action") if isinstance(message, dict) else None
                if action == "ping":
                    await websocket.send_text(json.dumps({"type": "pong", "payload": {}}))
                elif action == "snapshot" and snapshot is not None:
                    await websocket.send_text(json.dumps({"type": "board", "payload": snapshot()}))
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.pop(cid, None)
            logger.debug("Event stream disconnected: clients={}", len(self._clients))

    async def publish(self, event: dict[str, Any]) -> None:
        self._counter += 1
        payload = json.dumps({**event, "seq": self._counter})
        stale: list[int] = []
        for cid, ws in list(self._clients.items()):
            try:
                await ws.send_text(payload)
            except Exception as exc:
                logger.debug("Dropping event stream client {}: {}", cid, exc)
                stale.append(cid)
        for cid in stale:
            self._clients.pop(cid, None)

    def publish_sync(self, event: TrackerEvent) -> None:
        if not self._clients:
            return
        data = event.to_dict()
        with self._lock:
            loop = self._loop
        if loop and loop.is_running():
            asyncio.run_coroutine_threadsafe(self.publish(data), loop)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; dropping event {}", event.type)
            return
        self.attach_loop(loop)
        loop.create_task(self.publish(data))
