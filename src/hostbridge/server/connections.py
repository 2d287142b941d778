"""Fan-out of progress events to WebSocket subscribers.

Upload and provisioning callbacks run synchronously inside route handlers,
so they hand events to :meth:`ConnectionManager.publish`, which schedules
delivery on the running loop.  A subscriber whose socket fails a send is
dropped from its topic.

Dependencies: server/models
Wired in: server/app.py → create_app(), server/routes.py
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect

from hostbridge.server.models import WSOutgoing

_log = logging.getLogger(__name__)

EVENTS_TOPIC = "events"

_SEND_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


class ConnectionManager:
    """Per-topic subscriber sets with best-effort delivery."""

    def __init__(self) -> None:
        self._topics: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, topic: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._topics.setdefault(topic, set()).add(websocket)
        _log.info("Subscriber joined %s (%d total)", topic, self.client_count(topic))

    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._drop(topic, [websocket])
        _log.info("Subscriber left %s", topic)

    def _drop(self, topic: str, sockets: list[WebSocket]) -> None:
        # Caller holds the lock.
        members = self._topics.get(topic)
        if members is None:
            return
        members.difference_update(sockets)
        if not members:
            del self._topics[topic]

    async def _deliver(self, websocket: WebSocket, payload: str) -> bool:
        try:
            await websocket.send_text(payload)
        except _SEND_ERRORS as exc:
            _log.debug("Send failed: %s", exc)
            return False
        return True

    async def broadcast(self, topic: str, message: WSOutgoing) -> None:
        """Send *message* to every subscriber of *topic* and prune failures."""
        async with self._lock:
            targets = list(self._topics.get(topic, ()))
        if not targets:
            return
        payload = message.model_dump_json()
        delivered = await asyncio.gather(*(self._deliver(ws, payload) for ws in targets))
        dead = [ws for ws, ok in zip(targets, delivered, strict=True) if not ok]
        if dead:
            _log.warning("Dropping %d unreachable %s subscriber(s)", len(dead), topic)
            async with self._lock:
                self._drop(topic, dead)

    def publish(self, topic: str, message: WSOutgoing) -> None:
        """Queue a broadcast from synchronous code running on the event loop."""
        task = asyncio.get_running_loop().create_task(self.broadcast(topic, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def client_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    async def close(self) -> None:
        """Cancel undelivered broadcasts; called at shutdown."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._topics.clear()
