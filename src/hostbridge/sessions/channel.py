"""Typed per-session event channel.

A session emits exactly two kinds of events: :class:`DataEvent` while the
shell is open and a single terminal :class:`CloseEvent`.  Events emitted
before anyone subscribes are buffered and replayed to the first subscriber.

Dependencies: (none)
Wired in: sessions/local.py, sessions/remote.py, server/routes.py → session_ws()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

_log = logging.getLogger(__name__)


class SessionKind(StrEnum):
    """Which registry owns a session."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class DataEvent:
    """Decoded shell output."""

    session_id: str
    data: str


@dataclass(frozen=True)
class CloseEvent:
    """The shell ended.  ``exit_code`` is ``None`` when it is not known."""

    session_id: str
    exit_code: int | None


SessionEvent = DataEvent | CloseEvent
Listener = Callable[[SessionEvent], None]


class SessionChannel:
    """Fan-out of one session's events to its subscribers."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._listeners: list[Listener] = []
        self._pending: list[SessionEvent] | None = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Attach *listener* and return a function that detaches it."""
        self._listeners.append(listener)
        pending, self._pending = self._pending, None
        for event in pending or ():
            self._deliver(listener, event)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit_data(self, data: str) -> None:
        if self._closed or not data:
            return
        self._publish(DataEvent(self.session_id, data))

    def emit_close(self, exit_code: int | None) -> None:
        """Publish the terminal event.  Later emits are ignored."""
        if self._closed:
            return
        self._closed = True
        self._publish(CloseEvent(self.session_id, exit_code))

    def _publish(self, event: SessionEvent) -> None:
        if self._pending is not None:
            self._pending.append(event)
            return
        for listener in list(self._listeners):
            self._deliver(listener, event)

    def _deliver(self, listener: Listener, event: SessionEvent) -> None:
        try:
            listener(event)
        except Exception:
            _log.warning("Session %s listener failed", self.session_id, exc_info=True)

    async def iter_events(self) -> AsyncIterator[SessionEvent]:
        """Yield events until (and including) the close event."""
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, CloseEvent):
                    return
        finally:
            unsubscribe()


@dataclass
class Session:
    """An interactive shell addressed by an opaque id."""

    session_id: str
    kind: SessionKind
    events: SessionChannel
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
