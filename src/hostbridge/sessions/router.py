"""Single dispatch point for session operations across both registries.

Ids are generated independently by each registry, so the router records
which registry issued each id and routes ``write``/``resize``/``close`` with
one lookup.  Each registry reports sessions that end, so their tags are
dropped even when nobody touches the id again.

Dependencies: sessions.local, sessions.remote, sessions.channel
Wired in: services.py → build_services(), server/routes.py
"""

from __future__ import annotations

import threading
from functools import partial

from hostbridge.sessions.channel import Session, SessionKind
from hostbridge.sessions.local import LocalSessionRegistry
from hostbridge.sessions.remote import RemoteSessionRegistry


class SessionRouter:
    def __init__(self, local: LocalSessionRegistry, remote: RemoteSessionRegistry) -> None:
        self.local = local
        self.remote = remote
        self._lock = threading.Lock()
        self._kinds: dict[str, tuple[SessionKind, ...]] = {}
        local.add_exit_hook(partial(self._untag, kind=SessionKind.LOCAL))
        remote.add_exit_hook(partial(self._untag, kind=SessionKind.REMOTE))

    def _registry(self, kind: SessionKind) -> LocalSessionRegistry | RemoteSessionRegistry:
        return self.local if kind is SessionKind.LOCAL else self.remote

    def _tag(self, session: Session) -> Session:
        with self._lock:
            kinds = self._kinds.get(session.session_id, ())
            if session.kind not in kinds:
                self._kinds[session.session_id] = (*kinds, session.kind)
        return session

    def _untag(self, session_id: str, kind: SessionKind) -> None:
        with self._lock:
            remaining = tuple(k for k in self._kinds.get(session_id, ()) if k is not kind)
            if remaining:
                self._kinds[session_id] = remaining
            else:
                self._kinds.pop(session_id, None)

    def _lookup(self, session_id: str) -> tuple[SessionKind, ...]:
        with self._lock:
            return self._kinds.get(session_id, ())

    async def create_local(self, cols: int = 80, rows: int = 24) -> Session:
        return self._tag(await self.local.create(cols, rows))

    async def create_remote(self, profile_id: str, cols: int = 80, rows: int = 24) -> Session:
        return self._tag(await self.remote.create(profile_id, cols, rows))

    def get(self, session_id: str) -> Session | None:
        for kind in self._lookup(session_id):
            session = self._registry(kind).get(session_id)
            if session is not None:
                return session
            self._untag(session_id, kind)
        return None

    def list_sessions(self) -> list[Session]:
        """Live sessions from both registries, newest first."""
        sessions = self.local.list_sessions() + self.remote.list_sessions()
        live = {(s.session_id, s.kind) for s in sessions}
        with self._lock:
            for session_id, kinds in list(self._kinds.items()):
                kept = tuple(k for k in kinds if (session_id, k) in live)
                if kept:
                    self._kinds[session_id] = kept
                else:
                    del self._kinds[session_id]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def write(self, session_id: str, data: str) -> bool:
        for kind in self._lookup(session_id):
            if self._registry(kind).write(session_id, data):
                return True
            self._untag(session_id, kind)
        return False

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        for kind in self._lookup(session_id):
            if self._registry(kind).resize(session_id, cols, rows):
                return True
            self._untag(session_id, kind)
        return False

    def close(self, session_id: str) -> bool:
        closed = False
        for kind in self._lookup(session_id):
            closed = self._registry(kind).close(session_id) or closed
            self._untag(session_id, kind)
        return closed

    async def close_all(self, timeout: float | None = None) -> None:
        await self.local.close_all(timeout)
        await self.remote.close_all(timeout)
        with self._lock:
            self._kinds.clear()
