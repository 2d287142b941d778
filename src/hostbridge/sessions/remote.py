"""Registry of interactive pty shells on remote hosts.

Each session owns its SSH connection; closing the session closes both the
shell channel and the connection.  Terminal output that is not valid UTF-8
is decoded with replacement characters.

Dependencies: config, errors, remote.connection, sessions.channel
Wired in: sessions/router.py → SessionRouter, services.py → build_services()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

import asyncssh

from hostbridge.config import SessionSettings
from hostbridge.errors import SSHConnectionError
from hostbridge.remote.connection import Connector
from hostbridge.sessions.channel import Session, SessionChannel, SessionKind

_log = logging.getLogger(__name__)

_READ_SIZE = 4096


@dataclass
class _RemoteEntry:
    session: Session
    profile_id: str
    conn: asyncssh.SSHClientConnection
    process: asyncssh.SSHClientProcess[str]
    reader: asyncio.Task[None] | None = None


class RemoteSessionRegistry:
    """Open and track pty shells over SSH."""

    def __init__(self, connector: Connector, settings: SessionSettings | None = None) -> None:
        self._connector = connector
        self._settings = settings or SessionSettings()
        self._lock = threading.Lock()
        self._entries: dict[str, _RemoteEntry] = {}
        self._exit_hooks: list[Callable[[str], None]] = []

    def add_exit_hook(self, hook: Callable[[str], None]) -> None:
        """Call *hook* with the session id whenever a shell channel ends."""
        self._exit_hooks.append(hook)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            entry = self._entries.get(session_id)
        return entry.session if entry else None

    def list_sessions(self) -> list[Session]:
        """Live sessions, newest first."""
        with self._lock:
            sessions = [entry.session for entry in self._entries.values()]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    async def create(self, profile_id: str, cols: int = 80, rows: int = 24) -> Session:
        """Connect to *profile_id* and open a pty shell sized *cols* x *rows*.

        Raises :class:`~hostbridge.errors.ProfileNotFoundError` or
        :class:`SSHConnectionError`.
        """
        conn = await self._connector.connect(profile_id)
        try:
            process = await conn.create_process(
                term_type=self._settings.term_type,
                term_size=(cols, rows),
                errors="replace",
            )
        except (OSError, asyncssh.Error) as exc:
            conn.close()
            raise SSHConnectionError(f"Failed to open shell: {exc}") from exc

        session_id = uuid4().hex[:12]
        session = Session(
            session_id=session_id,
            kind=SessionKind.REMOTE,
            events=SessionChannel(session_id),
        )
        entry = _RemoteEntry(session=session, profile_id=profile_id, conn=conn, process=process)
        with self._lock:
            self._entries[session_id] = entry
        entry.reader = asyncio.create_task(self._pump(entry))
        _log.info("Remote session %s opened on profile %s", session_id, profile_id)
        return session

    async def _pump(self, entry: _RemoteEntry) -> None:
        try:
            while True:
                data = await entry.process.stdout.read(_READ_SIZE)
                if not data:
                    break
                entry.session.events.emit_data(data)
        except (OSError, asyncssh.Error) as exc:
            _log.info("Remote session %s channel error: %s", entry.session.session_id, exc)
        finally:
            session_id = entry.session.session_id
            with self._lock:
                if self._entries.get(session_id) is entry:
                    del self._entries[session_id]
            entry.process.close()
            entry.conn.close()
            _log.info("Remote session %s closed", session_id)
            for hook in self._exit_hooks:
                hook(session_id)
            entry.session.events.emit_close(None)

    def write(self, session_id: str, data: str) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return False
        try:
            entry.process.stdin.write(data)
        except (OSError, asyncssh.Error) as exc:
            _log.debug("Write to remote session %s failed: %s", session_id, exc)
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return False
        try:
            entry.process.change_terminal_size(cols, rows)
        except (OSError, asyncssh.Error) as exc:
            _log.warning("Resize failed for remote session %s: %s", session_id, exc)
        return True

    def close(self, session_id: str) -> bool:
        """End the shell and its connection and forget the session."""
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        entry.process.close()
        entry.conn.close()
        return True

    async def close_all(self, timeout: float | None = None) -> None:
        """Close every session, cancelling readers still running after *timeout*."""
        limit = self._settings.close_timeout if timeout is None else timeout
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.process.close()
            entry.conn.close()

        readers = [entry.reader for entry in entries if entry.reader is not None]
        if not readers:
            return
        _done, still_running = await asyncio.wait(readers, timeout=limit)
        for reader in still_running:
            reader.cancel()
