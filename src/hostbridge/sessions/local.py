"""Registry of local shell sessions running under pseudo-terminals.

Output is read from the non-blocking pty master with ``loop.add_reader``;
a waiter task per session reaps the shell, drains remaining output, and
publishes the close event with the real exit code.

Dependencies: config, errors, infra.pty_spawn, sessions.channel
Wired in: sessions/router.py → SessionRouter, services.py → build_services()
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import signal
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from hostbridge.config import SessionSettings
from hostbridge.errors import CapacityExceededError
from hostbridge.infra.pty_spawn import PtyProcess, read_master, set_winsize, spawn_pty
from hostbridge.sessions.channel import Session, SessionChannel, SessionKind

_log = logging.getLogger(__name__)

Spawner = Callable[..., Awaitable[PtyProcess]]


@dataclass
class _LocalEntry:
    session: Session
    pty: PtyProcess
    decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )
    reading: bool = True
    waiter: asyncio.Task[None] | None = None
    kill_timer: asyncio.TimerHandle | None = None


class LocalSessionRegistry:
    """Spawn and track up to ``max_sessions`` local shells."""

    def __init__(
        self,
        settings: SessionSettings | None = None,
        *,
        spawner: Spawner = spawn_pty,
        cwd: str | None = None,
    ) -> None:
        self._settings = settings or SessionSettings()
        self._spawner = spawner
        self._cwd = cwd or str(Path.home())
        self._lock = threading.Lock()
        self._entries: dict[str, _LocalEntry] = {}
        # Hung up by close() but not yet reaped.
        self._closing: dict[str, _LocalEntry] = {}
        self._reserved = 0
        self._exit_hooks: list[Callable[[str], None]] = []

    @property
    def max_sessions(self) -> int:
        return self._settings.max_local

    def add_exit_hook(self, hook: Callable[[str], None]) -> None:
        """Call *hook* with the session id whenever a shell has been reaped."""
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

    async def create(self, cols: int = 80, rows: int = 24) -> Session:
        """Spawn a shell sized *cols* x *rows* in the home directory.

        Raises :class:`CapacityExceededError` when the registry is full.
        """
        with self._lock:
            if len(self._entries) + self._reserved >= self.max_sessions:
                raise CapacityExceededError(self.max_sessions)
            self._reserved += 1

        try:
            pty_process = await self._spawner(
                [self._settings.shell],
                cols=cols,
                rows=rows,
                cwd=self._cwd,
                env={**os.environ, "TERM": self._settings.term_type},
            )
            session_id = uuid4().hex[:12]
            session = Session(
                session_id=session_id,
                kind=SessionKind.LOCAL,
                events=SessionChannel(session_id),
            )
            entry = _LocalEntry(session=session, pty=pty_process)
            with self._lock:
                self._entries[session_id] = entry
        finally:
            with self._lock:
                self._reserved -= 1

        loop = asyncio.get_running_loop()
        loop.add_reader(pty_process.master_fd, self._on_readable, entry)
        entry.waiter = asyncio.create_task(self._wait_for_exit(entry))
        _log.info(
            "Local session %s started (%s, pid %s)",
            session_id,
            self._settings.shell,
            pty_process.process.pid,
        )
        return session

    def _on_readable(self, entry: _LocalEntry) -> None:
        try:
            chunk = read_master(entry.pty.master_fd)
        except BlockingIOError:
            return
        if not chunk:
            self._stop_reading(entry)
            return
        entry.session.events.emit_data(entry.decoder.decode(chunk))

    def _stop_reading(self, entry: _LocalEntry) -> None:
        if not entry.reading:
            return
        entry.reading = False
        asyncio.get_running_loop().remove_reader(entry.pty.master_fd)

    def _drain(self, entry: _LocalEntry) -> None:
        while entry.reading:
            try:
                chunk = read_master(entry.pty.master_fd)
            except BlockingIOError:
                break
            if not chunk:
                break
            entry.session.events.emit_data(entry.decoder.decode(chunk))
        entry.session.events.emit_data(entry.decoder.decode(b"", final=True))

    async def _wait_for_exit(self, entry: _LocalEntry) -> None:
        exit_code: int | None = None
        try:
            exit_code = await entry.pty.process.wait()
            self._drain(entry)
        finally:
            if entry.kill_timer is not None:
                entry.kill_timer.cancel()
            self._stop_reading(entry)
            with contextlib.suppress(OSError):
                os.close(entry.pty.master_fd)

            session_id = entry.session.session_id
            with self._lock:
                if self._entries.get(session_id) is entry:
                    del self._entries[session_id]
                if self._closing.get(session_id) is entry:
                    del self._closing[session_id]
            _log.info("Local session %s exited with %s", session_id, exit_code)
            for hook in self._exit_hooks:
                hook(session_id)
            entry.session.events.emit_close(exit_code)

    def write(self, session_id: str, data: str) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return False
        try:
            os.write(entry.pty.master_fd, data.encode("utf-8"))
        except OSError as exc:
            _log.debug("Write to local session %s failed: %s", session_id, exc)
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return False
        try:
            set_winsize(entry.pty.master_fd, cols, rows)
        except OSError as exc:
            _log.warning("Resize failed for local session %s: %s", session_id, exc)
        return True

    def close(self, session_id: str) -> bool:
        """Hang up the shell and forget the session.

        The close event follows once the process has been reaped.  A shell
        still running ``close_timeout`` seconds after the hangup is killed.
        """
        with self._lock:
            entry = self._entries.pop(session_id, None)
            if entry is not None:
                self._closing[session_id] = entry
        if entry is None:
            return False
        self._signal(entry, signal.SIGHUP)
        if entry.waiter is not None and not entry.waiter.done():
            entry.kill_timer = asyncio.get_running_loop().call_later(
                self._settings.close_timeout, self._kill_if_running, entry
            )
        return True

    def _kill_if_running(self, entry: _LocalEntry) -> None:
        entry.kill_timer = None
        if entry.waiter is None or entry.waiter.done():
            return
        _log.warning("Local session %s ignored hangup; killing", entry.session.session_id)
        self._signal(entry, signal.SIGKILL)

    def _signal(self, entry: _LocalEntry, sig: signal.Signals) -> None:
        try:
            entry.pty.process.send_signal(sig)
        except ProcessLookupError as exc:
            _log.warning("Kill failed for local session %s: %s", entry.session.session_id, exc)

    async def close_all(self, timeout: float | None = None) -> None:
        """Hang up every shell, waiting up to *timeout* before killing them.

        Shells already hung up by :meth:`close` are included.
        """
        limit = self._settings.close_timeout if timeout is None else timeout
        with self._lock:
            live = list(self._entries.values())
            closing = list(self._closing.values())
            self._entries.clear()
            self._closing.clear()
        entries = live + closing
        if not entries:
            return

        for entry in live:
            self._signal(entry, signal.SIGHUP)

        waiters = [entry.waiter for entry in entries if entry.waiter is not None]
        _done, still_running = await asyncio.wait(waiters, timeout=limit)
        if not still_running:
            return

        for entry in entries:
            if entry.waiter in still_running:
                _log.warning("Local session %s ignored hangup; killing", entry.session.session_id)
                self._signal(entry, signal.SIGKILL)
        _done, still_running = await asyncio.wait(still_running, timeout=limit)
        for waiter in still_running:
            waiter.cancel()
