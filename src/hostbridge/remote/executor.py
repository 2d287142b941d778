"""Bounded remote command execution over an existing SSH connection.

Each call opens one exec channel, collects stdout/stderr, and closes the
channel on every exit path.  Calls that share a connection are serialized.

Dependencies: config, errors, infra.otel_tracing
Wired in: provisioning/workflow.py → ProvisioningWorkflow.run()
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass

import asyncssh

from hostbridge.config import CommandSettings
from hostbridge.errors import CommandFailedError, CommandTimeoutError
from hostbridge.infra.otel_tracing import trace_span

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one remote command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class CommandExecutor:
    """Run shell commands on SSH connections with a wall-clock timeout."""

    def __init__(self, settings: CommandSettings | None = None) -> None:
        self._settings = settings or CommandSettings()
        self._locks: weakref.WeakKeyDictionary[object, asyncio.Lock] = (
            weakref.WeakKeyDictionary()
        )

    @property
    def default_timeout(self) -> float:
        return self._settings.timeout

    def _lock_for(self, conn: object) -> asyncio.Lock:
        lock = self._locks.get(conn)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conn] = lock
        return lock

    async def execute(
        self,
        conn: asyncssh.SSHClientConnection,
        command: str,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run *command* and return its exit code and output.

        A non-zero exit code is returned, not raised.  Raises
        :class:`CommandTimeoutError` after *timeout* seconds (the channel is
        already closed by then) and :class:`CommandFailedError` when the
        channel cannot be opened or the transport drops.
        """
        limit = self._settings.timeout if timeout is None else timeout
        async with self._lock_for(conn):
            return await self._execute_locked(conn, command, limit)

    async def _execute_locked(
        self, conn: asyncssh.SSHClientConnection, command: str, timeout: float
    ) -> CommandResult:
        program = command.split(None, 1)[0] if command.strip() else ""
        started = time.monotonic()
        with trace_span("remote.exec", {"command.program": program}) as span_attrs:
            try:
                # Raw bytes; output is decoded leniently below.
                process = await conn.create_process(command, encoding=None)
            except (OSError, asyncssh.Error) as exc:
                raise CommandFailedError(f"Failed to open exec channel: {exc}") from exc

            try:
                async with asyncio.timeout(timeout):
                    stdout, stderr = await process.communicate()
            except TimeoutError as exc:
                span_attrs["command.timed_out"] = True
                _log.debug("Command %r timed out after %.1fs", program, timeout)
                raise CommandTimeoutError(command, timeout) from exc
            except (OSError, asyncssh.Error) as exc:
                raise CommandFailedError(f"Command channel failed: {exc}") from exc
            finally:
                process.close()

            exit_status = process.exit_status
            exit_code = 0 if exit_status is None else exit_status
            span_attrs["command.exit_code"] = exit_code
            _log.debug(
                "Command %r exited %d in %.2fs", program, exit_code, time.monotonic() - started
            )
            return CommandResult(
                exit_code=exit_code, stdout=_as_text(stdout), stderr=_as_text(stderr)
            )

    async def run_checked(
        self,
        conn: asyncssh.SSHClientConnection,
        command: str,
        timeout: float | None = None,
    ) -> CommandResult:
        """Like :meth:`execute`, but raise :class:`CommandFailedError` on non-zero exit."""
        result = await self.execute(conn, command, timeout)
        if not result.ok:
            message = result.stderr.strip() or f"Command exited with status {result.exit_code}"
            raise CommandFailedError(message, result=result)
        return result
