"""Thin typed wrapper around stdlib pty for async shell spawning.

Dependencies: (stdlib only)
Wired in: sessions/local.py → LocalSessionRegistry.create()
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import pty
import struct
import termios
from dataclasses import dataclass

_log = logging.getLogger(__name__)


@dataclass
class PtyProcess:
    """A subprocess attached to a pseudo-terminal."""

    process: asyncio.subprocess.Process
    master_fd: int


def set_winsize(fd: int, cols: int, rows: int) -> None:
    """Apply a window size to the terminal behind *fd* (``TIOCSWINSZ``)."""
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


async def spawn_pty(
    argv: list[str],
    *,
    cols: int = 80,
    rows: int = 24,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> PtyProcess:
    """Spawn *argv* under a new PTY sized *cols* x *rows*.

    The child runs in its own session.  The returned master fd is
    non-blocking and owned by the caller, who must close it.
    """
    master_fd, slave_fd = pty.openpty()
    try:
        set_winsize(slave_fd, cols, rows)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            cwd=cwd,
            env=env,
            start_new_session=True,
        )
    except OSError as exc:
        _log.debug("Could not start %s under a pty: %s", argv[0], exc)
        os.close(master_fd)
        os.close(slave_fd)
        raise
    # Child holds its own copy of the slave end.
    os.close(slave_fd)
    os.set_blocking(master_fd, False)
    return PtyProcess(process=process, master_fd=master_fd)


def read_master(master_fd: int, size: int = 4096) -> bytes:
    """Read pending terminal output.

    Returns ``b""`` once the child side is gone (EOF or ``EIO``).
    ``BlockingIOError`` propagates when nothing is buffered yet.
    """
    try:
        return os.read(master_fd, size)
    except BlockingIOError:
        raise
    except OSError:
        return b""
