"""SFTP upload of a planned file or directory tree with per-file progress.

Dependencies: errors, infra.otel_tracing, remote.connection, transfer.plan
Wired in: services.py → build_services(), server/routes.py → upload()
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import asyncssh

from hostbridge.errors import TransferError
from hostbridge.infra.otel_tracing import trace_span
from hostbridge.remote.connection import Connector, close_connection
from hostbridge.transfer.plan import TransferPlan, build_plan, resolve_remote_path

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferProgress:
    uploaded: int
    total: int
    file: str


@dataclass(frozen=True)
class TransferResult:
    uploaded: int


ProgressCallback = Callable[[TransferProgress], None]


def _plan_or_raise(local_path: Path, selection: Iterable[str] | None) -> TransferPlan:
    try:
        return build_plan(local_path, selection)
    except OSError as exc:
        raise TransferError(f"Cannot read {local_path}: {exc}", path=str(local_path)) from exc


class TransferEngine:
    """Copy local files and directories to remote hosts over SFTP."""

    def __init__(self, connector: Connector) -> None:
        self._connector = connector

    async def upload(
        self,
        profile_id: str,
        local_path: Path,
        remote_path: str,
        selection: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TransferResult:
        """Connect to *profile_id*, transfer, and always close the connection."""
        plan = _plan_or_raise(Path(local_path), selection)
        conn = await self._connector.connect(profile_id)
        try:
            return await self._copy(conn, plan, remote_path, on_progress)
        finally:
            await close_connection(conn)

    async def transfer(
        self,
        conn: asyncssh.SSHClientConnection,
        local_path: Path,
        remote_path: str,
        selection: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TransferResult:
        """Copy *local_path* to *remote_path* over an open connection.

        A *remote_path* ending in ``/`` receives the source's base name.
        The first file that fails aborts the transfer with
        :class:`TransferError`; files already copied stay in place.
        """
        plan = _plan_or_raise(Path(local_path), selection)
        return await self._copy(conn, plan, remote_path, on_progress)

    async def _copy(
        self,
        conn: asyncssh.SSHClientConnection,
        plan: TransferPlan,
        remote_path: str,
        on_progress: ProgressCallback | None,
    ) -> TransferResult:
        target = resolve_remote_path(plan.root, remote_path)
        with trace_span(
            "transfer.upload", {"transfer.files": plan.total, "transfer.is_dir": plan.is_dir}
        ) as span_attrs:
            try:
                async with conn.start_sftp_client() as sftp:
                    uploaded = await self._copy_with(sftp, plan, target, on_progress)
            except (OSError, asyncssh.Error) as exc:
                raise TransferError(f"SFTP session failed: {exc}") from exc
            span_attrs["transfer.uploaded"] = uploaded
        _log.info("Uploaded %d/%d file(s) to %s", uploaded, plan.total, target)
        return TransferResult(uploaded=uploaded)

    async def _copy_with(
        self,
        sftp: asyncssh.SFTPClient,
        plan: TransferPlan,
        target: str,
        on_progress: ProgressCallback | None,
    ) -> int:
        if not plan.is_dir:
            parent = posixpath.dirname(target)
            if parent and parent != "/":
                await _makedirs(sftp, parent)
            await _put(sftp, plan.root, target, uploaded=0)
            if on_progress:
                on_progress(TransferProgress(uploaded=1, total=1, file=plan.root.name))
            return 1

        await _makedirs(sftp, target)
        for rel_dir in plan.directories:
            await _makedirs(sftp, posixpath.join(target, rel_dir))

        uploaded = 0
        for rel_file in plan.files:
            await _put(sftp, plan.root / rel_file, posixpath.join(target, rel_file), uploaded)
            uploaded += 1
            if on_progress:
                on_progress(
                    TransferProgress(
                        uploaded=uploaded, total=plan.total, file=posixpath.basename(rel_file)
                    )
                )
        return uploaded


async def _makedirs(sftp: asyncssh.SFTPClient, path: str) -> None:
    try:
        await sftp.makedirs(path, exist_ok=True)
    except (OSError, asyncssh.SFTPError) as exc:
        _log.debug("mkdir %s failed: %s", path, exc)


async def _put(sftp: asyncssh.SFTPClient, local: Path, remote: str, uploaded: int) -> None:
    try:
        await sftp.put(str(local), remote)
    except (OSError, asyncssh.Error) as exc:
        raise TransferError(
            f"Failed to upload {local}: {exc}", uploaded=uploaded, path=str(local)
        ) from exc
