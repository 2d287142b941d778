"""Service container: builds every hostbridge service and owns their lifetime.

There are no module-level singletons; callers construct one
:class:`Services` with :func:`build_services` and pass it where needed.

Dependencies: config, profiles, remote, sessions, transfer, github, provisioning
Wired in: server/app.py → create_app()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import httpx

from hostbridge.config import Settings, load_settings, resolve_config_path
from hostbridge.github.client import GitHubClient
from hostbridge.infra.pty_spawn import spawn_pty
from hostbridge.profiles import ProfileResolver, load_profiles
from hostbridge.provisioning.workflow import ProvisioningWorkflow
from hostbridge.remote.connection import Connector, SSHConnector
from hostbridge.remote.executor import CommandExecutor
from hostbridge.sessions.local import LocalSessionRegistry, Spawner
from hostbridge.sessions.remote import RemoteSessionRegistry
from hostbridge.sessions.router import SessionRouter
from hostbridge.transfer.engine import TransferEngine

_log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Services:
    """Every long-lived service instance for one process."""

    settings: Settings
    profiles: ProfileResolver
    connector: Connector
    executor: CommandExecutor
    sessions: SessionRouter
    transfers: TransferEngine
    github: GitHubClient
    provisioning: ProvisioningWorkflow
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, repr=False)

    async def run_tracked(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await *coro* as a task that :meth:`shutdown` can cancel."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await task

    async def shutdown(self, timeout: float | None = None) -> None:
        """Close all sessions and cancel in-flight uploads and runs."""
        _log.info(
            "Shutting down: %d session(s), %d running task(s)",
            len(self.sessions.list_sessions()),
            len(self._tasks),
        )
        for task in list(self._tasks):
            task.cancel()
        await self.sessions.close_all(timeout)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def build_services(
    settings: Settings | None = None,
    profiles: ProfileResolver | None = None,
    *,
    config_path: Path | None = None,
    connector: Connector | None = None,
    spawner: Spawner = spawn_pty,
    http_client: httpx.AsyncClient | None = None,
) -> Services:
    """Wire services from *settings* (loaded from disk when omitted).

    Profiles default to the ``[profiles.*]`` tables of the settings file.
    """
    settings = settings or load_settings(config_path)
    profiles = profiles or load_profiles(resolve_config_path(config_path))
    connector = connector or SSHConnector(profiles, settings.ssh)
    executor = CommandExecutor(settings.commands)
    github = GitHubClient(settings.github, http_client=http_client)

    router = SessionRouter(
        LocalSessionRegistry(settings.sessions, spawner=spawner),
        RemoteSessionRegistry(connector, settings.sessions),
    )
    return Services(
        settings=settings,
        profiles=profiles,
        connector=connector,
        executor=executor,
        sessions=router,
        transfers=TransferEngine(connector),
        github=github,
        provisioning=ProvisioningWorkflow(connector, executor, github, settings.commands),
    )
