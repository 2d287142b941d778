"""Open asyncssh connections for resolved connection profiles.

Dependencies: profiles, config, errors
Wired in: sessions/remote.py, transfer/engine.py, provisioning/workflow.py,
    services.py → build_services()
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import asyncssh

from hostbridge.config import SSHSettings
from hostbridge.errors import SSHConnectionError
from hostbridge.profiles import AuthKind, ConnectionProfile, ProfileResolver

_log = logging.getLogger(__name__)


class Connector(Protocol):
    """Anything that turns a profile id into a live SSH connection."""

    async def connect(self, profile_id: str) -> asyncssh.SSHClientConnection: ...


def _connect_options(profile: ConnectionProfile, settings: SSHSettings) -> dict[str, Any]:
    options: dict[str, Any] = {
        "host": profile.host,
        "port": profile.port,
        "username": profile.username or None,
        "known_hosts": settings.known_hosts,
        "connect_timeout": settings.connect_timeout,
    }
    if profile.auth_kind is AuthKind.KEY:
        try:
            key = asyncssh.read_private_key(str(profile.key_path), profile.passphrase)
        except (OSError, asyncssh.KeyImportError) as exc:
            raise SSHConnectionError(f"Cannot read private key: {exc}") from exc
        options["client_keys"] = [key]
        options["password"] = None
    else:
        options["password"] = profile.password
        options["client_keys"] = None
    return options


async def open_connection(
    profile: ConnectionProfile, settings: SSHSettings
) -> asyncssh.SSHClientConnection:
    """Connect and authenticate to *profile*.

    Every network, authentication and timeout failure is reported as
    :class:`SSHConnectionError`.
    """
    options = _connect_options(profile, settings)
    _log.debug("Connecting to %s", profile.display_name)
    try:
        return await asyncssh.connect(**options)
    except (OSError, asyncssh.Error, TimeoutError) as exc:
        _log.warning("SSH connection to %s failed: %s", profile.display_name, exc)
        raise SSHConnectionError(f"{profile.display_name}: {exc}") from exc


async def close_connection(conn: asyncssh.SSHClientConnection) -> None:
    """Close *conn* and wait for the transport to shut down."""
    conn.close()
    await conn.wait_closed()


class SSHConnector:
    """Resolve profile ids and open connections with shared SSH settings."""

    def __init__(self, resolver: ProfileResolver, settings: SSHSettings | None = None) -> None:
        self._resolver = resolver
        self._settings = settings or SSHSettings()

    async def connect(self, profile_id: str) -> asyncssh.SSHClientConnection:
        """Resolve *profile_id* once and connect to it.

        Raises :class:`~hostbridge.errors.ProfileNotFoundError` or
        :class:`SSHConnectionError`.
        """
        profile = self._resolver.resolve(profile_id)
        return await open_connection(profile, self._settings)


async def probe_connection(connector: Connector, profile_id: str) -> None:
    """Connect to *profile_id* and immediately disconnect."""
    conn = await connector.connect(profile_id)
    await close_connection(conn)
