"""SSH connections and remote command execution.

Public API: CommandExecutor, CommandResult, Connector, SSHConnector,
    close_connection, open_connection, probe_connection
Internal: connection, executor
"""

from hostbridge.remote.connection import (
    Connector,
    SSHConnector,
    close_connection,
    open_connection,
    probe_connection,
)
from hostbridge.remote.executor import CommandExecutor, CommandResult

__all__ = [
    "CommandExecutor",
    "CommandResult",
    "Connector",
    "SSHConnector",
    "close_connection",
    "open_connection",
    "probe_connection",
]
