"""HTTP and WebSocket surface over hostbridge services.

Public API: ConnectionManager, create_app, run_server
Internal: app, auth, cli, connections, models, routes
"""

from hostbridge.server.app import create_app
from hostbridge.server.cli import run_server
from hostbridge.server.connections import ConnectionManager

__all__ = [
    "ConnectionManager",
    "create_app",
    "run_server",
]
