"""Interactive shell sessions, local and remote.

Public API: CloseEvent, DataEvent, LocalSessionRegistry,
    RemoteSessionRegistry, Session, SessionChannel, SessionEvent,
    SessionKind, SessionRouter
Internal: channel, local, remote, router
"""

from hostbridge.sessions.channel import (
    CloseEvent,
    DataEvent,
    Session,
    SessionChannel,
    SessionEvent,
    SessionKind,
)
from hostbridge.sessions.local import LocalSessionRegistry
from hostbridge.sessions.remote import RemoteSessionRegistry
from hostbridge.sessions.router import SessionRouter

__all__ = [
    "CloseEvent",
    "DataEvent",
    "LocalSessionRegistry",
    "RemoteSessionRegistry",
    "Session",
    "SessionChannel",
    "SessionEvent",
    "SessionKind",
    "SessionRouter",
]
