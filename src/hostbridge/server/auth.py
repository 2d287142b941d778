"""Shared-secret authentication for HTTP routes and WebSocket upgrades.

Auth is off unless ``HOSTBRIDGE_API_KEY`` is set.  Clients send the key in
the ``X-API-Key`` header; query parameters are never consulted.

Dependencies: (none)
Wired in: server/routes.py
"""

from __future__ import annotations

import logging
import os
import secrets

from fastapi import HTTPException, Request, WebSocket, status
from starlette.datastructures import Headers

_log = logging.getLogger(__name__)

API_KEY_ENV = "HOSTBRIDGE_API_KEY"
API_KEY_HEADER = "X-API-Key"


def _authorized(headers: Headers, client: str) -> bool:
    expected = os.getenv(API_KEY_ENV)
    if expected is None:
        return True
    provided = headers.get(API_KEY_HEADER, "")
    if provided and secrets.compare_digest(provided, expected):
        return True
    _log.warning("Rejected request from %s: bad or missing %s", client, API_KEY_HEADER)
    return False


def _client_name(conn: Request | WebSocket) -> str:
    return conn.client.host if conn.client else "unknown"


def verify_api_key(request: Request) -> None:
    """FastAPI dependency: 401 unless the request carries the configured key."""
    if not _authorized(request.headers, _client_name(request)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


async def verify_ws_api_key(websocket: WebSocket) -> bool:
    """Return whether a WebSocket upgrade may proceed."""
    return _authorized(websocket.headers, _client_name(websocket))
