"""Minimal GitHub REST client for identity checks and SSH key registration.

Responses are read as a stream and capped at ``max_response_bytes``; a
larger declared ``Content-Length`` aborts before any body bytes are read.

Dependencies: config, errors, infra.otel_tracing
Wired in: provisioning/steps.py → add_key_to_github(),
    services.py → build_services(), server/routes.py → validate_token()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from hostbridge.config import GitHubSettings
from hostbridge.errors import (
    GitHubAPIError,
    InsufficientScopeError,
    InvalidTokenError,
    RequestTimeoutError,
    ResponseTooLargeError,
    ValidationFailedError,
)
from hostbridge.infra.otel_tracing import trace_span

_log = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
_DUPLICATE_MARKERS = ("already in use", "already exists")


class ApiStatus(StrEnum):
    """Classification of a GitHub API response."""

    SUCCESS = "success"
    INVALID_TOKEN = "invalid_token"
    FORBIDDEN = "forbidden"
    ALREADY_EXISTS = "already_exists"
    VALIDATION_FAILED = "validation_failed"
    ERROR = "error"


def _is_duplicate(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    errors = data.get("errors")
    if not isinstance(errors, list):
        return False
    for error in errors:
        message = error.get("message", "") if isinstance(error, dict) else ""
        if any(marker in str(message) for marker in _DUPLICATE_MARKERS):
            return True
    return False


def classify(status_code: int, data: Any) -> ApiStatus:
    if 200 <= status_code < 300:
        return ApiStatus.SUCCESS
    if status_code == 401:
        return ApiStatus.INVALID_TOKEN
    if status_code == 403:
        return ApiStatus.FORBIDDEN
    if status_code == 422:
        return ApiStatus.ALREADY_EXISTS if _is_duplicate(data) else ApiStatus.VALIDATION_FAILED
    return ApiStatus.ERROR


@dataclass(frozen=True)
class ApiResponse:
    """A classified, fully read API response."""

    status: ApiStatus
    status_code: int
    body: str
    data: Any = None

    def raise_for_status(self) -> ApiResponse:
        """Raise the matching :class:`GitHubAPIError` unless the call succeeded.

        ``ALREADY_EXISTS`` is treated as success.
        """
        if self.status in (ApiStatus.SUCCESS, ApiStatus.ALREADY_EXISTS):
            return self
        kwargs: dict[str, Any] = {"status_code": self.status_code, "body": self.body}
        if self.status is ApiStatus.INVALID_TOKEN:
            raise InvalidTokenError("Invalid or expired Personal Access Token", **kwargs)
        if self.status is ApiStatus.FORBIDDEN:
            raise InsufficientScopeError(
                "PAT lacks required scope (admin:public_key) or rate limited", **kwargs
            )
        if self.status is ApiStatus.VALIDATION_FAILED:
            message = self.data.get("message") if isinstance(self.data, dict) else None
            raise ValidationFailedError(message or "GitHub API validation error", **kwargs)
        raise GitHubAPIError(f"GitHub API error: {self.status_code} - {self.body}", **kwargs)


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    username: str | None = None
    error: str | None = None


class GitHubClient:
    """Talk to the GitHub REST API with a personal access token."""

    def __init__(
        self,
        settings: GitHubSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or GitHubSettings()
        self._http_client = http_client

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": self._settings.user_agent,
            "X-GitHub-Api-Version": API_VERSION,
        }

    async def check_identity(self, token: str) -> ApiResponse:
        """``GET /user`` for the token's owner."""
        return await self._request("GET", "/user", token)

    async def register_key(self, token: str, key: str, title: str) -> ApiResponse:
        """``POST /user/keys`` to add *key* to the token owner's account."""
        payload = {"title": title, "key": key}
        return await self._request("POST", "/user/keys", token, payload=payload)

    async def validate_token(self, token: str) -> TokenValidation:
        """Check *token* against ``/user``.  Never raises for API failures."""
        try:
            response = await self.check_identity(token)
        except (GitHubAPIError, RequestTimeoutError) as exc:
            return TokenValidation(valid=False, error=str(exc))
        if response.status_code == 200:
            login = response.data.get("login") if isinstance(response.data, dict) else None
            return TokenValidation(valid=True, username=login or "unknown")
        return TokenValidation(valid=False, error=f"HTTP {response.status_code}")

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> ApiResponse:
        url = self._settings.api_url.rstrip("/") + path
        timeout = self._settings.timeout
        with trace_span("github.request", {"http.method": method, "http.route": path}) as span:
            try:
                async with asyncio.timeout(timeout):
                    if self._http_client is not None:
                        response = await self._send(self._http_client, method, url, token, payload)
                    else:
                        async with httpx.AsyncClient(timeout=timeout) as client:
                            response = await self._send(client, method, url, token, payload)
            except (TimeoutError, httpx.TimeoutException) as exc:
                raise RequestTimeoutError(f"Request timed out: {method} {path}") from exc
            except httpx.HTTPError as exc:
                raise GitHubAPIError(f"Request failed: {exc}") from exc
            span["http.status_code"] = response.status_code
        _log.debug("%s %s -> %d (%s)", method, path, response.status_code, response.status)
        return response

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        token: str,
        payload: dict[str, Any] | None,
    ) -> ApiResponse:
        limit = self._settings.max_response_bytes
        async with client.stream(method, url, headers=self._headers(token), json=payload) as resp:
            declared = resp.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise ResponseTooLargeError(
                    f"Response too large: {declared} bytes", status_code=resp.status_code
                )
            body = bytearray()
            async for chunk in resp.aiter_bytes():
                body.extend(chunk)
                if len(body) > limit:
                    raise ResponseTooLargeError(
                        f"Response exceeded {limit} bytes", status_code=resp.status_code
                    )
            status_code = resp.status_code

        text = body.decode("utf-8", errors="replace")
        try:
            data = json.loads(text) if text else None
        except ValueError:
            data = None
        return ApiResponse(
            status=classify(status_code, data), status_code=status_code, body=text, data=data
        )
