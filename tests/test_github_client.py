"""Tests for the GitHub REST client."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from hostbridge.config import GitHubSettings
from hostbridge.errors import (
    GitHubAPIError,
    InsufficientScopeError,
    InvalidTokenError,
    RequestTimeoutError,
    ResponseTooLargeError,
    ValidationFailedError,
)
from hostbridge.github.client import ApiStatus, GitHubClient, classify

Handler = Callable[[httpx.Request], Any]


def _client(handler: Handler, **settings: Any) -> GitHubClient:
    transport = httpx.MockTransport(handler)
    return GitHubClient(
        GitHubSettings(**settings),
        http_client=httpx.AsyncClient(transport=transport),
    )


class TestClassify:
    @pytest.mark.parametrize(
        ("status_code", "data", "expected"),
        [
            (200, {}, ApiStatus.SUCCESS),
            (201, {}, ApiStatus.SUCCESS),
            (401, {}, ApiStatus.INVALID_TOKEN),
            (403, {}, ApiStatus.FORBIDDEN),
            (422, {"errors": [{"message": "key is already in use"}]}, ApiStatus.ALREADY_EXISTS),
            (422, {"errors": [{"message": "Key already exists"}]}, ApiStatus.ALREADY_EXISTS),
            (422, {"errors": [{"message": "key is invalid"}]}, ApiStatus.VALIDATION_FAILED),
            (422, None, ApiStatus.VALIDATION_FAILED),
            (500, None, ApiStatus.ERROR),
            (404, {}, ApiStatus.ERROR),
        ],
    )
    def test_status_mapping(self, status_code: int, data: Any, expected: ApiStatus) -> None:
        assert classify(status_code, data) is expected


class TestRequests:
    @pytest.mark.asyncio()
    async def test_check_identity_sends_api_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"login": "octocat"})

        response = await _client(handler, user_agent="hostbridge-test").check_identity("tok")
        assert response.status is ApiStatus.SUCCESS
        assert response.data == {"login": "octocat"}

        request = seen[0]
        assert request.method == "GET"
        assert request.url == "https://api.github.com/user"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert request.headers["User-Agent"] == "hostbridge-test"

    @pytest.mark.asyncio()
    async def test_register_key_posts_json(self) -> None:
        bodies: list[dict[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            assert request.url.path == "/user/keys"
            return httpx.Response(201, json={"id": 1})

        response = await _client(handler).register_key("tok", "ssh-ed25519 AAAA", "laptop")
        assert response.status_code == 201
        assert bodies == [{"title": "laptop", "key": "ssh-ed25519 AAAA"}]

    @pytest.mark.asyncio()
    async def test_custom_api_url(self) -> None:
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={})

        await _client(handler, api_url="https://ghe.example.com/api/v3").check_identity("t")
        assert urls == ["https://ghe.example.com/api/v3/user"]


class TestRaiseForStatus:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("status_code", "payload", "error", "message"),
        [
            (401, {}, InvalidTokenError, "Invalid or expired Personal Access Token"),
            (403, {}, InsufficientScopeError, "admin:public_key"),
            (422, {"message": "key is invalid"}, ValidationFailedError, "key is invalid"),
            (422, {}, ValidationFailedError, "GitHub API validation error"),
            (500, {"message": "boom"}, GitHubAPIError, "GitHub API error: 500"),
        ],
    )
    async def test_error_mapping(
        self,
        status_code: int,
        payload: dict[str, str],
        error: type[GitHubAPIError],
        message: str,
    ) -> None:
        client = _client(lambda _req: httpx.Response(status_code, json=payload))
        response = await client.register_key("tok", "key", "title")
        with pytest.raises(error, match=message) as exc_info:
            response.raise_for_status()
        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio()
    async def test_duplicate_key_is_not_raised(self) -> None:
        payload = {"message": "Validation Failed", "errors": [{"message": "key is already in use"}]}
        client = _client(lambda _req: httpx.Response(422, json=payload))
        response = await client.register_key("tok", "key", "title")
        assert response.status is ApiStatus.ALREADY_EXISTS
        assert response.raise_for_status() is response


class TestLimits:
    @pytest.mark.asyncio()
    async def test_declared_length_over_cap_aborts(self) -> None:
        client = _client(
            lambda _req: httpx.Response(200, content=b"x" * 500), max_response_bytes=100
        )
        with pytest.raises(ResponseTooLargeError):
            await client.check_identity("tok")

    @pytest.mark.asyncio()
    async def test_streamed_body_over_cap_stops_reading(self) -> None:
        consumed: list[int] = []

        async def body() -> AsyncIterator[bytes]:
            for index in range(10):
                consumed.append(index)
                yield b"x" * 60

        client = _client(lambda _req: httpx.Response(200, content=body()), max_response_bytes=100)
        with pytest.raises(ResponseTooLargeError):
            await client.check_identity("tok")
        assert len(consumed) < 10

    @pytest.mark.asyncio()
    async def test_body_at_cap_is_accepted(self) -> None:
        client = _client(
            lambda _req: httpx.Response(200, content=b"x" * 100), max_response_bytes=100
        )
        response = await client.check_identity("tok")
        assert response.body == "x" * 100
        assert response.data is None

    @pytest.mark.asyncio()
    async def test_slow_response_times_out(self) -> None:
        async def handler(_request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        client = _client(handler, timeout=0.05)
        with pytest.raises(RequestTimeoutError):
            await client.check_identity("tok")

    @pytest.mark.asyncio()
    async def test_transport_failure_is_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GitHubAPIError, match="connection refused"):
            await _client(handler).check_identity("tok")


class TestValidateToken:
    @pytest.mark.asyncio()
    async def test_valid_token_reports_login(self) -> None:
        client = _client(lambda _req: httpx.Response(200, json={"login": "octocat"}))
        result = await client.validate_token("tok")
        assert result.valid
        assert result.username == "octocat"

    @pytest.mark.asyncio()
    async def test_missing_login_is_unknown(self) -> None:
        client = _client(lambda _req: httpx.Response(200, json={}))
        result = await client.validate_token("tok")
        assert result.username == "unknown"

    @pytest.mark.asyncio()
    async def test_rejected_token(self) -> None:
        client = _client(lambda _req: httpx.Response(401, json={"message": "Bad credentials"}))
        result = await client.validate_token("tok")
        assert not result.valid
        assert result.error == "HTTP 401"

    @pytest.mark.asyncio()
    async def test_never_raises_on_transport_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host", request=request)

        result = await _client(handler).validate_token("tok")
        assert not result.valid
        assert result.error is not None
        assert "no route to host" in result.error
