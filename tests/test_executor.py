"""Tests for remote command execution."""

from __future__ import annotations

import asyncio

import pytest

from hostbridge.config import CommandSettings
from hostbridge.errors import CommandFailedError, CommandTimeoutError
from hostbridge.remote.executor import CommandExecutor, CommandResult

from fakes import FakeConnection, scripted


class TestExecute:
    @pytest.mark.asyncio()
    async def test_returns_output_and_exit_code(self) -> None:
        conn = FakeConnection(scripted([("whoami", (0, "deploy\n", ""))]))
        result = await CommandExecutor().execute(conn, "whoami")
        assert result == CommandResult(exit_code=0, stdout="deploy\n", stderr="")
        assert conn.exec_processes[0].closed

    @pytest.mark.asyncio()
    async def test_nonzero_exit_is_not_an_error(self) -> None:
        conn = FakeConnection(scripted([("false", (1, "", "nope"))]))
        result = await CommandExecutor().execute(conn, "false")
        assert result.exit_code == 1
        assert not result.ok
        assert result.stderr == "nope"

    @pytest.mark.asyncio()
    async def test_missing_exit_status_reads_as_zero(self) -> None:
        conn = FakeConnection(scripted([], default=(None, "out", "")))
        result = await CommandExecutor().execute(conn, "true")
        assert result.exit_code == 0

    @pytest.mark.asyncio()
    async def test_timeout_closes_channel_and_raises(self) -> None:
        conn = FakeConnection(lambda _cmd: None)
        executor = CommandExecutor()
        with pytest.raises(CommandTimeoutError, match="sleep 100") as exc_info:
            await executor.execute(conn, "sleep 100", timeout=0.05)
        assert isinstance(exc_info.value, TimeoutError)
        assert conn.exec_processes[0].closed

    @pytest.mark.asyncio()
    async def test_default_timeout_comes_from_settings(self) -> None:
        conn = FakeConnection(lambda _cmd: None)
        executor = CommandExecutor(CommandSettings(timeout=0.05))
        assert executor.default_timeout == 0.05
        with pytest.raises(CommandTimeoutError):
            await executor.execute(conn, "hang")

    @pytest.mark.asyncio()
    async def test_invalid_utf8_output_is_replaced(self) -> None:
        conn = FakeConnection(
            scripted([("cat", (0, b"before \xff\xfe after\n", b"warn \xe9\n"))])
        )
        executor = CommandExecutor()
        result = await executor.execute(conn, "cat blob.bin")
        assert result.stdout == "before \ufffd\ufffd after\n"
        assert result.stderr == "warn \ufffd\n"

        again = await executor.execute(conn, "cat blob.bin")
        assert again.ok
        assert len(conn.commands) == 2

    @pytest.mark.asyncio()
    async def test_multibyte_output_survives(self) -> None:
        conn = FakeConnection(scripted([("echo", (0, "héllo ✓\n", ""))]))
        result = await CommandExecutor().execute(conn, "echo")
        assert result.stdout == "héllo ✓\n"

    @pytest.mark.asyncio()
    async def test_channel_open_failure_is_command_failed(self) -> None:
        conn = FakeConnection()

        async def refuse(*_args: object, **_kwargs: object) -> None:
            raise OSError("channel refused")

        conn.create_process = refuse  # type: ignore[method-assign]
        with pytest.raises(CommandFailedError, match="channel refused"):
            await CommandExecutor().execute(conn, "ls")


class TestSerialization:
    @pytest.mark.asyncio()
    async def test_one_channel_per_connection_at_a_time(self) -> None:
        active = 0
        peak = 0

        class SlowConnection(FakeConnection):
            async def create_process(self, command: str | None = None, **kwargs: object):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                process = await super().create_process(command, **kwargs)
                active -= 1
                return process

        conn = SlowConnection()
        executor = CommandExecutor()
        await asyncio.gather(*(executor.execute(conn, f"echo {i}") for i in range(5)))
        assert peak == 1
        assert len(conn.commands) == 5

    @pytest.mark.asyncio()
    async def test_separate_connections_run_in_parallel(self) -> None:
        first, second = FakeConnection(), FakeConnection()
        executor = CommandExecutor()
        await asyncio.gather(
            executor.execute(first, "a"),
            executor.execute(second, "b"),
        )
        assert first.commands == ["a"]
        assert second.commands == ["b"]


class TestRunChecked:
    @pytest.mark.asyncio()
    async def test_raises_with_result_on_failure(self) -> None:
        conn = FakeConnection(scripted([("git", (127, "", "git: not found"))]))
        with pytest.raises(CommandFailedError, match="git: not found") as exc_info:
            await CommandExecutor().run_checked(conn, "git status")
        assert isinstance(exc_info.value.result, CommandResult)
        assert exc_info.value.result.exit_code == 127

    @pytest.mark.asyncio()
    async def test_returns_result_on_success(self) -> None:
        conn = FakeConnection(scripted([("uptime", (0, "up 3 days", ""))]))
        result = await CommandExecutor().run_checked(conn, "uptime")
        assert result.stdout == "up 3 days"
