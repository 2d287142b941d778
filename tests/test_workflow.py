"""Tests for the provisioning workflow."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from hostbridge.errors import ProfileNotFoundError, SSHConnectionError
from hostbridge.github.client import GitHubClient
from hostbridge.provisioning.workflow import (
    ProvisioningEvent,
    ProvisioningInputs,
    ProvisioningRun,
    ProvisioningWorkflow,
    StepStatus,
)
from hostbridge.remote.executor import CommandExecutor

from fakes import FakeConnection, FakeConnector, Reply, scripted

PUBLIC_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAA deploy@box"
GREETING = "Hi user! You've successfully authenticated, but GitHub does not provide shell access."

INPUTS = ProvisioningInputs(
    repo_url="https://github.com/user/repo",
    token="ghp_secret",
    git_user_name="Jane O'Doe",
    git_user_email="jane@example.com",
    key_title="box",
)


def _rules(overrides: dict[str, Reply] | None = None) -> list[tuple[str, Reply]]:
    replies: dict[str, Reply] = {
        "test -f": (0, "NOT_FOUND\n", ""),
        "cat ": (0, PUBLIC_KEY + "\n", ""),
        "ssh -T": (0, GREETING + "\n", ""),
        "git clone": (0, "", "Cloning into 'repo'...\n"),
        "git config": (0, "", ""),
    }
    replies.update(overrides or {})
    return list(replies.items())


class Harness:
    def __init__(
        self,
        rules: list[tuple[str, Reply]] | None = None,
        *,
        github_status: int = 201,
        github_body: dict[str, Any] | None = None,
        connector: FakeConnector | None = None,
    ) -> None:
        self.responder = scripted(rules if rules is not None else _rules())
        self.connector = connector or FakeConnector(
            factory=lambda: FakeConnection(self.responder)
        )
        self.github_requests: list[httpx.Request] = []
        self.events: list[ProvisioningEvent] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.github_requests.append(request)
            return httpx.Response(github_status, json=github_body or {"id": 7})

        github = GitHubClient(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        self.workflow = ProvisioningWorkflow(self.connector, CommandExecutor(), github)

    @property
    def conn(self) -> FakeConnection:
        return self.connector.connections[0]

    def statuses(self) -> list[tuple[int, StepStatus]]:
        return [(event.step, event.status) for event in self.events]

    async def run(self, resume_from: int = 0) -> ProvisioningRun:
        return await self.workflow.run("box", INPUTS, self.events.append, resume_from)


class TestFullRun:
    @pytest.mark.asyncio()
    async def test_all_steps_succeed(self) -> None:
        harness = Harness()
        run = await harness.run()

        assert run.success
        assert run.failed_step is None
        assert [step.status for step in run.steps] == [StepStatus.SUCCESS] * 6
        assert run.steps[0].output == "SSH key pair generated"
        assert run.steps[1].output == PUBLIC_KEY
        assert run.steps[2].output == "Key added to GitHub successfully"
        assert run.steps[3].output == "Configured as Jane O'Doe <jane@example.com>"
        assert run.steps[4].output == "GitHub SSH connection verified"
        assert run.steps[5].output == "Repository cloned successfully"
        assert harness.conn.closed

    @pytest.mark.asyncio()
    async def test_events_bracket_each_step(self) -> None:
        harness = Harness()
        await harness.run()

        expected = []
        for index in range(6):
            expected += [(index, StepStatus.RUNNING), (index, StepStatus.SUCCESS)]
        assert harness.statuses() == expected
        assert all(event.total == 6 for event in harness.events)
        assert harness.events[0].message == "Generating SSH key pair"

    @pytest.mark.asyncio()
    async def test_public_key_is_registered_with_title(self) -> None:
        harness = Harness()
        await harness.run()

        request = harness.github_requests[0]
        assert request.url.path == "/user/keys"
        assert request.headers["Authorization"] == "Bearer ghp_secret"
        assert json.loads(request.content) == {"title": "box", "key": PUBLIC_KEY}

    @pytest.mark.asyncio()
    async def test_clone_uses_normalized_quoted_url(self) -> None:
        harness = Harness()
        await harness.run()

        clone = next(cmd for cmd in harness.conn.commands if "git clone" in cmd)
        assert "'git@github.com:user/repo.git'" in clone
        assert "IdentitiesOnly=yes" in clone

    @pytest.mark.asyncio()
    async def test_identity_values_are_shell_quoted(self) -> None:
        harness = Harness()
        await harness.run()

        config = next(cmd for cmd in harness.conn.commands if "git config" in cmd)
        assert "user.name 'Jane O'\\''Doe'" in config
        assert "user.email 'jane@example.com'" in config

    def test_token_not_in_repr(self) -> None:
        assert "ghp_secret" not in repr(INPUTS)


class TestStepOutcomes:
    @pytest.mark.asyncio()
    async def test_existing_key_skips_generation(self) -> None:
        harness = Harness(_rules({"test -f": (0, "EXISTS\n", "")}))
        run = await harness.run()

        assert run.steps[0].output == "Key already exists, skipping generation"
        assert not any("ssh-keygen" in cmd for cmd in harness.conn.commands)

    @pytest.mark.asyncio()
    async def test_duplicate_key_on_github_is_success(self) -> None:
        body = {"message": "Validation Failed", "errors": [{"message": "key is already in use"}]}
        harness = Harness(github_status=422, github_body=body)
        run = await harness.run()

        assert run.success
        assert run.steps[2].output == "Key already exists on GitHub"

    @pytest.mark.asyncio()
    async def test_existing_clone_directory_is_success(self) -> None:
        exists = (128, "", "fatal: destination path 'repo' already exists and is not empty.")
        harness = Harness(_rules({"git clone": exists}))
        run = await harness.run()

        assert run.success
        assert run.steps[5].output == "Repository directory already exists"

    @pytest.mark.asyncio()
    async def test_unconfirmed_verification_still_passes(self) -> None:
        harness = Harness(_rules({"ssh -T": (0, "Connection closed by remote host\n", "")}))
        run = await harness.run()

        assert run.success
        assert run.steps[4].output == "Connection attempted - Connection closed by remote host"


class TestFailures:
    @pytest.mark.asyncio()
    async def test_rejected_token_stops_at_step_two(self) -> None:
        harness = Harness(github_status=401, github_body={"message": "Bad credentials"})
        run = await harness.run()

        assert not run.success
        assert run.failed_step == 2
        assert run.steps[2].status is StepStatus.ERROR
        assert run.steps[2].output == "Invalid or expired Personal Access Token"
        assert [step.status for step in run.steps[3:]] == [StepStatus.SKIPPED] * 3
        assert harness.statuses()[-4:] == [
            (2, StepStatus.ERROR),
            (3, StepStatus.SKIPPED),
            (4, StepStatus.SKIPPED),
            (5, StepStatus.SKIPPED),
        ]
        assert not any("git config" in cmd for cmd in harness.conn.commands)
        assert harness.conn.closed

    @pytest.mark.asyncio()
    async def test_permission_denied_fails_verification(self) -> None:
        denied = (0, "git@github.com: Permission denied (publickey).\n", "")
        harness = Harness(_rules({"ssh -T": denied}))
        run = await harness.run()

        assert run.failed_step == 4
        assert run.steps[4].output is not None
        assert "Permission denied" in run.steps[4].output
        assert run.steps[5].status is StepStatus.SKIPPED

    @pytest.mark.asyncio()
    async def test_missing_git_is_reported(self) -> None:
        harness = Harness(_rules({"git config": (127, "", "bash: git: command not found")}))
        run = await harness.run()

        assert run.failed_step == 3
        assert run.steps[3].output == "git is not installed on this server"

    @pytest.mark.asyncio()
    async def test_unknown_profile_propagates(self) -> None:
        harness = Harness(connector=FakeConnector(profiles=()))
        with pytest.raises(ProfileNotFoundError):
            await harness.run()
        assert harness.events == []

    @pytest.mark.asyncio()
    async def test_unreachable_host_propagates(self) -> None:
        harness = Harness(connector=FakeConnector(fail=True))
        with pytest.raises(SSHConnectionError):
            await harness.run()


class TestResume:
    @pytest.mark.asyncio()
    async def test_resume_at_github_needs_public_key(self) -> None:
        harness = Harness()
        run = await harness.run(resume_from=2)

        assert not run.success
        assert run.failed_step == 2
        assert run.steps[2].output == "Public key not available. Cannot skip key reading step."
        assert [step.status for step in run.steps[:2]] == [StepStatus.SKIPPED] * 2
        assert all(event.step >= 2 for event in harness.events)
        assert harness.github_requests == []

    @pytest.mark.asyncio()
    async def test_resume_after_github(self) -> None:
        harness = Harness()
        run = await harness.run(resume_from=3)

        assert run.success
        assert [step.status for step in run.steps] == (
            [StepStatus.SKIPPED] * 3 + [StepStatus.SUCCESS] * 3
        )
        assert harness.statuses()[0] == (3, StepStatus.RUNNING)
        assert not any("ssh-keygen" in cmd for cmd in harness.conn.commands)

    @pytest.mark.asyncio()
    async def test_resume_past_the_end_runs_nothing(self) -> None:
        harness = Harness()
        run = await harness.run(resume_from=6)

        assert run.success
        assert harness.events == []
        assert harness.conn.commands == []

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("resume_from", [-1, 7])
    async def test_out_of_range_rejected_before_connecting(self, resume_from: int) -> None:
        harness = Harness()
        with pytest.raises(ValueError, match="resume_from"):
            await harness.run(resume_from=resume_from)
        assert harness.connector.connections == []
