"""The six provisioning steps as declared functions of their inputs.

Each step receives a :class:`StepContext` plus the outputs of the steps it
declares in ``requires``, and returns a human-readable output string.
Failures are raised as :class:`~hostbridge.errors.HostbridgeError`
subclasses; the workflow records them on the failing step.

Dependencies: errors, github.client, remote.executor, provisioning.shell
Wired in: provisioning/workflow.py → ProvisioningWorkflow.run()
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

import asyncssh

from hostbridge.errors import CommandFailedError
from hostbridge.github.client import ApiStatus, GitHubClient
from hostbridge.provisioning.shell import shell_quote
from hostbridge.remote.executor import CommandExecutor, CommandResult

_log = logging.getLogger(__name__)

KEY_PATH = "~/.ssh/hostbridge_github"
GITHUB_HOST = "github.com"


@dataclass(frozen=True)
class StepContext:
    """Everything a step may touch during one run."""

    conn: asyncssh.SSHClientConnection
    executor: CommandExecutor
    github: GitHubClient
    token: str = field(repr=False)
    repo_url: str
    git_user_name: str
    git_user_email: str
    key_title: str
    clone_timeout: float

    async def run(self, command: str, timeout: float | None = None) -> CommandResult:
        return await self.executor.execute(self.conn, command, timeout)


StepFn = Callable[[StepContext, Mapping[int, str]], Awaitable[str]]


@dataclass(frozen=True)
class StepDefinition:
    """One named step and the earlier steps whose outputs it consumes."""

    name: str
    run: StepFn
    requires: tuple[int, ...] = ()
    missing_input: str = "Required step output not available."
    """Failure text used when a required output is absent."""


async def generate_key(ctx: StepContext, _inputs: Mapping[int, str]) -> str:
    check = await ctx.run(f"test -f {KEY_PATH} && echo EXISTS || echo NOT_FOUND")
    if check.stdout.strip() == "EXISTS":
        return "Key already exists, skipping generation"

    await ctx.run("mkdir -p ~/.ssh && chmod 700 ~/.ssh")
    result = await ctx.run(
        f'ssh-keygen -t ed25519 -C {shell_quote(ctx.git_user_email)} -f {KEY_PATH} -N ""'
    )
    if not result.ok:
        raise CommandFailedError(result.stderr or "ssh-keygen failed", result=result)
    return "SSH key pair generated"


async def read_public_key(ctx: StepContext, _inputs: Mapping[int, str]) -> str:
    result = await ctx.run(f"cat {KEY_PATH}.pub")
    if not result.ok:
        raise CommandFailedError(result.stderr or "Could not read public key", result=result)
    key = result.stdout.strip()
    if not key:
        raise CommandFailedError("Public key file is empty", result=result)
    return key


async def add_key_to_github(ctx: StepContext, inputs: Mapping[int, str]) -> str:
    response = await ctx.github.register_key(ctx.token, inputs[1], ctx.key_title)
    if response.status is ApiStatus.ALREADY_EXISTS:
        return "Key already exists on GitHub"
    response.raise_for_status()
    return "Key added to GitHub successfully"


async def configure_git(ctx: StepContext, _inputs: Mapping[int, str]) -> str:
    name = ctx.git_user_name
    email = ctx.git_user_email
    result = await ctx.run(
        f"git config --global user.name {shell_quote(name)}"
        f" && git config --global user.email {shell_quote(email)}"
    )
    if not result.ok:
        if "not found" in result.stderr:
            raise CommandFailedError("git is not installed on this server", result=result)
        raise CommandFailedError(result.stderr or "git config failed", result=result)
    return f"Configured as {name} <{email}>"


async def verify_connection(ctx: StepContext, _inputs: Mapping[int, str]) -> str:
    keyscan = await ctx.run(
        f"ssh-keyscan -t ed25519,rsa {GITHUB_HOST} >> ~/.ssh/known_hosts 2>/dev/null"
    )
    if not keyscan.ok:
        _log.warning("ssh-keyscan failed (exit %d), continuing anyway", keyscan.exit_code)

    await ctx.run(
        f'grep -q "IdentityFile {KEY_PATH}" ~/.ssh/config 2>/dev/null'
        f' || printf "\\nHost {GITHUB_HOST}\\n  IdentityFile {KEY_PATH}\\n'
        f'  IdentitiesOnly yes\\n" >> ~/.ssh/config'
    )
    await ctx.run("chmod 600 ~/.ssh/config 2>/dev/null")

    result = await ctx.run(
        f"ssh -T -i {KEY_PATH} -o StrictHostKeyChecking=no git@{GITHUB_HOST} 2>&1 || true"
    )
    output = result.stdout + result.stderr
    if "successfully authenticated" in output:
        return "GitHub SSH connection verified"
    if "Permission denied" in output:
        raise CommandFailedError(
            "GitHub SSH verification failed: Permission denied. "
            "The key may not be properly added.",
            result=result,
        )
    return "Connection attempted - " + output.strip()[:200]


async def clone_repository(ctx: StepContext, _inputs: Mapping[int, str]) -> str:
    result = await ctx.run(
        f'GIT_SSH_COMMAND="ssh -i {KEY_PATH} -o IdentitiesOnly=yes"'
        f" git clone {shell_quote(ctx.repo_url)}",
        timeout=ctx.clone_timeout,
    )
    if not result.ok:
        if "already exists" in result.stderr:
            return "Repository directory already exists"
        raise CommandFailedError(result.stderr or "git clone failed", result=result)
    return "Repository cloned successfully"


STEPS: tuple[StepDefinition, ...] = (
    StepDefinition("Generating SSH key pair", generate_key),
    StepDefinition("Reading public key", read_public_key),
    StepDefinition(
        "Adding key to GitHub",
        add_key_to_github,
        requires=(1,),
        missing_input="Public key not available. Cannot skip key reading step.",
    ),
    StepDefinition("Configuring git identity", configure_git),
    StepDefinition("Verifying GitHub connection", verify_connection),
    StepDefinition("Cloning repository", clone_repository),
)
