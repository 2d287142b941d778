"""Ordered, resumable six-step bootstrap of GitHub access on a remote host.

A run opens one SSH connection, executes the declared steps in order from
``resume_from``, stops at the first failure (marking later steps skipped),
and always closes the connection.

Dependencies: config, errors, github.client, remote.connection,
    remote.executor, provisioning.steps, provisioning.urls, infra.otel_tracing
Wired in: services.py → build_services(), server/routes.py → provision()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from hostbridge.config import CommandSettings
from hostbridge.errors import HostbridgeError, MissingStepOutputError
from hostbridge.github.client import GitHubClient
from hostbridge.infra.otel_tracing import trace_span
from hostbridge.provisioning.steps import STEPS, StepContext, StepDefinition
from hostbridge.provisioning.urls import normalize_repo_url
from hostbridge.remote.connection import Connector, close_connection
from hostbridge.remote.executor import CommandExecutor

_log = logging.getLogger(__name__)


class StepStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ProvisioningInputs:
    """Operator-supplied parameters for one run."""

    repo_url: str
    token: str = field(repr=False)
    git_user_name: str
    git_user_email: str
    key_title: str = "hostbridge"


@dataclass(frozen=True)
class StepResult:
    index: int
    name: str
    status: StepStatus
    output: str | None = None


@dataclass
class ProvisioningRun:
    success: bool
    steps: list[StepResult]
    failed_step: int | None = None


@dataclass(frozen=True)
class ProvisioningEvent:
    """Progress notification for one step transition."""

    step: int
    total: int
    status: StepStatus
    message: str
    output: str | None = None


ProgressCallback = Callable[[ProvisioningEvent], None]


class ProvisioningWorkflow:
    """Drive the provisioning steps over one SSH connection."""

    def __init__(
        self,
        connector: Connector,
        executor: CommandExecutor,
        github: GitHubClient,
        settings: CommandSettings | None = None,
        steps: Sequence[StepDefinition] = STEPS,
    ) -> None:
        self._connector = connector
        self._executor = executor
        self._github = github
        self._settings = settings or CommandSettings()
        self._steps = tuple(steps)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    async def run(
        self,
        profile_id: str,
        inputs: ProvisioningInputs,
        on_progress: ProgressCallback | None = None,
        resume_from: int = 0,
    ) -> ProvisioningRun:
        """Execute the run against *profile_id*, starting at *resume_from*.

        Step failures are reported in the returned :class:`ProvisioningRun`.
        Connection and profile errors propagate before any step runs.
        """
        total = len(self._steps)
        if not 0 <= resume_from <= total:
            msg = f"resume_from must be between 0 and {total}, got {resume_from}"
            raise ValueError(msg)

        def emit(index: int, status: StepStatus, output: str | None = None) -> None:
            if on_progress is not None:
                on_progress(
                    ProvisioningEvent(
                        step=index,
                        total=total,
                        status=status,
                        message=self._steps[index].name,
                        output=output,
                    )
                )

        repo_url = normalize_repo_url(inputs.repo_url)
        conn = await self._connector.connect(profile_id)
        ctx = StepContext(
            conn=conn,
            executor=self._executor,
            github=self._github,
            token=inputs.token,
            repo_url=repo_url,
            git_user_name=inputs.git_user_name,
            git_user_email=inputs.git_user_email,
            key_title=inputs.key_title or "hostbridge",
            clone_timeout=self._settings.clone_timeout,
        )
        _log.info("Provisioning run on profile %s from step %d", profile_id, resume_from)

        results: list[StepResult] = []
        outputs: dict[int, str] = {}
        try:
            for index, step in enumerate(self._steps):
                if index < resume_from:
                    results.append(StepResult(index, step.name, StepStatus.SKIPPED))
                    continue

                emit(index, StepStatus.RUNNING)
                try:
                    output = await self._run_step(ctx, index, step, outputs)
                except HostbridgeError as exc:
                    message = str(exc)
                    _log.warning(
                        "Provisioning step %d (%s) failed: %s", index, step.name, message
                    )
                    results.append(StepResult(index, step.name, StepStatus.ERROR, message))
                    emit(index, StepStatus.ERROR, message)
                    for later in range(index + 1, total):
                        skipped = StepResult(later, self._steps[later].name, StepStatus.SKIPPED)
                        results.append(skipped)
                        emit(later, StepStatus.SKIPPED)
                    return ProvisioningRun(success=False, steps=results, failed_step=index)

                outputs[index] = output
                results.append(StepResult(index, step.name, StepStatus.SUCCESS, output))
                emit(index, StepStatus.SUCCESS, output)
        finally:
            await close_connection(conn)

        _log.info("Provisioning run on profile %s completed", profile_id)
        return ProvisioningRun(success=True, steps=results)

    async def _run_step(
        self, ctx: StepContext, index: int, step: StepDefinition, outputs: dict[int, str]
    ) -> str:
        missing = [req for req in step.requires if not outputs.get(req)]
        if missing:
            raise MissingStepOutputError(step.missing_input, required_step=missing[0])
        inputs = {req: outputs[req] for req in step.requires}
        with trace_span("provisioning.step", {"step.index": index, "step.name": step.name}):
            return await step.run(ctx, inputs)
