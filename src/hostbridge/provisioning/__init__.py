"""Remote GitHub access provisioning.

Public API: ProvisioningEvent, ProvisioningInputs, ProvisioningRun,
    ProvisioningWorkflow, STEPS, StepDefinition, StepResult, StepStatus,
    normalize_repo_url, shell_quote
Internal: shell, steps, urls, workflow
"""

from hostbridge.provisioning.shell import shell_quote
from hostbridge.provisioning.steps import STEPS, StepDefinition
from hostbridge.provisioning.urls import normalize_repo_url
from hostbridge.provisioning.workflow import (
    ProvisioningEvent,
    ProvisioningInputs,
    ProvisioningRun,
    ProvisioningWorkflow,
    StepResult,
    StepStatus,
)

__all__ = [
    "STEPS",
    "ProvisioningEvent",
    "ProvisioningInputs",
    "ProvisioningRun",
    "ProvisioningWorkflow",
    "StepDefinition",
    "StepResult",
    "StepStatus",
    "normalize_repo_url",
    "shell_quote",
]
