"""Exception hierarchy shared by every hostbridge service.

Unknown session ids are deliberately *not* represented here: registries
report them with a ``False`` return so callers can route without exceptions.

Dependencies: (none — leaf module)
Wired in: every service module, server/routes.py
"""

from __future__ import annotations


class HostbridgeError(Exception):
    """Base class for all errors raised by hostbridge."""


class ProfileNotFoundError(HostbridgeError, KeyError):
    """No connection profile is registered under the requested id."""

    def __init__(self, profile_id: str) -> None:
        super().__init__(profile_id)
        self.profile_id = profile_id

    def __str__(self) -> str:
        return f"SSH profile not found: {self.profile_id}"


class SSHConnectionError(HostbridgeError, ConnectionError):
    """Authentication, network or timeout failure while establishing SSH."""


class CapacityExceededError(HostbridgeError):
    """The local session registry is at its configured maximum."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum {limit} terminals reached")
        self.limit = limit


class CommandTimeoutError(HostbridgeError, TimeoutError):
    """A remote command did not complete within its timeout."""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command timed out after {timeout:g}s: {command[:50]}")
        self.command = command
        self.timeout = timeout


class CommandFailedError(HostbridgeError):
    """A remote command could not run or finished unsuccessfully.

    ``result`` is set when the command ran to completion with a non-zero
    exit code; it is ``None`` when the exec channel itself failed.
    """

    def __init__(self, message: str, *, result: object | None = None) -> None:
        super().__init__(message)
        self.result = result


class TransferError(HostbridgeError):
    """A file-level failure aborted an upload.

    Files copied before the failure stay on the remote host.
    """

    def __init__(self, message: str, *, uploaded: int = 0, path: str | None = None) -> None:
        super().__init__(message)
        self.uploaded = uploaded
        self.path = path


class GitHubAPIError(HostbridgeError):
    """The GitHub API returned an unexpected status or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InvalidTokenError(GitHubAPIError):
    """401: the personal access token is invalid or expired."""


class InsufficientScopeError(GitHubAPIError):
    """403: the token lacks the required scope, or the caller is rate limited."""


class ValidationFailedError(GitHubAPIError):
    """422 that is not a benign duplicate."""


class ResponseTooLargeError(GitHubAPIError):
    """The response body exceeded the configured byte cap."""


class RequestTimeoutError(HostbridgeError, TimeoutError):
    """The API request did not finish within the request timeout."""


class MissingStepOutputError(HostbridgeError):
    """A provisioning step needs output from a step that did not run."""

    def __init__(self, message: str, *, required_step: int) -> None:
        super().__init__(message)
        self.required_step = required_step
