"""Settings loading and TOML parsing.

Settings come from a ``hostbridge.toml`` file (all sections optional) and
are then overridden by ``HOSTBRIDGE_*`` environment variables.  When no file
exists the defaults below are used unchanged.

Dependencies: (none — leaf module)
Wired in: services.py → build_services(), server/cli.py → run_server()
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import cast

_CONFIG_ENV = "HOSTBRIDGE_CONFIG"
_DEFAULT_CONFIG_PATH = "~/.hostbridge/hostbridge.toml"


def default_shell() -> str:
    """Return the user's login shell, falling back to ``/bin/bash``."""
    return os.environ.get("SHELL") or "/bin/bash"


@dataclass(frozen=True)
class SessionSettings:
    """Interactive session limits and terminal defaults."""

    max_local: int = 8
    """Maximum number of concurrently open local shells."""

    shell: str = field(default_factory=default_shell)
    """Shell executable spawned for local sessions."""

    term_type: str = "xterm-256color"
    """Terminal type requested for remote pty shells."""

    close_timeout: float = 5.0
    """Seconds ``close_all`` waits for channels before forcing them down."""


@dataclass(frozen=True)
class SSHSettings:
    """Connection establishment options."""

    connect_timeout: float = 15.0
    known_hosts: str | None = None
    """Path to a known_hosts file.  ``None`` disables host key checking."""


@dataclass(frozen=True)
class CommandSettings:
    """Remote command timeouts in seconds."""

    timeout: float = 15.0
    clone_timeout: float = 30.0


@dataclass(frozen=True)
class GitHubSettings:
    """GitHub REST API client options."""

    api_url: str = "https://api.github.com"
    timeout: float = 15.0
    max_response_bytes: int = 1024 * 1024
    user_agent: str = "hostbridge"


@dataclass(frozen=True)
class ServerSettings:
    """Bind address for ``hostbridge.server``."""

    host: str = "127.0.0.1"
    port: int = 8430


@dataclass(frozen=True)
class Settings:
    """Immutable aggregate of every configuration section."""

    sessions: SessionSettings = field(default_factory=SessionSettings)
    ssh: SSHSettings = field(default_factory=SSHSettings)
    commands: CommandSettings = field(default_factory=CommandSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    server: ServerSettings = field(default_factory=ServerSettings)


def resolve_config_path(path: Path | None = None) -> Path:
    """Pick the settings file: explicit *path* > ``$HOSTBRIDGE_CONFIG`` > default."""
    if path is not None:
        return path
    return Path(os.getenv(_CONFIG_ENV, _DEFAULT_CONFIG_PATH)).expanduser()


def _section(data: dict[str, object], name: str) -> dict[str, object]:
    raw = data.get(name)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"[{name}] must be a table."
        raise TypeError(msg)
    return cast(dict[str, object], raw)


def _positive(section: str, key: str, value: object) -> float:
    try:
        number = float(str(value))
    except ValueError as exc:
        msg = f"[{section}] {key} must be a number, got {value!r}."
        raise ValueError(msg) from exc
    if number <= 0:
        msg = f"[{section}] {key} must be > 0, got {value!r}."
        raise ValueError(msg)
    return number


def _parse_settings(data: dict[str, object]) -> Settings:
    sessions_raw = _section(data, "sessions")
    ssh_raw = _section(data, "ssh")
    commands_raw = _section(data, "commands")
    github_raw = _section(data, "github")
    server_raw = _section(data, "server")

    base = Settings()

    max_local = sessions_raw.get("max_local", base.sessions.max_local)
    sessions = SessionSettings(
        max_local=int(_positive("sessions", "max_local", max_local)),
        shell=str(sessions_raw.get("shell") or base.sessions.shell),
        term_type=str(sessions_raw.get("term_type", base.sessions.term_type)),
        close_timeout=_positive(
            "sessions",
            "close_timeout",
            sessions_raw.get("close_timeout", base.sessions.close_timeout),
        ),
    )
    known_hosts = ssh_raw.get("known_hosts")
    ssh = SSHSettings(
        connect_timeout=_positive(
            "ssh", "connect_timeout", ssh_raw.get("connect_timeout", base.ssh.connect_timeout)
        ),
        known_hosts=str(Path(str(known_hosts)).expanduser()) if known_hosts else None,
    )
    commands = CommandSettings(
        timeout=_positive(
            "commands", "timeout", commands_raw.get("timeout", base.commands.timeout)
        ),
        clone_timeout=_positive(
            "commands",
            "clone_timeout",
            commands_raw.get("clone_timeout", base.commands.clone_timeout),
        ),
    )
    github = GitHubSettings(
        api_url=str(github_raw.get("api_url", base.github.api_url)).rstrip("/"),
        timeout=_positive("github", "timeout", github_raw.get("timeout", base.github.timeout)),
        max_response_bytes=int(
            _positive(
                "github",
                "max_response_bytes",
                github_raw.get("max_response_bytes", base.github.max_response_bytes),
            )
        ),
        user_agent=str(github_raw.get("user_agent", base.github.user_agent)),
    )
    server = ServerSettings(
        host=str(server_raw.get("host", base.server.host)),
        port=int(_positive("server", "port", server_raw.get("port", base.server.port))),
    )
    return Settings(sessions=sessions, ssh=ssh, commands=commands, github=github, server=server)


def _apply_env(settings: Settings) -> Settings:
    """Overlay ``HOSTBRIDGE_*`` environment variables on *settings*."""
    sessions = settings.sessions
    if raw := os.getenv("HOSTBRIDGE_MAX_LOCAL_SESSIONS"):
        sessions = replace(sessions, max_local=int(_positive("env", "max_local", raw)))
    if raw := os.getenv("HOSTBRIDGE_SHELL"):
        sessions = replace(sessions, shell=raw)

    ssh = settings.ssh
    if raw := os.getenv("HOSTBRIDGE_KNOWN_HOSTS"):
        ssh = replace(ssh, known_hosts=str(Path(raw).expanduser()))

    github = settings.github
    if raw := os.getenv("HOSTBRIDGE_GITHUB_API_URL"):
        github = replace(github, api_url=raw.rstrip("/"))

    server = settings.server
    if raw := os.getenv("HOSTBRIDGE_HOST"):
        server = replace(server, host=raw)
    if raw := os.getenv("HOSTBRIDGE_PORT"):
        server = replace(server, port=int(_positive("env", "port", raw)))

    return replace(settings, sessions=sessions, ssh=ssh, github=github, server=server)


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from TOML, then apply environment overrides.

    A missing file is not an error: defaults are used.
    """
    config_path = resolve_config_path(path)
    if config_path.is_file():
        with config_path.open("rb") as fh:
            data = tomllib.load(fh)
        settings = _parse_settings(data)
    else:
        settings = Settings()
    return _apply_env(settings)
