"""Connection profiles and the resolver interface that produces them.

Encrypted credential storage lives outside this package; hostbridge only
consumes it through :class:`ProfileResolver`.  :class:`StaticProfileResolver`
covers tests and file-based setups where secrets arrive via environment
variables named in ``[profiles.<id>]`` tables.

Dependencies: errors
Wired in: remote/connection.py → SSHConnector, services.py → build_services()
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol, cast

from hostbridge.errors import ProfileNotFoundError

_UNSAFE_PATTERN = re.compile(r"[/\\]|\.\.")
_MAX_SLUG_LENGTH = 64


class AuthKind(StrEnum):
    """How a profile authenticates."""

    PASSWORD = "password"
    KEY = "key"


@dataclass(frozen=True)
class ConnectionProfile:
    """Resolved parameters needed to reach one SSH target."""

    host: str
    username: str
    port: int = 22
    auth_kind: AuthKind = AuthKind.PASSWORD
    password: str | None = field(default=None, repr=False)
    key_path: Path | None = None
    passphrase: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")
        if self.auth_kind is AuthKind.KEY and self.key_path is None:
            raise ValueError("key authentication requires key_path")

    @property
    def display_name(self) -> str:
        """``user@host:port`` for log lines."""
        return f"{self.username}@{self.host}:{self.port}"


class ProfileResolver(Protocol):
    """Anything that can turn a profile id into a :class:`ConnectionProfile`."""

    def resolve(self, profile_id: str) -> ConnectionProfile:
        """Return the profile or raise :class:`ProfileNotFoundError`."""
        ...


class StaticProfileResolver:
    """Resolver over a fixed in-memory mapping."""

    def __init__(self, profiles: Mapping[str, ConnectionProfile] | None = None) -> None:
        self._profiles: dict[str, ConnectionProfile] = dict(profiles or {})

    def resolve(self, profile_id: str) -> ConnectionProfile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def add(self, profile_id: str, profile: ConnectionProfile) -> None:
        self._profiles[validate_slug(profile_id)] = profile

    def ids(self) -> list[str]:
        return sorted(self._profiles)


def validate_slug(name: str) -> str:
    """Validate a slug-style profile id.

    Rejects empty strings, path traversal sequences (``..``, ``/``, ``\\``)
    and names longer than 64 characters.  Returns the stripped *name*.
    """
    stripped = name.strip() if name else ""
    if not stripped:
        raise ValueError("Name must not be empty")
    if _UNSAFE_PATTERN.search(stripped):
        raise ValueError(f"Name contains unsafe path characters: {stripped!r}")
    if len(stripped) > _MAX_SLUG_LENGTH:
        raise ValueError(f"Name exceeds {_MAX_SLUG_LENGTH} characters: {len(stripped)}")
    return stripped


def _secret_from_env(profile_id: str, raw: dict[str, object], key: str) -> str | None:
    env_name = raw.get(key)
    if env_name is None:
        return None
    value = os.getenv(str(env_name))
    if value is None:
        msg = f"Profile '{profile_id}': environment variable {env_name} is not set."
        raise ValueError(msg)
    return value


def _parse_profile(profile_id: str, raw: dict[str, object]) -> ConnectionProfile:
    auth_raw = str(raw.get("auth", AuthKind.PASSWORD))
    try:
        auth_kind = AuthKind(auth_raw)
    except ValueError as exc:
        msg = (
            f"Profile '{profile_id}': invalid auth '{auth_raw}'. "
            f"Must be one of {sorted(k.value for k in AuthKind)}."
        )
        raise ValueError(msg) from exc

    key_path_raw = raw.get("key_path")
    return ConnectionProfile(
        host=str(raw.get("host", "")),
        port=int(str(raw.get("port", 22))),
        username=str(raw.get("username", "")),
        auth_kind=auth_kind,
        password=_secret_from_env(profile_id, raw, "password_env"),
        key_path=Path(str(key_path_raw)).expanduser() if key_path_raw else None,
        passphrase=_secret_from_env(profile_id, raw, "passphrase_env"),
    )


def load_profiles(config_path: Path) -> StaticProfileResolver:
    """Load ``[profiles.<id>]`` tables from a TOML file.

    A missing file yields an empty resolver.
    """
    resolver = StaticProfileResolver()
    if not config_path.is_file():
        return resolver

    with config_path.open("rb") as fh:
        data = tomllib.load(fh)

    profiles_raw = data.get("profiles")
    if not isinstance(profiles_raw, dict):
        return resolver

    for profile_id, value in cast(dict[str, object], profiles_raw).items():
        if not isinstance(value, dict):
            continue
        resolver.add(profile_id, _parse_profile(profile_id, cast(dict[str, object], value)))
    return resolver
