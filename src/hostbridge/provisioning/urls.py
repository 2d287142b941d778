"""Repository URL normalization for SSH cloning."""

from __future__ import annotations

import re

_HTTPS_PATTERN = re.compile(r"^https?://([^/@]+)/([^/]+)/([^/]+?)(?:\.git)?$")
_SCP_PATTERN = re.compile(r"^git@([^:/]+):(.+)$")


def normalize_repo_url(url: str) -> str:
    """Return the ``git@host:owner/repo.git`` form of *url*.

    HTTPS URLs and scp-style ``git@`` URLs are converted; anything else is
    returned with trailing slashes removed.

    >>> normalize_repo_url("https://github.com/user/repo/")
    'git@github.com:user/repo.git'
    """
    cleaned = url.rstrip("/")
    if match := _HTTPS_PATTERN.match(cleaned):
        host, owner, repo = match.groups()
        return f"git@{host}:{owner}/{repo}.git"
    if _SCP_PATTERN.match(cleaned):
        return cleaned if cleaned.endswith(".git") else cleaned + ".git"
    return cleaned
