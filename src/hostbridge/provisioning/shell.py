"""POSIX shell quoting for values interpolated into remote commands."""

from __future__ import annotations


def shell_quote(value: object) -> str:
    """Wrap *value* in single quotes; each embedded ``'`` becomes ``'\\''``."""
    return "'" + str(value).replace("'", "'\\''") + "'"
