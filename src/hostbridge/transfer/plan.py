"""Upload planning: decide which directories and files a transfer copies.

Dependencies: (none)
Wired in: transfer/engine.py → TransferEngine
"""

from __future__ import annotations

import os
import posixpath
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TransferPlan:
    """Immutable result of walking an upload source.

    ``directories`` and ``files`` are root-relative POSIX paths in walk
    order, parents before children.
    """

    root: Path
    is_dir: bool
    selection: frozenset[str] | None
    dir_prefixes: frozenset[str] | None
    directories: tuple[str, ...]
    files: tuple[str, ...]

    @property
    def total(self) -> int:
        return len(self.files)


def dir_prefixes_for(selection: Iterable[str]) -> frozenset[str]:
    """Every proper ancestor directory of each selected path.

    >>> sorted(dir_prefixes_for(["a/b/c.txt", "d.txt"]))
    ['a', 'a/b']
    """
    prefixes: set[str] = set()
    for rel in selection:
        parts = rel.split("/")
        for depth in range(1, len(parts)):
            prefixes.add("/".join(parts[:depth]))
    return frozenset(prefixes)


def resolve_remote_path(local_path: Path, remote_path: str) -> str:
    """Append the source's base name when *remote_path* names a directory."""
    if remote_path.endswith("/"):
        return remote_path + local_path.name
    return remote_path


def _walk(
    root: Path,
    rel_dir: str,
    selection: frozenset[str] | None,
    dir_prefixes: frozenset[str] | None,
    directories: list[str],
    files: list[str],
) -> None:
    with os.scandir(root / rel_dir if rel_dir else root) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        rel = posixpath.join(rel_dir, entry.name) if rel_dir else entry.name
        if entry.is_dir(follow_symlinks=False):
            if dir_prefixes is not None and rel not in dir_prefixes:
                continue
            directories.append(rel)
            _walk(root, rel, selection, dir_prefixes, directories, files)
        elif entry.is_file():
            if selection is not None and rel not in selection:
                continue
            files.append(rel)


def build_plan(local_path: Path, selection: Iterable[str] | None = None) -> TransferPlan:
    """Walk *local_path* and fix the set of directories and files to copy.

    *selection* holds root-relative POSIX paths; it is ignored when
    *local_path* is a single file.  Raises ``OSError`` when the source
    cannot be read.
    """
    root = Path(local_path)
    if not root.is_dir():
        root.stat()
        return TransferPlan(
            root=root,
            is_dir=False,
            selection=None,
            dir_prefixes=None,
            directories=(),
            files=(root.name,),
        )

    chosen = frozenset(selection) if selection is not None else None
    prefixes = dir_prefixes_for(chosen) if chosen is not None else None
    directories: list[str] = []
    files: list[str] = []
    _walk(root, "", chosen, prefixes, directories, files)
    return TransferPlan(
        root=root,
        is_dir=True,
        selection=chosen,
        dir_prefixes=prefixes,
        directories=tuple(directories),
        files=tuple(files),
    )
