"""Bounded enumeration of a local directory for upload selection.

Dependencies: (none)
Wired in: server/routes.py → directory_tree()
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path

MAX_FILES = 5000
MAX_DEPTH = 10


@dataclass
class TreeNode:
    name: str
    relative_path: str
    is_dir: bool
    children: list[TreeNode] = field(default_factory=list)


@dataclass
class DirectoryTree:
    tree: TreeNode
    total_files: int = 0
    total_dirs: int = 0
    truncated: bool = False


class _Walker:
    def __init__(self, max_files: int, max_depth: int) -> None:
        self.max_files = max_files
        self.max_depth = max_depth
        self.files = 0
        self.dirs = 0
        self.truncated = False

    def walk(self, path: Path, rel: str, depth: int) -> TreeNode:
        node = TreeNode(name=path.name, relative_path=rel, is_dir=True)
        if depth > self.max_depth:
            return node
        try:
            with os.scandir(path) as it:
                entries = [(entry.name, entry.is_dir(follow_symlinks=False)) for entry in it]
        except OSError:
            return node

        entries.sort(key=lambda item: (not item[1], item[0].casefold(), item[0]))
        for name, is_dir in entries:
            child_rel = posixpath.join(rel, name) if rel else name
            if is_dir:
                self.dirs += 1
                node.children.append(self.walk(path / name, child_rel, depth + 1))
                continue
            self.files += 1
            if self.files <= self.max_files:
                node.children.append(TreeNode(name=name, relative_path=child_rel, is_dir=False))
            else:
                self.truncated = True
        return node


def read_directory_tree(
    path: Path, max_files: int = MAX_FILES, max_depth: int = MAX_DEPTH
) -> DirectoryTree:
    """Enumerate *path*, directories first, then by case-insensitive name.

    Unreadable directories and those deeper than *max_depth* appear as empty
    nodes.  Files past *max_files* are counted but omitted, and the result is
    marked ``truncated``.
    """
    walker = _Walker(max_files, max_depth)
    tree = walker.walk(Path(path), "", 0)
    return DirectoryTree(
        tree=tree,
        total_files=walker.files,
        total_dirs=walker.dirs,
        truncated=walker.truncated,
    )
