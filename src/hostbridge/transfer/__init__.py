"""File uploads over SFTP and local tree enumeration.

Public API: DirectoryTree, TransferEngine, TransferPlan, TransferProgress,
    TransferResult, TreeNode, build_plan, dir_prefixes_for,
    read_directory_tree, resolve_remote_path
Internal: engine, plan, tree
"""

from hostbridge.transfer.engine import TransferEngine, TransferProgress, TransferResult
from hostbridge.transfer.plan import (
    TransferPlan,
    build_plan,
    dir_prefixes_for,
    resolve_remote_path,
)
from hostbridge.transfer.tree import DirectoryTree, TreeNode, read_directory_tree

__all__ = [
    "DirectoryTree",
    "TransferEngine",
    "TransferPlan",
    "TransferProgress",
    "TransferResult",
    "TreeNode",
    "build_plan",
    "dir_prefixes_for",
    "read_directory_tree",
    "resolve_remote_path",
]
