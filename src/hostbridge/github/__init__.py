"""GitHub REST API client.

Public API: ApiResponse, ApiStatus, GitHubClient, TokenValidation, classify
Internal: client
"""

from hostbridge.github.client import (
    ApiResponse,
    ApiStatus,
    GitHubClient,
    TokenValidation,
    classify,
)

__all__ = [
    "ApiResponse",
    "ApiStatus",
    "GitHubClient",
    "TokenValidation",
    "classify",
]
