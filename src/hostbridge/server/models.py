"""Pydantic models for server API requests, responses, and WebSocket messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from hostbridge import __version__

# --- REST models ---


class HealthResponse(BaseModel):
    """GET /api/health response."""

    status: str = "ok"
    version: str = __version__


class SessionInfo(BaseModel):
    """A live session as returned by list/create endpoints."""

    id: str
    kind: str
    created_at: datetime


class CreateLocalSessionRequest(BaseModel):
    """POST /api/sessions/local request body."""

    cols: int = Field(default=80, gt=0)
    rows: int = Field(default=24, gt=0)


class CreateRemoteSessionRequest(BaseModel):
    """POST /api/sessions/remote request body."""

    profile_id: str
    cols: int = Field(default=80, gt=0)
    rows: int = Field(default=24, gt=0)


class ResizeRequest(BaseModel):
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


class OperationResult(BaseModel):
    """Generic ``{success, error}`` outcome."""

    success: bool
    error: str | None = None


class UploadRequest(BaseModel):
    """POST /api/uploads request body."""

    profile_id: str
    local_path: str
    remote_path: str
    selection: list[str] | None = None


class UploadResponse(BaseModel):
    success: bool
    uploaded: int = 0
    error: str | None = None


class ProvisioningRequest(BaseModel):
    """POST /api/provisioning request body."""

    profile_id: str
    repo_url: str
    token: str = Field(repr=False)
    git_user_name: str
    git_user_email: str
    key_title: str = "hostbridge"
    resume_from: int = Field(default=0, ge=0, le=6)


class StepInfo(BaseModel):
    step: int
    name: str
    status: str
    output: str | None = None


class ProvisioningResponse(BaseModel):
    success: bool
    steps: list[StepInfo] = Field(default_factory=list)
    failed_step: int | None = None
    error: str | None = None


class TokenRequest(BaseModel):
    token: str = Field(repr=False)


class TokenValidationResponse(BaseModel):
    valid: bool
    username: str | None = None
    error: str | None = None


class TreeNodeModel(BaseModel):
    name: str
    relative_path: str
    is_dir: bool
    children: list[TreeNodeModel] = Field(default_factory=list)


class DirectoryTreeResponse(BaseModel):
    """GET /api/fs/tree response."""

    tree: TreeNodeModel
    total_files: int
    total_dirs: int
    truncated: bool


# --- WebSocket models ---


class WSIncoming(BaseModel):
    """Incoming WebSocket message from client."""

    op: str
    data: dict[str, Any] = Field(default_factory=dict)


class WSOutgoing(BaseModel):
    """Outgoing WebSocket message to client."""

    op: str
    data: dict[str, Any] = Field(default_factory=dict)
