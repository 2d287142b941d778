"""Route handlers for the FastAPI server."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from pydantic import ValidationError

from hostbridge.errors import (
    CapacityExceededError,
    HostbridgeError,
    ProfileNotFoundError,
    SSHConnectionError,
)
from hostbridge.provisioning.workflow import ProvisioningEvent, ProvisioningInputs
from hostbridge.remote.connection import probe_connection
from hostbridge.server.auth import verify_api_key, verify_ws_api_key
from hostbridge.server.connections import EVENTS_TOPIC, ConnectionManager
from hostbridge.server.models import (
    CreateLocalSessionRequest,
    CreateRemoteSessionRequest,
    DirectoryTreeResponse,
    HealthResponse,
    OperationResult,
    ProvisioningRequest,
    ProvisioningResponse,
    ResizeRequest,
    SessionInfo,
    StepInfo,
    TokenRequest,
    TokenValidationResponse,
    UploadRequest,
    UploadResponse,
    WSIncoming,
    WSOutgoing,
)
from hostbridge.services import Services
from hostbridge.sessions.channel import DataEvent, Session
from hostbridge.transfer.engine import TransferProgress
from hostbridge.transfer.tree import read_directory_tree

_log = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


def get_manager(request: Request) -> ConnectionManager:
    manager: ConnectionManager = request.app.state.manager
    return manager


ServicesDep = Annotated[Services, Depends(get_services)]
ManagerDep = Annotated[ConnectionManager, Depends(get_manager)]


def _session_info(session: Session) -> SessionInfo:
    return SessionInfo(id=session.session_id, kind=session.kind, created_at=session.created_at)


# --- Health ---


@router.get("/api/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse()


# --- Sessions ---


@router.get(
    "/api/sessions",
    response_model=list[SessionInfo],
    dependencies=[Depends(verify_api_key)],
)
def list_sessions(services: ServicesDep) -> list[SessionInfo]:
    """List live sessions, newest first."""
    return [_session_info(s) for s in services.sessions.list_sessions()]


@router.post(
    "/api/sessions/local",
    response_model=SessionInfo,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def create_local_session(
    body: CreateLocalSessionRequest, services: ServicesDep
) -> SessionInfo:
    """Spawn a local shell."""
    try:
        session = await services.sessions.create_local(body.cols, body.rows)
    except CapacityExceededError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to spawn shell: {exc}") from exc
    return _session_info(session)


@router.post(
    "/api/sessions/remote",
    response_model=SessionInfo,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def create_remote_session(
    body: CreateRemoteSessionRequest, services: ServicesDep
) -> SessionInfo:
    """Open a shell on a remote profile."""
    try:
        session = await services.sessions.create_remote(body.profile_id, body.cols, body.rows)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SSHConnectionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return _session_info(session)


@router.post(
    "/api/sessions/{session_id}/resize",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_api_key)],
)
async def resize_session(session_id: str, body: ResizeRequest, services: ServicesDep) -> None:
    if not services.sessions.resize(session_id, body.cols, body.rows):
        raise HTTPException(status_code=404, detail="Session not found")


@router.delete(
    "/api/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_api_key)],
)
async def close_session(session_id: str, services: ServicesDep) -> None:
    if not services.sessions.close(session_id):
        raise HTTPException(status_code=404, detail="Session not found")


@router.websocket("/api/sessions/{session_id}/ws")
async def session_ws(websocket: WebSocket, session_id: str) -> None:
    """Bidirectional terminal stream for one session."""
    if not await verify_ws_api_key(websocket):
        await websocket.close(code=4001, reason="Unauthorized")
        return

    services: Services = websocket.app.state.services
    session = services.sessions.get(session_id)
    if session is None:
        await websocket.close(code=4404, reason="Session not found")
        return

    await websocket.accept()
    pump = asyncio.create_task(_pump_session_output(websocket, session))
    receive = asyncio.create_task(_receive_session_input(websocket, services, session_id))
    try:
        done, _pending = await asyncio.wait(
            {pump, receive}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        pump.cancel()
        receive.cancel()
        await asyncio.gather(pump, receive, return_exceptions=True)

    # Shell ended first: the client is still attached, so hang up on it.
    if pump in done:
        with contextlib.suppress(RuntimeError):
            await websocket.close()


async def _pump_session_output(websocket: WebSocket, session: Session) -> None:
    async for event in session.events.iter_events():
        if isinstance(event, DataEvent):
            msg = WSOutgoing(op="output", data={"data": event.data})
        else:
            msg = WSOutgoing(op="exit", data={"exit_code": event.exit_code})
        await websocket.send_text(msg.model_dump_json())


async def _receive_session_input(
    websocket: WebSocket, services: Services, session_id: str
) -> None:
    with contextlib.suppress(WebSocketDisconnect):
        while True:
            raw = await websocket.receive_text()
            try:
                msg = WSIncoming.model_validate_json(raw)
            except ValidationError:
                err = WSOutgoing(op="error", data={"message": "Invalid message format"})
                await websocket.send_text(err.model_dump_json())
                continue

            if msg.op == "input":
                services.sessions.write(session_id, str(msg.data.get("data", "")))
            elif msg.op == "resize":
                try:
                    cols, rows = int(msg.data["cols"]), int(msg.data["rows"])
                except (KeyError, TypeError, ValueError):
                    err = WSOutgoing(op="error", data={"message": "resize needs cols and rows"})
                    await websocket.send_text(err.model_dump_json())
                    continue
                services.sessions.resize(session_id, cols, rows)
            else:
                err = WSOutgoing(op="error", data={"message": f"Unknown op: {msg.op}"})
                await websocket.send_text(err.model_dump_json())


# --- Profiles ---


@router.post(
    "/api/profiles/{profile_id}/test",
    response_model=OperationResult,
    dependencies=[Depends(verify_api_key)],
)
async def check_profile(profile_id: str, services: ServicesDep) -> OperationResult:
    """Check that a profile can connect and authenticate."""
    try:
        await probe_connection(services.connector, profile_id)
    except HostbridgeError as exc:
        return OperationResult(success=False, error=str(exc))
    return OperationResult(success=True)


# --- Uploads ---


@router.post(
    "/api/uploads",
    response_model=UploadResponse,
    dependencies=[Depends(verify_api_key)],
)
async def upload(
    body: UploadRequest, services: ServicesDep, manager: ManagerDep
) -> UploadResponse:
    """Copy a local file or directory to a remote profile."""

    def on_progress(progress: TransferProgress) -> None:
        manager.publish(EVENTS_TOPIC, WSOutgoing(op="upload_progress", data=asdict(progress)))

    try:
        result = await services.run_tracked(
            services.transfers.upload(
                body.profile_id,
                Path(body.local_path).expanduser(),
                body.remote_path,
                body.selection,
                on_progress,
            )
        )
    except HostbridgeError as exc:
        return UploadResponse(success=False, error=str(exc))
    return UploadResponse(success=True, uploaded=result.uploaded)


# --- Provisioning ---


@router.post(
    "/api/provisioning",
    response_model=ProvisioningResponse,
    dependencies=[Depends(verify_api_key)],
)
async def provision(
    body: ProvisioningRequest, services: ServicesDep, manager: ManagerDep
) -> ProvisioningResponse:
    """Run (or resume) the GitHub provisioning workflow on a profile."""

    def on_progress(event: ProvisioningEvent) -> None:
        manager.publish(EVENTS_TOPIC, WSOutgoing(op="provisioning_progress", data=asdict(event)))

    inputs = ProvisioningInputs(
        repo_url=body.repo_url,
        token=body.token,
        git_user_name=body.git_user_name,
        git_user_email=body.git_user_email,
        key_title=body.key_title,
    )
    try:
        run = await services.run_tracked(
            services.provisioning.run(body.profile_id, inputs, on_progress, body.resume_from)
        )
    except HostbridgeError as exc:
        return ProvisioningResponse(success=False, error=str(exc))
    return ProvisioningResponse(
        success=run.success,
        failed_step=run.failed_step,
        steps=[
            StepInfo(step=s.index, name=s.name, status=s.status, output=s.output)
            for s in run.steps
        ],
    )


# --- GitHub ---


@router.post(
    "/api/github/validate-token",
    response_model=TokenValidationResponse,
    dependencies=[Depends(verify_api_key)],
)
async def validate_token(body: TokenRequest, services: ServicesDep) -> TokenValidationResponse:
    result = await services.github.validate_token(body.token)
    return TokenValidationResponse(valid=result.valid, username=result.username, error=result.error)


# --- Local filesystem ---


@router.get(
    "/api/fs/tree",
    response_model=DirectoryTreeResponse,
    dependencies=[Depends(verify_api_key)],
)
async def directory_tree(path: Annotated[str, Query()]) -> DirectoryTreeResponse:
    """Enumerate a local directory for upload selection."""
    root = Path(path).expanduser()
    if not root.is_dir():
        raise HTTPException(status_code=404, detail="Directory not found")
    tree = await asyncio.to_thread(read_directory_tree, root)
    return DirectoryTreeResponse.model_validate(asdict(tree))


# --- Events ---


@router.websocket("/api/events")
async def events_ws(websocket: WebSocket) -> None:
    """Broadcast channel for upload and provisioning progress."""
    if not await verify_ws_api_key(websocket):
        await websocket.close(code=4001, reason="Unauthorized")
        return

    manager: ConnectionManager = websocket.app.state.manager
    await manager.connect(EVENTS_TOPIC, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(EVENTS_TOPIC, websocket)
