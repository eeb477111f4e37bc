"""HTTP API routes.

Every response uses the envelope ``{"success": bool, "data"?, "message"?, "error"?}``.
The synchronous checkpoint manager runs in worker threads.
"""

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field

from .. import __version__
from ..exceptions import CheckpointNotFoundError
from ..hooks import CLI_EVENTS, EVENT_PROMPT_SUBMIT, EVENT_STOP
from ..manager import CheckpointManager
from .deps import Connections, Manager
from .websocket import ConnectionManager

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["checkpoints"])


def envelope(data: Any = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    return body


# ==================== Request models ====================


class ClaudeEventRequest(BaseModel):
    event_type: str = Field(validation_alias=AliasChoices("event_type", "eventType"))
    data: dict[str, Any] = Field(default_factory=dict)


class TrackRequest(BaseModel):
    event: str
    cwd: str | None = None
    prompt: str | None = None


class DiffRequest(BaseModel):
    current_id: str = Field(validation_alias=AliasChoices("current_id", "currentId"))
    previous_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("previous_id", "previousId"),
    )


# ==================== Events ====================


async def _dispatch_event(
    manager: CheckpointManager,
    connections: ConnectionManager,
    event_type: str,
    data: dict[str, Any],
) -> dict[str, Any] | None:
    result = await asyncio.to_thread(manager.handle_event, event_type, data)
    if result is None:
        return None

    payload: dict[str, Any] = result.to_dict()
    if event_type == EVENT_PROMPT_SUBMIT:
        await connections.broadcast_session_start(payload)
    elif event_type == EVENT_STOP:
        await connections.broadcast_checkpoint_created(payload)
    return payload


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return envelope({"status": "healthy", "service": "ccheckpoints", "version": __version__})


@router.post("/claude-event")
async def claude_event(
    request: ClaudeEventRequest,
    manager: Manager,
    connections: Connections,
) -> dict[str, Any]:
    """Receive a lifecycle event forwarded by the editor hooks."""
    logger.debug("Received editor event", event_type=request.event_type)
    payload = await _dispatch_event(manager, connections, request.event_type, request.data)
    return envelope(payload)


@router.post("/track")
async def track_event(
    request: TrackRequest,
    manager: Manager,
    connections: Connections,
) -> dict[str, Any]:
    """Short-form event tracking: ``submit`` or ``stop``."""
    event_type = CLI_EVENTS.get(request.event)
    if event_type is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown event type: {request.event}",
        )

    data: dict[str, Any] = {"prompt_sources": {"actual_prompt": request.prompt or ""}}
    if request.cwd:
        data["cwd"] = request.cwd
    payload = await _dispatch_event(manager, connections, event_type, data)
    return envelope(payload)


# ==================== Queries ====================


@router.get("/stats")
async def get_stats(manager: Manager) -> dict[str, Any]:
    stats = await asyncio.to_thread(manager.project_stats)
    return envelope(stats.to_dict())


@router.get("/current-session")
async def get_current_session(
    manager: Manager,
    project_path: str | None = None,
) -> dict[str, Any]:
    session = await asyncio.to_thread(manager.current_session, project_path)
    return envelope(session.to_dict() if session else None)


@router.get("/checkpoints")
async def list_checkpoints(
    manager: Manager,
    project_path: str | None = None,
) -> dict[str, Any]:
    """Checkpoints of one project, newest first."""
    if not project_path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="project_path is required",
        )
    checkpoints = await asyncio.to_thread(manager.list_checkpoints, project_path)
    return envelope([c.to_dict() for c in checkpoints])


@router.post("/checkpoints/diff")
async def diff_checkpoints(request: DiffRequest, manager: Manager) -> dict[str, Any]:
    """Diff two checkpoints, or one checkpoint against its predecessor."""
    if request.previous_id is None:
        result = await asyncio.to_thread(manager.diff_with_previous, request.current_id)
    else:
        result = await asyncio.to_thread(
            manager.diff_checkpoints, request.current_id, request.previous_id
        )
    return envelope(result.to_dict())


@router.get("/checkpoints/{checkpoint_id}")
async def get_checkpoint(checkpoint_id: str, manager: Manager) -> dict[str, Any]:
    checkpoint = await asyncio.to_thread(manager.get_checkpoint, checkpoint_id)
    if checkpoint is None:
        raise CheckpointNotFoundError(checkpoint_id)
    return envelope(checkpoint.to_dict(include_files=True))


@router.get("/checkpoints/{checkpoint_id}/previous")
async def get_previous_checkpoint(checkpoint_id: str, manager: Manager) -> dict[str, Any]:
    previous = await asyncio.to_thread(manager.previous_checkpoint, checkpoint_id)
    return envelope(previous.to_dict() if previous else None)


# ==================== Mutations ====================


@router.post("/checkpoints/{checkpoint_id}/restore")
async def restore_checkpoint(checkpoint_id: str, manager: Manager) -> dict[str, Any]:
    """Write the checkpoint's files back to disk."""
    result = await asyncio.to_thread(manager.restore_checkpoint, checkpoint_id)
    message = f"Restored {result.files_restored}/{result.total_files} files"
    return envelope(result.to_dict(), message=message)


@router.delete("/checkpoints/{checkpoint_id}")
async def delete_checkpoint(checkpoint_id: str, manager: Manager) -> dict[str, Any]:
    deleted = await asyncio.to_thread(manager.delete_checkpoint, checkpoint_id)
    if not deleted:
        raise CheckpointNotFoundError(checkpoint_id)
    return envelope({"deleted": True}, message="Checkpoint deleted")


@router.delete("/projects/checkpoints")
async def delete_project_checkpoints(
    manager: Manager,
    project_path: str | None = None,
) -> dict[str, Any]:
    if not project_path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="project_path is required",
        )
    result = await asyncio.to_thread(manager.delete_project_checkpoints, project_path)
    message = f"Deleted {result['deleted_checkpoints']} checkpoints"
    return envelope(result, message=message)


@router.delete("/checkpoints")
async def clear_all_checkpoints(manager: Manager) -> dict[str, Any]:
    result = await asyncio.to_thread(manager.clear_all)
    message = (
        f"Cleared {result['deleted_checkpoints']} checkpoints"
        f" from {result['project_count']} projects"
    )
    return envelope(result, message=message)
