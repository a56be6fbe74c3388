"""Task views across every channel and workspace the caller belongs to."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_current_user
from ..services import tasks, users
from .tasks import STATUS_PATTERN


router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _parse_ids(values: List[str], name: str) -> Optional[List[UUID]]:
    """Ids given as repeated params, comma-separated, or both."""
    ids = []
    for value in values:
        for piece in value.split(","):
            piece = piece.strip()
            if not piece:
                continue
            try:
                ids.append(UUID(piece))
            except ValueError:
                raise HTTPException(status_code=422, detail=f"Invalid id in {name}: {piece}")
    return ids or None


@router.get("/all")
def list_all_tasks(workspace_ids: List[str] = Query([]), channel_ids: List[str] = Query([]),
                   status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
                   start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                   assigned_to_me: bool = False, created_by_me: bool = False, my_tasks: bool = False,
                   limit: int = Query(500, ge=1, le=500), offset: int = Query(0, ge=0),
                   user: users.User = Depends(get_current_user)):
    return tasks.list_user_tasks(
        user.id,
        workspace_ids=_parse_ids(workspace_ids, "workspace_ids"),
        channel_ids=_parse_ids(channel_ids, "channel_ids"),
        status=status,
        start_date=start_date,
        end_date=end_date,
        assigned_to_me=assigned_to_me or my_tasks,
        created_by_me=created_by_me or my_tasks,
        limit=limit,
        offset=offset,
    )


@router.get("/workspaces")
def list_task_workspaces(user: users.User = Depends(get_current_user)):
    return {"workspaces": tasks.list_task_workspaces(user.id)}


@router.get("/channels")
def list_task_channels(workspace_ids: List[str] = Query([]), user: users.User = Depends(get_current_user)):
    return {"channels": tasks.list_task_channels(user.id, _parse_ids(workspace_ids, "workspace_ids"))}
