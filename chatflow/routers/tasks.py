"""Channel task routes."""
from datetime import datetime, time
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..deps import WorkspaceMember, require_workspace_member
from ..services import channels, tasks


router = APIRouter(prefix="/api/workspaces/{workspace_id}/threads/{thread_id}/tasks", tags=["tasks"])

STATUS_PATTERN = "^(pending|in_progress|completed|cancelled)$"
PRIORITY_PATTERN = "^(low|medium|high|urgent)$"


class CreateTaskRequest(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[UUID] = None
    status: str = Field("pending", pattern=STATUS_PATTERN)
    priority: str = Field("medium", pattern=PRIORITY_PATTERN)
    tags: List[str] = []
    estimated_hours: Optional[float] = Field(None, ge=0)
    is_all_day: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    parent_task_id: Optional[UUID] = None
    dependencies: List[str] = []


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[UUID] = None
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    tags: Optional[List[str]] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    is_all_day: Optional[bool] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    parent_task_id: Optional[UUID] = None
    dependencies: Optional[List[str]] = None
    completed_at: Optional[datetime] = None


def require_channel_member(workspace_id: UUID, thread_id: UUID,
                           member: WorkspaceMember = Depends(require_workspace_member)) -> WorkspaceMember:
    if not channels.is_thread_member(workspace_id, thread_id, member.user.id):
        raise HTTPException(status_code=403, detail="You must be a member of this channel to access its tasks")
    return member


@router.get("")
def list_tasks(thread_id: UUID, status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
               assigned_to: Optional[UUID] = None, start_date: Optional[datetime] = None,
               end_date: Optional[datetime] = None,
               limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0),
               member: WorkspaceMember = Depends(require_channel_member)):
    return tasks.list_tasks(thread_id, status, assigned_to, start_date, end_date, limit, offset)


@router.get("/{task_id}")
def get_task(thread_id: UUID, task_id: UUID, member: WorkspaceMember = Depends(require_channel_member)):
    return {"task": tasks.get_task(thread_id, task_id)}


@router.post("", status_code=201)
def create_task(thread_id: UUID, request: CreateTaskRequest,
                member: WorkspaceMember = Depends(require_channel_member)):
    task = tasks.create_task(thread_id, member.user.id, request.model_dump())
    return {"message": "Channel task created successfully", "task": task}


@router.put("/{task_id}")
def update_task(thread_id: UUID, task_id: UUID, request: UpdateTaskRequest,
                member: WorkspaceMember = Depends(require_channel_member)):
    task = tasks.update_task(thread_id, task_id, request.model_dump(exclude_unset=True))
    return {"message": "Channel task updated successfully", "task": task}


@router.delete("/{task_id}")
def delete_task(thread_id: UUID, task_id: UUID, member: WorkspaceMember = Depends(require_channel_member)):
    tasks.delete_task(thread_id, task_id)
    return {"message": "Channel task deleted successfully"}


@router.get("/{task_id}/subtasks")
def list_subtasks(thread_id: UUID, task_id: UUID, member: WorkspaceMember = Depends(require_channel_member)):
    subtasks = tasks.list_subtasks(thread_id, task_id)
    return {"subtasks": subtasks, "count": len(subtasks)}
