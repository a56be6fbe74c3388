"""Channel (thread) routes."""
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import WorkspaceMember, require_workspace_member
from ..services import channels


router = APIRouter(prefix="/api/workspaces/{workspace_id}/threads", tags=["channels"])


class CreateThreadRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=80)
    description: Optional[str] = Field(None, max_length=1000)
    type: str = Field("channel", pattern="^(channel|direct_message)$")
    is_private: bool = False
    member_ids: List[UUID] = []


@router.get("")
def list_threads(workspace_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    threads = channels.list_threads(workspace_id, member.user.id)
    return {"threads": threads, "count": len(threads)}


@router.post("", status_code=201)
def create_thread(workspace_id: UUID, request: CreateThreadRequest,
                  member: WorkspaceMember = Depends(require_workspace_member)):
    thread = channels.create_thread(
        workspace_id, member.user.id, member.user.name, member.is_admin,
        name=request.name, description=request.description, type=request.type,
        is_private=request.is_private, member_ids=request.member_ids,
    )
    label = "Direct message" if request.type == "direct_message" else "Channel"
    return {"message": f"{label} created successfully", "thread": thread}


@router.post("/{thread_id}/join")
def join(workspace_id: UUID, thread_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    channels.join_channel(workspace_id, thread_id, member.user.id, member.user.name)
    return {"message": "Joined channel successfully"}


@router.post("/{thread_id}/leave")
def leave(workspace_id: UUID, thread_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    channels.leave_channel(workspace_id, thread_id, member.user.id, member.user.name)
    return {"message": "Left channel successfully"}


@router.put("/{thread_id}/read")
def mark_read(workspace_id: UUID, thread_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    channels.mark_read(workspace_id, thread_id, member.user.id)
    return {"message": "Channel marked as read"}
