"""Message routes within a channel."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import WorkspaceMember, require_workspace_member
from ..services import messages


router = APIRouter(prefix="/api/workspaces/{workspace_id}/threads/{thread_id}/messages", tags=["messages"])


class CreateMessageRequest(BaseModel):
    content: str = Field(..., max_length=10000)
    message_type: str = "text"
    mentions: List[UUID] = []


class UpdateMessageRequest(BaseModel):
    content: str = Field(..., max_length=10000)


@router.get("")
def list_messages(workspace_id: UUID, thread_id: UUID,
                  limit: int = Query(50, ge=1, le=100), offset: int = Query(0, ge=0),
                  search: Optional[str] = None, before: Optional[datetime] = None,
                  after: Optional[datetime] = None,
                  member: WorkspaceMember = Depends(require_workspace_member)):
    return messages.list_messages(
        workspace_id, thread_id, member.user.id, limit, offset, search, before, after
    )


@router.post("", status_code=201)
def create_message(workspace_id: UUID, thread_id: UUID, request: CreateMessageRequest,
                   member: WorkspaceMember = Depends(require_workspace_member)):
    message = messages.create_message(
        workspace_id, thread_id, member.user.id, member.user.name,
        request.content, request.message_type, request.mentions,
    )
    return {"message": "Message sent successfully", "data": message}


@router.put("/{message_id}")
def update_message(workspace_id: UUID, thread_id: UUID, message_id: UUID,
                   request: UpdateMessageRequest,
                   member: WorkspaceMember = Depends(require_workspace_member)):
    message = messages.update_message(workspace_id, thread_id, message_id, member.user.id, request.content)
    return {"message": "Message updated successfully", "data": message}


@router.delete("/{message_id}")
def delete_message(workspace_id: UUID, thread_id: UUID, message_id: UUID,
                   member: WorkspaceMember = Depends(require_workspace_member)):
    messages.delete_message(workspace_id, thread_id, message_id, member.user.id, member.is_admin)
    return {"message": "Message deleted successfully"}
