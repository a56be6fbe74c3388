"""Workspace CRUD, membership and invitation routes."""
from typing import Any, Dict, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field

from ..deps import WorkspaceMember, get_current_user, require_workspace_admin, require_workspace_member
from ..services import invitations, users, workspaces


router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])


class CreateWorkspaceRequest(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    settings: Optional[Dict[str, Any]] = None


class UpdateWorkspaceRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    settings: Optional[Dict[str, Any]] = None


class InviteRequest(BaseModel):
    email: EmailStr
    role: str = Field("member", pattern="^(admin|member)$")


@router.get("")
def list_workspaces(user: users.User = Depends(get_current_user)):
    rows = workspaces.list_workspaces(user.id)
    return {"workspaces": rows, "count": len(rows)}


@router.post("", status_code=201)
def create_workspace(request: CreateWorkspaceRequest, user: users.User = Depends(get_current_user)):
    workspace = workspaces.create_workspace(user.id, request.name, request.description, request.settings)
    return {"message": "Workspace created successfully", "workspace": workspace}


# Token routes are declared before /{workspace_id} so they are not parsed as UUIDs

@router.get("/invitations/{token}")
def preview_invitation(token: str):
    """Public invitation preview for the accept page."""
    preview = invitations.get_invitation_preview(token)
    if not preview:
        raise HTTPException(status_code=404, detail="Invitation not found or has expired")
    return {"invitation": preview}


@router.post("/accept-invite/{token}")
def accept_invite(token: str, user: users.User = Depends(get_current_user)):
    workspace = invitations.accept_invitation(token, user.id, user.email, user.name)
    return {"message": f"Welcome to {workspace['name']}!", "workspace": workspace}


@router.get("/{workspace_id}")
def get_workspace(workspace_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    workspace = workspaces.get_workspace(workspace_id, member.user.id)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return {"workspace": {**workspace, "role": member.role}}


@router.put("/{workspace_id}")
def update_workspace(workspace_id: UUID, request: UpdateWorkspaceRequest,
                     member: WorkspaceMember = Depends(require_workspace_admin)):
    workspace = workspaces.update_workspace(
        workspace_id, request.name, request.description, request.settings
    )
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return {"message": "Workspace updated successfully", "workspace": workspace}


@router.delete("/{workspace_id}")
def delete_workspace(workspace_id: UUID, archive: bool = True,
                     member: WorkspaceMember = Depends(require_workspace_member)):
    if not member.is_owner:
        raise HTTPException(status_code=403, detail="Only the workspace owner can delete the workspace")
    action = workspaces.delete_workspace(workspace_id, archive=archive)
    return {"message": f"Workspace {action} successfully", "action": action}


@router.delete("/{workspace_id}/members/{user_id}")
def remove_member(workspace_id: UUID, user_id: UUID,
                  member: WorkspaceMember = Depends(require_workspace_admin)):
    workspaces.remove_member(workspace_id, member.user.id, user_id)
    return {"message": "Member removed successfully"}


@router.post("/{workspace_id}/invite", status_code=201)
def invite(workspace_id: UUID, request: InviteRequest,
           member: WorkspaceMember = Depends(require_workspace_admin)):
    invitation = invitations.create_invitation(
        workspace_id, member.user.id, member.user.name, request.email, request.role
    )
    return {"message": f"Invitation sent to {invitation['email']}", "invitation": invitation}


@router.get("/{workspace_id}/invitations")
def list_invitations(workspace_id: UUID, member: WorkspaceMember = Depends(require_workspace_admin)):
    rows = invitations.list_pending_invitations(workspace_id)
    return {"invitations": rows, "count": len(rows)}


@router.delete("/{workspace_id}/invitations/{invitation_id}", status_code=204)
def revoke_invitation(workspace_id: UUID, invitation_id: UUID,
                      member: WorkspaceMember = Depends(require_workspace_admin)):
    if not invitations.revoke_invitation(workspace_id, invitation_id):
        raise HTTPException(status_code=404, detail="Invitation not found")
    return Response(status_code=204)
