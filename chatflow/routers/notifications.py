"""In-app notifications, unread state, and email notification settings."""
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..deps import WorkspaceMember, get_current_user, require_workspace_member
from ..services import email as email_service
from ..services import notifications, preferences, users


router = APIRouter(prefix="/api/workspaces", tags=["notifications"])
email_router = APIRouter(prefix="/api/email-notifications", tags=["notifications"])


class MuteRequest(BaseModel):
    thread_id: UUID
    is_muted: bool


class PreferencesRequest(BaseModel):
    immediateMentions: Optional[bool] = None
    immediateDirectMessages: Optional[bool] = None
    immediateWorkspaceInvites: Optional[bool] = None
    batchedEnabled: Optional[bool] = None
    batchedFrequencyMinutes: Optional[int] = Field(None, ge=5, le=1440)
    digestEnabled: Optional[bool] = None
    digestTime: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    digestTimezone: Optional[str] = None


@router.get("/notifications")
def list_notifications(limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                       unread_only: bool = False,
                       user: users.User = Depends(get_current_user)):
    return notifications.list_notifications(user.id, limit, offset, unread_only)


@router.put("/notifications/{notification_id}/read")
def mark_read(notification_id: UUID, user: users.User = Depends(get_current_user)):
    notification = notifications.mark_notification_read(user.id, notification_id)
    return {"message": "Notification marked as read", "notification": notification}


@router.get("/{workspace_id}/notifications/unread-summary")
def unread_summary(workspace_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    return notifications.get_unread_summary(member.user.id, workspace_id)


@router.post("/{workspace_id}/notifications/mark-all-read")
def mark_all_read(workspace_id: UUID, member: WorkspaceMember = Depends(require_workspace_member)):
    notifications.mark_all_read(member.user.id, workspace_id)
    return {"message": "All notifications marked as read"}


@router.put("/{workspace_id}/notifications/mute")
def mute(workspace_id: UUID, request: MuteRequest,
         member: WorkspaceMember = Depends(require_workspace_member)):
    notifications.set_muted(member.user.id, workspace_id, request.thread_id, request.is_muted)
    state = "muted" if request.is_muted else "unmuted"
    return {"message": f"Channel {state}", "thread_id": str(request.thread_id), "is_muted": request.is_muted}


@router.get("/{workspace_id}/notifications/history")
def history(workspace_id: UUID, limit: int = Query(50, ge=1, le=100), offset: int = Query(0, ge=0),
            type: Optional[str] = None, unread_only: bool = False,
            member: WorkspaceMember = Depends(require_workspace_member)):
    return notifications.get_history(member.user.id, workspace_id, limit, offset, type, unread_only)


@email_router.get("/preferences")
def get_preferences(user: users.User = Depends(get_current_user)):
    return {"preferences": preferences.get_preferences(user.id)}


@email_router.post("/preferences")
def update_preferences(request: PreferencesRequest, user: users.User = Depends(get_current_user)):
    changes = request.model_dump(exclude_none=True)
    try:
        merged = preferences.update_preferences(user.id, changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Preferences updated", "preferences": merged}


@email_router.post("/test")
def send_test(user: users.User = Depends(get_current_user)):
    """Send a test message to the caller's own address."""
    return email_service.send_test_email(user.email)


@email_router.get("/status")
def status(user: users.User = Depends(get_current_user)):
    return {
        "mode": email_service.get_email_mode(),
        "analytics": email_service.get_email_analytics(),
    }
