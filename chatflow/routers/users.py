"""User profile and directory routes."""
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..deps import get_current_user
from ..services import users


router = APIRouter(prefix="/api/users", tags=["users"])

PHONE_PATTERN = r"^\+?[\d\s\-\(\)]{10,20}$"


class UpdateProfileRequest(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    profile_picture_url: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)


@router.get("/me")
def get_me(user: users.User = Depends(get_current_user)):
    workspaces = users.list_user_workspaces(user.id)
    return {
        "user": user.to_dict(),
        "workspaces": workspaces,
        "meta": {"workspace_count": len(workspaces)},
    }


@router.put("/me")
def update_me(request: UpdateProfileRequest, user: users.User = Depends(get_current_user)):
    fields = request.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    if "display_name" in fields:
        fields["display_name"] = fields["display_name"].strip()
        if not fields["display_name"]:
            raise HTTPException(status_code=400, detail="Display name cannot be empty")

    updated = users.update_profile(user.id, **fields)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Profile updated successfully", "user": updated.to_dict()}


@router.get("/search")
def search(q: str = Query(..., min_length=2), limit: int = Query(10, ge=1, le=50),
           user: users.User = Depends(get_current_user)):
    """Active users matching email or display name."""
    results = users.search_users(q.strip(), limit)
    return {
        "users": [{**u.to_public_dict(), "email": u.email} for u in results],
        "count": len(results),
    }


@router.get("/{user_id}")
def get_user(user_id: UUID, user: users.User = Depends(get_current_user)):
    found = users.find_user_by_id(user_id)
    if not found or not found.is_active:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": found.to_public_dict()}
