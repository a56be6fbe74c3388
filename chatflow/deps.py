"""Request dependencies: bearer-token auth and workspace membership checks."""
from typing import Optional
from uuid import UUID
from fastapi import Depends, Header, HTTPException
import jwt as pyjwt

from .services import jwt, users
from .services.workspaces import get_membership


def get_current_user(authorization: Optional[str] = Header(None)) -> users.User:
    """Resolve the active user from an `Authorization: Bearer <jwt>` header.

    Raises:
        HTTPException: 401 if the header is missing/malformed, the token is
            invalid or expired, or the user is unknown or inactive
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    try:
        payload = jwt.verify_jwt(parts[1])
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except pyjwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = UUID(payload.get("userId", ""))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = users.find_user_by_id(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_admin(user: users.User = Depends(get_current_user)) -> users.User:
    """Active user with the global admin role; 403 otherwise."""
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


class WorkspaceMember:
    """Authenticated user plus their membership in the requested workspace."""
    def __init__(self, user: users.User, workspace_id: UUID, role: str, is_owner: bool):
        self.user = user
        self.workspace_id = workspace_id
        self.role = role
        self.is_owner = is_owner

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def require_workspace_member(workspace_id: UUID,
                             user: users.User = Depends(get_current_user)) -> WorkspaceMember:
    membership = get_membership(workspace_id, user.id)
    if not membership:
        raise HTTPException(status_code=403, detail="You are not a member of this workspace")
    return WorkspaceMember(user, workspace_id, membership["role"], membership["is_owner"])


def require_workspace_admin(member: WorkspaceMember = Depends(require_workspace_member)) -> WorkspaceMember:
    if not member.is_admin:
        raise HTTPException(status_code=403, detail="Admin privileges required for this operation")
    return member
