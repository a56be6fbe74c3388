"""Workspace invitations: create, preview, accept, revoke."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4
from .database import get_db_connection
from .errors import ConflictError, ForbiddenError, InvitationError, NotFoundError
from .channels import join_general_channel
from .notifications import insert_notification
from .workspaces import count_members
from .links import build_invite_url, build_workspace_url
from . import email as email_service


log = logging.getLogger("chatflow.invitations")

INVITATION_ROLES = {"admin", "member"}
INVITATION_LIFETIME_DAYS = 7


def generate_invitation_token() -> str:
    return secrets.token_hex(32)


def create_invitation(workspace_id: UUID, inviter_id: UUID, inviter_name: str,
                      email: str, role: str = "member") -> dict:
    """Create (or replace) a pending invitation and email the invite link.

    Email failures are logged; the invitation still stands.
    """
    email = email.strip().lower()
    if role not in INVITATION_ROLES:
        raise InvitationError("Role must be admin or member")

    token = generate_invitation_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=INVITATION_LIFETIME_DAYS)
    invitation_id = uuid4()

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT name, description FROM chatflow.workspaces WHERE id = %s AND archived_at IS NULL",
                (workspace_id,)
            )
            workspace = cur.fetchone()
            if not workspace:
                raise NotFoundError("Workspace not found")

            cur.execute(
                """SELECT 1 FROM chatflow.workspace_members wm
                   JOIN chatflow.users u ON u.id = wm.user_id
                   WHERE wm.workspace_id = %s AND lower(u.email) = %s""",
                (workspace_id, email)
            )
            if cur.fetchone():
                raise ConflictError("User is already a member of this workspace")

            cur.execute(
                """DELETE FROM chatflow.workspace_invitations
                   WHERE workspace_id = %s AND lower(email) = %s AND accepted_at IS NULL""",
                (workspace_id, email)
            )
            cur.execute(
                """INSERT INTO chatflow.workspace_invitations
                   (id, workspace_id, email, role, token, invited_by, expires_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (invitation_id, workspace_id, email, role, token, inviter_id, expires_at)
            )
            member_count = count_members(cur, workspace_id)
            conn.commit()

    invite_url = build_invite_url(token)
    result = email_service.send_workspace_invitation(
        email, inviter_name, workspace["name"], workspace["description"], role,
        member_count, invite_url, expires_at,
    )
    if not result.get("success"):
        log.error(f"Invitation email to {email} failed: {result.get('error')}")

    return {
        "id": str(invitation_id),
        "email": email,
        "role": role,
        "expires_at": expires_at.isoformat(),
        "workspace_name": workspace["name"],
        "invite_url": invite_url,
        "email_sent": bool(result.get("success")),
    }


def _find_pending(cur, token: str) -> Optional[dict]:
    cur.execute(
        """SELECT i.id, i.workspace_id, i.email, i.role, i.expires_at, i.invited_by,
                  w.name AS workspace_name,
                  COALESCE(u.display_name, split_part(u.email, '@', 1)) AS inviter_name,
                  u.email AS inviter_email
           FROM chatflow.workspace_invitations i
           JOIN chatflow.workspaces w ON w.id = i.workspace_id
           JOIN chatflow.users u ON u.id = i.invited_by
           WHERE i.token = %s AND i.accepted_at IS NULL
             AND i.expires_at > NOW() AND w.archived_at IS NULL""",
        (token,)
    )
    return cur.fetchone()


def get_invitation_preview(token: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            row = _find_pending(cur, token)
    if not row:
        return None
    return {
        "workspace_name": row["workspace_name"],
        "inviter_name": row["inviter_name"],
        "email": row["email"],
        "role": row["role"],
        "expires_at": row["expires_at"].isoformat(),
    }


def accept_invitation(token: str, user_id: UUID, user_email: str, user_name: str) -> dict:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            invitation = _find_pending(cur, token)
            if not invitation:
                raise NotFoundError("Invitation not found or has expired")
            if invitation["email"].lower() != user_email.lower():
                raise ForbiddenError("This invitation was sent to a different email address")

            workspace_id = invitation["workspace_id"]
            cur.execute(
                "SELECT 1 FROM chatflow.workspace_members WHERE workspace_id = %s AND user_id = %s",
                (workspace_id, user_id)
            )
            if cur.fetchone():
                raise ConflictError("You are already a member of this workspace")

            cur.execute(
                """INSERT INTO chatflow.workspace_members (workspace_id, user_id, role)
                   VALUES (%s, %s, %s)""",
                (workspace_id, user_id, invitation["role"])
            )
            join_general_channel(cur, workspace_id, user_id)
            cur.execute(
                """UPDATE chatflow.workspace_invitations
                   SET accepted_at = NOW(), accepted_by = %s
                   WHERE id = %s""",
                (user_id, invitation["id"])
            )
            insert_notification(
                cur, invitation["invited_by"], workspace_id, "invite_accepted",
                title=f"{user_name} joined {invitation['workspace_name']}",
                message=f"{user_name} accepted your invitation",
                data={"user_id": str(user_id), "email": user_email},
            )
            conn.commit()

    result = email_service.send_member_joined(
        invitation["inviter_email"], user_name, user_email,
        invitation["workspace_name"], build_workspace_url(workspace_id),
    )
    if not result.get("success"):
        log.error(f"Member-joined email to {invitation['inviter_email']} failed: {result.get('error')}")

    return {
        "id": str(workspace_id),
        "name": invitation["workspace_name"],
        "role": invitation["role"],
    }


def list_pending_invitations(workspace_id: UUID) -> list[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT i.id, i.email, i.role, i.expires_at, i.created_at,
                          COALESCE(u.display_name, u.email) AS invited_by_name
                   FROM chatflow.workspace_invitations i
                   JOIN chatflow.users u ON u.id = i.invited_by
                   WHERE i.workspace_id = %s AND i.accepted_at IS NULL AND i.expires_at > NOW()
                   ORDER BY i.created_at DESC""",
                (workspace_id,)
            )
            return cur.fetchall()


def revoke_invitation(workspace_id: UUID, invitation_id: UUID) -> bool:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """DELETE FROM chatflow.workspace_invitations
                   WHERE id = %s AND workspace_id = %s AND accepted_at IS NULL""",
                (invitation_id, workspace_id)
            )
            deleted = cur.rowcount > 0
            conn.commit()
            return deleted
