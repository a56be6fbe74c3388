"""Workspace CRUD and membership."""
from typing import Optional
from uuid import UUID, uuid4
import psycopg
from psycopg.types.json import Jsonb
from .database import get_db_connection
from .errors import ConflictError, NotFoundError, ServiceError
from .channels import GENERAL_CHANNEL, create_general_channel
from .notifications import insert_notification


MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000

DEFAULT_SETTINGS = {
    "allow_public_channels": True,
    "allow_private_channels": True,
    "max_file_size_mb": 25,
    "retention_days": None,
}


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ServiceError("Workspace name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ServiceError("Workspace name must be 255 characters or less")
    return name


def validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ServiceError("Description must be 1000 characters or less")
    return description


def get_membership(workspace_id: UUID, user_id: UUID) -> Optional[dict]:
    """Caller's membership in an active workspace, or None."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT wm.role, w.owner_id = wm.user_id AS is_owner, w.name AS workspace_name
                   FROM chatflow.workspace_members wm
                   JOIN chatflow.workspaces w ON w.id = wm.workspace_id
                   WHERE wm.workspace_id = %s AND wm.user_id = %s
                     AND w.archived_at IS NULL""",
                (workspace_id, user_id)
            )
            return cur.fetchone()


def list_workspaces(user_id: UUID) -> list[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT w.id, w.name, w.description, w.settings, w.owner_id,
                          w.created_at, w.updated_at, wm.role, wm.joined_at,
                          (SELECT COUNT(*) FROM chatflow.workspace_members m
                           WHERE m.workspace_id = w.id) AS member_count
                   FROM chatflow.workspaces w
                   JOIN chatflow.workspace_members wm ON wm.workspace_id = w.id
                   WHERE wm.user_id = %s AND w.archived_at IS NULL
                   ORDER BY w.updated_at DESC""",
                (user_id,)
            )
            return cur.fetchall()


def create_workspace(owner_id: UUID, name: str, description: Optional[str] = None,
                     settings: Optional[dict] = None) -> dict:
    """Create a workspace with its owner as admin and a #general channel."""
    name = validate_name(name)
    description = validate_description(description)
    merged = {**DEFAULT_SETTINGS, **(settings or {})}
    workspace_id = uuid4()

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            try:
                cur.execute(
                    """INSERT INTO chatflow.workspaces (id, name, description, owner_id, settings)
                       VALUES (%s, %s, %s, %s, %s)
                       RETURNING id, name, description, owner_id, settings, created_at, updated_at""",
                    (workspace_id, name, description, owner_id, Jsonb(merged))
                )
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ConflictError("A workspace with this name already exists")
            workspace = cur.fetchone()

            cur.execute(
                """INSERT INTO chatflow.workspace_members (workspace_id, user_id, role)
                   VALUES (%s, %s, 'admin')""",
                (workspace_id, owner_id)
            )
            general_id = create_general_channel(cur, workspace_id, owner_id)
            conn.commit()

    return {**workspace, "role": "admin", "member_count": 1, "general_channel_id": general_id}


def get_workspace(workspace_id: UUID, user_id: UUID) -> Optional[dict]:
    """Workspace with members and the channels visible to user."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT id, name, description, owner_id, settings, created_at, updated_at
                   FROM chatflow.workspaces WHERE id = %s AND archived_at IS NULL""",
                (workspace_id,)
            )
            workspace = cur.fetchone()
            if not workspace:
                return None

            cur.execute(
                """SELECT u.id, u.email, u.display_name, u.profile_picture_url,
                          wm.role, wm.joined_at
                   FROM chatflow.workspace_members wm
                   JOIN chatflow.users u ON u.id = wm.user_id
                   WHERE wm.workspace_id = %s
                   ORDER BY wm.joined_at""",
                (workspace_id,)
            )
            members = cur.fetchall()

            cur.execute(
                """SELECT t.id, t.name, t.description, t.type, t.is_private, t.created_at,
                          tm.user_id IS NOT NULL AS is_member
                   FROM chatflow.threads t
                   LEFT JOIN chatflow.thread_members tm
                     ON tm.thread_id = t.id AND tm.user_id = %s
                   WHERE t.workspace_id = %s AND t.type = 'channel'
                     AND (t.is_private = false OR tm.user_id IS NOT NULL)
                   ORDER BY CASE WHEN t.name = %s THEN 0 ELSE 1 END, t.name""",
                (user_id, workspace_id, GENERAL_CHANNEL)
            )
            channels = cur.fetchall()

    return {**workspace, "members": members, "member_count": len(members), "channels": channels}


def update_workspace(workspace_id: UUID, name: Optional[str] = None,
                     description: Optional[str] = None,
                     settings: Optional[dict] = None) -> Optional[dict]:
    updates = []
    params: list = []

    if name is not None:
        updates.append("name = %s")
        params.append(validate_name(name))

    if description is not None:
        updates.append("description = %s")
        params.append(validate_description(description))

    if settings is not None:
        updates.append("settings = settings || %s")
        params.append(Jsonb(settings))

    if not updates:
        raise ServiceError("No fields to update")

    updates.append("updated_at = NOW()")
    params.append(workspace_id)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            try:
                cur.execute(
                    f"""UPDATE chatflow.workspaces
                        SET {', '.join(updates)}
                        WHERE id = %s AND archived_at IS NULL
                        RETURNING id, name, description, owner_id, settings, created_at, updated_at""",
                    params
                )
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ConflictError("A workspace with this name already exists")
            row = cur.fetchone()
            conn.commit()
            return row


def delete_workspace(workspace_id: UUID, archive: bool = False) -> str:
    """Archive (soft) or delete a workspace. Returns the action taken."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            if archive:
                cur.execute(
                    """UPDATE chatflow.workspaces
                       SET settings = settings || '{"archived": true}'::jsonb,
                           archived_at = NOW(), updated_at = NOW()
                       WHERE id = %s AND archived_at IS NULL""",
                    (workspace_id,)
                )
            else:
                cur.execute("DELETE FROM chatflow.workspaces WHERE id = %s", (workspace_id,))
            if cur.rowcount == 0:
                raise NotFoundError("Workspace not found")
            conn.commit()
    return "archived" if archive else "deleted"


def remove_member(workspace_id: UUID, actor_id: UUID, user_id: UUID) -> None:
    """Remove a member from the workspace and all its channels."""
    if actor_id == user_id:
        raise ServiceError("You cannot remove yourself from the workspace")

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT w.name, w.owner_id, wm.user_id AS member_id
                   FROM chatflow.workspaces w
                   LEFT JOIN chatflow.workspace_members wm
                     ON wm.workspace_id = w.id AND wm.user_id = %s
                   WHERE w.id = %s""",
                (user_id, workspace_id)
            )
            row = cur.fetchone()
            if not row or row["member_id"] is None:
                raise NotFoundError("User is not a member of this workspace")
            if row["owner_id"] == user_id:
                raise ServiceError("The workspace owner cannot be removed")

            cur.execute(
                """DELETE FROM chatflow.thread_members
                   WHERE user_id = %s
                     AND thread_id IN (SELECT id FROM chatflow.threads WHERE workspace_id = %s)""",
                (user_id, workspace_id)
            )
            cur.execute(
                "DELETE FROM chatflow.workspace_members WHERE workspace_id = %s AND user_id = %s",
                (workspace_id, user_id)
            )
            insert_notification(
                cur, user_id, workspace_id, "member_removed",
                title=f"You were removed from {row['name']}",
                data={"workspace_name": row["name"], "removed_by": str(actor_id)},
            )
            conn.commit()


def count_members(cur, workspace_id: UUID) -> int:
    cur.execute(
        "SELECT COUNT(*) AS n FROM chatflow.workspace_members WHERE workspace_id = %s",
        (workspace_id,)
    )
    return cur.fetchone()["n"]
