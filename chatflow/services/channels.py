"""Channels and direct messages (stored as threads)."""
import re
from typing import Optional
from uuid import UUID, uuid4
import psycopg
from .database import get_db_connection
from .errors import ConflictError, ForbiddenError, NotFoundError, ServiceError
from .messages import insert_system_message


GENERAL_CHANNEL = "general"
CHANNEL_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")
MAX_CHANNEL_NAME_LENGTH = 80
THREAD_TYPES = {"channel", "direct_message"}


def validate_channel_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ServiceError("Channel name is required")
    if len(name) > MAX_CHANNEL_NAME_LENGTH:
        raise ServiceError("Channel name must be 80 characters or less")
    if not CHANNEL_NAME_PATTERN.match(name):
        raise ServiceError("Channel name can only contain lowercase letters, numbers, and hyphens")
    return name


def create_general_channel(cur, workspace_id: UUID, creator_id: UUID) -> UUID:
    """Create the default #general channel inside the caller's transaction."""
    thread_id = uuid4()
    cur.execute(
        """INSERT INTO chatflow.threads (id, workspace_id, name, description, type, is_private, created_by)
           VALUES (%s, %s, %s, %s, 'channel', false, %s)""",
        (thread_id, workspace_id, GENERAL_CHANNEL, "General discussion for the whole workspace", creator_id)
    )
    cur.execute(
        "INSERT INTO chatflow.thread_members (thread_id, user_id) VALUES (%s, %s)",
        (thread_id, creator_id)
    )
    return thread_id


def join_general_channel(cur, workspace_id: UUID, user_id: UUID) -> None:
    cur.execute(
        """INSERT INTO chatflow.thread_members (thread_id, user_id)
           SELECT id, %s FROM chatflow.threads
           WHERE workspace_id = %s AND type = 'channel' AND name = %s
           ON CONFLICT DO NOTHING""",
        (user_id, workspace_id, GENERAL_CHANNEL)
    )


def list_threads(workspace_id: UUID, user_id: UUID) -> list[dict]:
    """Threads the user belongs to plus public channels, #general first."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT t.id, t.name, t.description, t.type, t.is_private, t.created_by,
                          t.created_at, t.updated_at,
                          tm.user_id IS NOT NULL AS is_member,
                          COALESCE(tm.is_muted, false) AS is_muted,
                          (SELECT COUNT(*) FROM chatflow.thread_members c
                           WHERE c.thread_id = t.id) AS member_count,
                          CASE WHEN tm.user_id IS NULL THEN 0 ELSE (
                              SELECT COUNT(*) FROM chatflow.messages m
                              WHERE m.thread_id = t.id AND m.is_deleted = false
                                AND m.created_at > tm.last_read_at
                                AND m.sender_id IS DISTINCT FROM tm.user_id
                          ) END AS unread_count
                   FROM chatflow.threads t
                   LEFT JOIN chatflow.thread_members tm
                     ON tm.thread_id = t.id AND tm.user_id = %s
                   WHERE t.workspace_id = %s
                     AND (tm.user_id IS NOT NULL OR (t.type = 'channel' AND t.is_private = false))
                   ORDER BY CASE WHEN t.type = 'channel' AND t.name = %s THEN 0 ELSE 1 END,
                            t.type, t.name""",
                (user_id, workspace_id, GENERAL_CHANNEL)
            )
            return cur.fetchall()


def _find_direct_message(cur, workspace_id: UUID, user_a: UUID, user_b: UUID) -> Optional[UUID]:
    cur.execute(
        """SELECT t.id FROM chatflow.threads t
           JOIN chatflow.thread_members a ON a.thread_id = t.id AND a.user_id = %s
           JOIN chatflow.thread_members b ON b.thread_id = t.id AND b.user_id = %s
           WHERE t.workspace_id = %s AND t.type = 'direct_message'
             AND (SELECT COUNT(*) FROM chatflow.thread_members c WHERE c.thread_id = t.id) = 2""",
        (user_a, user_b, workspace_id)
    )
    row = cur.fetchone()
    return row["id"] if row else None


def create_thread(workspace_id: UUID, creator_id: UUID, creator_name: str, is_admin: bool,
                  name: Optional[str] = None, description: Optional[str] = None,
                  type: str = "channel", is_private: bool = False,
                  member_ids: Optional[list[UUID]] = None) -> dict:
    if type not in THREAD_TYPES:
        raise ServiceError("Thread type must be channel or direct_message")

    others = [m for m in dict.fromkeys(member_ids or []) if m != creator_id]

    if type == "channel":
        name = validate_channel_name(name)
        if is_private and not is_admin:
            raise ForbiddenError("Only workspace admins can create private channels")
    else:
        if len(others) != 1:
            raise ServiceError("Direct messages require exactly one other member")
        name = None
        is_private = True

    thread_id = uuid4()
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT user_id FROM chatflow.workspace_members
                   WHERE workspace_id = %s AND user_id = ANY(%s)""",
                (workspace_id, others)
            )
            valid_members = [r["user_id"] for r in cur.fetchall()]

            if type == "direct_message":
                if not valid_members:
                    raise ServiceError("The other participant is not a member of this workspace")
                existing = _find_direct_message(cur, workspace_id, creator_id, valid_members[0])
                if existing:
                    raise ConflictError(f"Direct message already exists: {existing}")

            try:
                cur.execute(
                    """INSERT INTO chatflow.threads
                       (id, workspace_id, name, description, type, is_private, created_by)
                       VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                    (thread_id, workspace_id, name, description, type, is_private, creator_id)
                )
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ConflictError(f"A channel named #{name} already exists")

            for member_id in [creator_id] + valid_members:
                cur.execute(
                    "INSERT INTO chatflow.thread_members (thread_id, user_id) VALUES (%s, %s)",
                    (thread_id, member_id)
                )

            if type == "channel":
                insert_system_message(cur, thread_id, creator_id,
                                      f"{creator_name} created the #{name} channel")

            cur.execute(
                """SELECT t.id, t.workspace_id, t.name, t.description, t.type, t.is_private,
                          t.created_by, t.created_at, t.updated_at,
                          (SELECT COUNT(*) FROM chatflow.thread_members c
                           WHERE c.thread_id = t.id) AS member_count
                   FROM chatflow.threads t WHERE t.id = %s""",
                (thread_id,)
            )
            thread = cur.fetchone()
            conn.commit()
    return thread


def _load_thread(cur, workspace_id: UUID, thread_id: UUID, user_id: UUID) -> dict:
    cur.execute(
        """SELECT t.id, t.name, t.type, t.is_private,
                  tm.user_id IS NOT NULL AS is_member
           FROM chatflow.threads t
           LEFT JOIN chatflow.thread_members tm ON tm.thread_id = t.id AND tm.user_id = %s
           WHERE t.id = %s AND t.workspace_id = %s""",
        (user_id, thread_id, workspace_id)
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Channel not found")
    return row


def join_channel(workspace_id: UUID, thread_id: UUID, user_id: UUID, user_name: str) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            thread = _load_thread(cur, workspace_id, thread_id, user_id)
            if thread["type"] != "channel" or thread["is_private"]:
                raise ServiceError("Only public channels can be joined")
            if thread["is_member"]:
                raise ConflictError("You are already a member of this channel")
            cur.execute(
                "INSERT INTO chatflow.thread_members (thread_id, user_id) VALUES (%s, %s)",
                (thread_id, user_id)
            )
            insert_system_message(cur, thread_id, user_id, f"{user_name} joined the channel")
            conn.commit()


def leave_channel(workspace_id: UUID, thread_id: UUID, user_id: UUID, user_name: str) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            thread = _load_thread(cur, workspace_id, thread_id, user_id)
            if thread["type"] == "direct_message":
                raise ServiceError("You cannot leave a direct message")
            if thread["name"] == GENERAL_CHANNEL:
                raise ServiceError("You cannot leave the #general channel")
            if not thread["is_member"]:
                raise ServiceError("You are not a member of this channel")
            cur.execute(
                "DELETE FROM chatflow.thread_members WHERE thread_id = %s AND user_id = %s",
                (thread_id, user_id)
            )
            insert_system_message(cur, thread_id, user_id, f"{user_name} left the channel")
            conn.commit()


def mark_read(workspace_id: UUID, thread_id: UUID, user_id: UUID) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """UPDATE chatflow.thread_members tm
                   SET last_read_at = NOW()
                   FROM chatflow.threads t
                   WHERE tm.thread_id = t.id AND t.id = %s
                     AND t.workspace_id = %s AND tm.user_id = %s""",
                (thread_id, workspace_id, user_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("You are not a member of this channel")
            conn.commit()


def is_thread_member(workspace_id: UUID, thread_id: UUID, user_id: UUID) -> bool:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT 1 FROM chatflow.thread_members tm
                   JOIN chatflow.threads t ON t.id = tm.thread_id
                   WHERE tm.thread_id = %s AND tm.user_id = %s AND t.workspace_id = %s""",
                (thread_id, user_id, workspace_id)
            )
            return cur.fetchone() is not None
