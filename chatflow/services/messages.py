"""Channel messages."""
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4
from .database import get_db_connection
from .errors import ForbiddenError, NotFoundError, ServiceError
from .notifications import insert_notification


MAX_CONTENT_LENGTH = 10000
USER_MESSAGE_TYPES = {"text", "file", "code", "rich_text"}

MESSAGE_COLUMNS = """m.id, m.thread_id, m.content, m.message_type, m.is_edited,
                     m.created_at, m.updated_at, m.sender_id,
                     u.display_name AS sender_name, u.profile_picture_url AS sender_avatar"""


def insert_system_message(cur, thread_id: UUID, sender_id: UUID, content: str) -> UUID:
    """Post a system message inside the caller's transaction."""
    message_id = uuid4()
    cur.execute(
        """INSERT INTO chatflow.messages (id, thread_id, sender_id, content, message_type)
           VALUES (%s, %s, %s, %s, 'system')""",
        (message_id, thread_id, sender_id, content)
    )
    cur.execute("UPDATE chatflow.threads SET updated_at = NOW() WHERE id = %s", (thread_id,))
    return message_id


def get_thread_access(workspace_id: UUID, thread_id: UUID, user_id: UUID) -> Optional[dict]:
    """Thread row with is_member/can_read flags, or None if not in the workspace."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT t.id, t.name, t.type, t.is_private,
                          tm.user_id IS NOT NULL AS is_member
                   FROM chatflow.threads t
                   LEFT JOIN chatflow.thread_members tm
                     ON tm.thread_id = t.id AND tm.user_id = %s
                   WHERE t.id = %s AND t.workspace_id = %s""",
                (user_id, thread_id, workspace_id)
            )
            row = cur.fetchone()
    if not row:
        return None
    row["can_read"] = row["is_member"] or (row["type"] == "channel" and not row["is_private"])
    return row


def list_messages(workspace_id: UUID, thread_id: UUID, user_id: UUID,
                  limit: int = 50, offset: int = 0, search: Optional[str] = None,
                  before: Optional[datetime] = None, after: Optional[datetime] = None) -> dict:
    access = get_thread_access(workspace_id, thread_id, user_id)
    if not access or not access["can_read"]:
        raise ForbiddenError("You do not have access to this thread")

    conditions = ["m.thread_id = %s", "m.is_deleted = false"]
    params: list = [thread_id]
    if search:
        conditions.append("m.content ILIKE %s")
        params.append(f"%{search}%")
    if before:
        conditions.append("m.created_at < %s")
        params.append(before)
    if after:
        conditions.append("m.created_at > %s")
        params.append(after)
    where = " AND ".join(conditions)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS n FROM chatflow.messages m WHERE {where}", params)
            total = cur.fetchone()["n"]
            cur.execute(
                f"""SELECT {MESSAGE_COLUMNS}
                    FROM chatflow.messages m
                    LEFT JOIN chatflow.users u ON u.id = m.sender_id
                    WHERE {where}
                    ORDER BY m.created_at DESC
                    LIMIT %s OFFSET %s""",
                params + [limit, offset]
            )
            rows = cur.fetchall()
            if access["is_member"]:
                cur.execute(
                    "UPDATE chatflow.thread_members SET last_read_at = NOW() WHERE thread_id = %s AND user_id = %s",
                    (thread_id, user_id)
                )
            conn.commit()

    return {
        "messages": rows,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        },
    }


def create_message(workspace_id: UUID, thread_id: UUID, sender_id: UUID, sender_name: str,
                   content: str, message_type: str = "text",
                   mentions: Optional[list[UUID]] = None) -> dict:
    access = get_thread_access(workspace_id, thread_id, sender_id)
    if not access or not access["is_member"]:
        raise ForbiddenError("You must be a member of this thread to post messages")

    content = (content or "").strip()
    if not content:
        raise ServiceError("Message content is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ServiceError("Message content cannot exceed 10,000 characters")
    if message_type not in USER_MESSAGE_TYPES:
        raise ServiceError("Invalid message type")

    message_id = uuid4()
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """INSERT INTO chatflow.messages (id, thread_id, sender_id, content, message_type)
                   VALUES (%s, %s, %s, %s, %s)""",
                (message_id, thread_id, sender_id, content, message_type)
            )
            cur.execute("UPDATE chatflow.threads SET updated_at = NOW() WHERE id = %s", (thread_id,))

            mentioned = {m for m in (mentions or []) if m != sender_id}
            if mentioned:
                cur.execute(
                    """SELECT user_id FROM chatflow.workspace_members
                       WHERE workspace_id = %s AND user_id = ANY(%s)""",
                    (workspace_id, list(mentioned))
                )
                channel = access["name"] or "a direct message"
                for row in cur.fetchall():
                    insert_notification(
                        cur, row["user_id"], workspace_id, "mention",
                        title=f"{sender_name} mentioned you in #{channel}",
                        message=content[:200],
                        data={"thread_id": str(thread_id), "message_id": str(message_id)},
                    )

            cur.execute(
                f"""SELECT {MESSAGE_COLUMNS}
                    FROM chatflow.messages m
                    LEFT JOIN chatflow.users u ON u.id = m.sender_id
                    WHERE m.id = %s""",
                (message_id,)
            )
            message = cur.fetchone()
            conn.commit()
    return message


def _get_message(cur, workspace_id: UUID, thread_id: UUID, message_id: UUID) -> dict:
    cur.execute(
        """SELECT m.id, m.sender_id FROM chatflow.messages m
           JOIN chatflow.threads t ON t.id = m.thread_id
           WHERE m.id = %s AND m.thread_id = %s AND t.workspace_id = %s
             AND m.is_deleted = false""",
        (message_id, thread_id, workspace_id)
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Message not found")
    return row


def update_message(workspace_id: UUID, thread_id: UUID, message_id: UUID, user_id: UUID, content: str) -> dict:
    content = (content or "").strip()
    if not content:
        raise ServiceError("Message content is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ServiceError("Message content cannot exceed 10,000 characters")

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            existing = _get_message(cur, workspace_id, thread_id, message_id)
            if existing["sender_id"] != user_id:
                raise ForbiddenError("You can only edit your own messages")
            cur.execute(
                """UPDATE chatflow.messages
                   SET content = %s, is_edited = true, updated_at = NOW()
                   WHERE id = %s
                   RETURNING id, thread_id, content, message_type, is_edited, created_at, updated_at, sender_id""",
                (content, message_id)
            )
            row = cur.fetchone()
            conn.commit()
            return row


def delete_message(workspace_id: UUID, thread_id: UUID, message_id: UUID, user_id: UUID, is_admin: bool) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            existing = _get_message(cur, workspace_id, thread_id, message_id)
            if existing["sender_id"] != user_id and not is_admin:
                raise ForbiddenError("You can only delete your own messages")
            cur.execute(
                "UPDATE chatflow.messages SET is_deleted = true, updated_at = NOW() WHERE id = %s",
                (message_id,)
            )
            conn.commit()
