"""In-app notifications and per-channel unread state."""
from typing import Optional
from uuid import UUID, uuid4
from psycopg.types.json import Jsonb
from .database import get_db_connection
from .errors import NotFoundError


NOTIFICATION_COLUMNS = "id, workspace_id, type, title, message, data, is_read, read_at, created_at"


def insert_notification(cur, user_id: UUID, workspace_id: Optional[UUID], type: str,
                        title: str, message: Optional[str] = None,
                        data: Optional[dict] = None) -> UUID:
    """Insert a notification using the caller's cursor (joins its transaction)."""
    notification_id = uuid4()
    cur.execute(
        """INSERT INTO chatflow.notifications
           (id, user_id, workspace_id, type, title, message, data)
           VALUES (%s, %s, %s, %s, %s, %s, %s)""",
        (notification_id, user_id, workspace_id, type, title, message, Jsonb(data or {}))
    )
    return notification_id


def list_notifications(user_id: UUID, limit: int = 20, offset: int = 0,
                       unread_only: bool = False) -> dict:
    """Notifications across all workspaces, newest first."""
    where = "user_id = %s"
    if unread_only:
        where += " AND is_read = false"

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""SELECT {NOTIFICATION_COLUMNS} FROM chatflow.notifications
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT %s OFFSET %s""",
                (user_id, limit, offset)
            )
            rows = cur.fetchall()
            cur.execute(
                "SELECT COUNT(*) AS n FROM chatflow.notifications WHERE user_id = %s AND is_read = false",
                (user_id,)
            )
            unread_count = cur.fetchone()["n"]

    return {
        "notifications": rows,
        "unread_count": unread_count,
        "limit": limit,
        "offset": offset,
    }


def mark_notification_read(user_id: UUID, notification_id: UUID) -> dict:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""UPDATE chatflow.notifications
                    SET is_read = true, read_at = COALESCE(read_at, NOW())
                    WHERE id = %s AND user_id = %s
                    RETURNING {NOTIFICATION_COLUMNS}""",
                (notification_id, user_id)
            )
            row = cur.fetchone()
            if not row:
                raise NotFoundError("Notification not found")
            conn.commit()
            return row


def get_unread_summary(user_id: UUID, workspace_id: UUID) -> dict:
    """Unread counts per channel the user belongs to.

    Messages count as unread when newer than the member's last_read_at and
    not sent by the user. Muted channels are listed but excluded from totals.
    """
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT t.id AS thread_id, t.name, t.type, tm.is_muted, tm.last_read_at,
                          COUNT(m.id) AS unread_count
                   FROM chatflow.thread_members tm
                   JOIN chatflow.threads t ON t.id = tm.thread_id
                   LEFT JOIN chatflow.messages m
                     ON m.thread_id = t.id
                    AND m.is_deleted = false
                    AND m.created_at > tm.last_read_at
                    AND m.sender_id IS DISTINCT FROM tm.user_id
                   WHERE tm.user_id = %s AND t.workspace_id = %s
                   GROUP BY t.id, t.name, t.type, tm.is_muted, tm.last_read_at
                   ORDER BY unread_count DESC, t.name""",
                (user_id, workspace_id)
            )
            rows = cur.fetchall()

    total = sum(r["unread_count"] for r in rows if not r["is_muted"])
    return {
        "total_unread": total,
        "unread_conversations": sum(1 for r in rows if r["unread_count"] and not r["is_muted"]),
        "channels": rows,
    }


def mark_all_read(user_id: UUID, workspace_id: UUID) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """UPDATE chatflow.thread_members tm
                   SET last_read_at = NOW()
                   FROM chatflow.threads t
                   WHERE tm.thread_id = t.id AND tm.user_id = %s AND t.workspace_id = %s""",
                (user_id, workspace_id)
            )
            cur.execute(
                """UPDATE chatflow.notifications
                   SET is_read = true, read_at = COALESCE(read_at, NOW())
                   WHERE user_id = %s AND workspace_id = %s AND is_read = false""",
                (user_id, workspace_id)
            )
            conn.commit()


def set_muted(user_id: UUID, workspace_id: UUID, thread_id: UUID, is_muted: bool) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """UPDATE chatflow.thread_members tm
                   SET is_muted = %s
                   FROM chatflow.threads t
                   WHERE tm.thread_id = t.id AND t.id = %s
                     AND t.workspace_id = %s AND tm.user_id = %s""",
                (is_muted, thread_id, workspace_id, user_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("You are not a member of this channel")
            conn.commit()


def get_history(user_id: UUID, workspace_id: UUID, limit: int = 50, offset: int = 0,
                type: Optional[str] = None, unread_only: bool = False) -> dict:
    conditions = ["user_id = %s", "workspace_id = %s"]
    params: list = [user_id, workspace_id]
    if type:
        conditions.append("type = %s")
        params.append(type)
    if unread_only:
        conditions.append("is_read = false")
    where = " AND ".join(conditions)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT COUNT(*) AS n FROM chatflow.notifications WHERE {where}",
                params
            )
            total = cur.fetchone()["n"]
            cur.execute(
                f"""SELECT {NOTIFICATION_COLUMNS} FROM chatflow.notifications
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT %s OFFSET %s""",
                params + [limit, offset]
            )
            rows = cur.fetchall()

    return {
        "notifications": rows,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        },
    }
