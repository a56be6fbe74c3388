"""Channel tasks."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4
from psycopg.types.json import Jsonb
from .database import get_db_connection
from .errors import NotFoundError, ServiceError


TASK_STATUSES = {"pending", "in_progress", "completed", "cancelled"}
TASK_PRIORITIES = {"low", "medium", "high", "urgent"}
MAX_TITLE_LENGTH = 255

# Columns a client may set on create; updates additionally allow the last two
CREATE_FIELDS = [
    "title", "description", "start_date", "end_date", "due_date", "assigned_to",
    "status", "priority", "tags", "estimated_hours", "is_all_day",
    "start_time", "end_time", "parent_task_id", "dependencies",
]
UPDATE_FIELDS = CREATE_FIELDS + ["actual_hours", "completed_at"]
JSON_FIELDS = {"tags", "dependencies"}
# NOT NULL columns; an explicit null on update is rejected
REQUIRED_FIELDS = {"title", "status", "priority", "tags", "is_all_day", "dependencies"}

TASK_SELECT = """SELECT ct.*,
                        COALESCE(a.display_name, a.email) AS assigned_to_name,
                        a.email AS assigned_to_email,
                        COALESCE(c.display_name, c.email) AS created_by_name
                 FROM chatflow.channel_tasks ct
                 LEFT JOIN chatflow.users a ON a.id = ct.assigned_to
                 LEFT JOIN chatflow.users c ON c.id = ct.created_by"""


def validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ServiceError("Task title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ServiceError("Task title must be 255 characters or less")
    return title


def _validate_fields(cur, thread_id: UUID, fields: Dict[str, Any]) -> None:
    if "status" in fields and fields["status"] not in TASK_STATUSES:
        raise ServiceError("Invalid task status")
    if "priority" in fields and fields["priority"] not in TASK_PRIORITIES:
        raise ServiceError("Invalid task priority")

    if fields.get("assigned_to"):
        cur.execute("SELECT 1 FROM chatflow.users WHERE id = %s", (fields["assigned_to"],))
        if not cur.fetchone():
            raise ServiceError("Assigned user does not exist")

    if fields.get("parent_task_id"):
        cur.execute(
            "SELECT 1 FROM chatflow.channel_tasks WHERE id = %s AND thread_id = %s",
            (fields["parent_task_id"], thread_id)
        )
        if not cur.fetchone():
            raise ServiceError("Parent task not found in this channel")


def _adapt(field: str, value):
    if field in JSON_FIELDS:
        return Jsonb(value or [])
    return value


def list_tasks(thread_id: UUID, status: Optional[str] = None,
               assigned_to: Optional[UUID] = None, start_date: Optional[str] = None,
               end_date: Optional[str] = None, limit: int = 50, offset: int = 0) -> dict:
    conditions = ["ct.thread_id = %s"]
    params: list = [thread_id]
    if status:
        conditions.append("ct.status = %s")
        params.append(status)
    if assigned_to:
        conditions.append("ct.assigned_to = %s")
        params.append(assigned_to)
    if start_date:
        conditions.append("ct.start_date >= %s")
        params.append(start_date)
    if end_date:
        conditions.append("ct.end_date <= %s")
        params.append(end_date)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""{TASK_SELECT}
                    WHERE {' AND '.join(conditions)}
                    ORDER BY ct.created_at DESC
                    LIMIT %s OFFSET %s""",
                params + [limit, offset]
            )
            tasks = cur.fetchall()

    return {"tasks": tasks, "total": len(tasks), "limit": limit, "offset": offset}


def get_task(thread_id: UUID, task_id: UUID) -> dict:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"{TASK_SELECT} WHERE ct.id = %s AND ct.thread_id = %s", (task_id, thread_id))
            task = cur.fetchone()
    if not task:
        raise NotFoundError("Task not found in this channel")
    return task


def create_task(thread_id: UUID, creator_id: UUID, fields: Dict[str, Any]) -> dict:
    values = {k: v for k, v in fields.items() if k in CREATE_FIELDS and v is not None}
    values["title"] = validate_title(fields.get("title"))
    values.setdefault("status", "pending")
    values.setdefault("priority", "medium")

    task_id = uuid4()
    columns = ["id", "thread_id", "created_by"] + list(values)
    params = [task_id, thread_id, creator_id] + [_adapt(k, v) for k, v in values.items()]
    if values["status"] == "completed":
        columns.append("completed_at")
        params.append(datetime.now(timezone.utc))

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            _validate_fields(cur, thread_id, values)
            cur.execute(
                f"""INSERT INTO chatflow.channel_tasks ({', '.join(columns)})
                    VALUES ({', '.join(['%s'] * len(columns))})""",
                params
            )
            cur.execute(f"{TASK_SELECT} WHERE ct.id = %s", (task_id,))
            task = cur.fetchone()
            conn.commit()
    return task


def update_task(thread_id: UUID, task_id: UUID, fields: Dict[str, Any]) -> dict:
    """Partial update. Only keys present in fields are written."""
    values = {k: v for k, v in fields.items() if k in UPDATE_FIELDS}
    if not values:
        raise ServiceError("No fields to update")
    cleared = sorted(k for k in REQUIRED_FIELDS if k in values and values[k] is None)
    if cleared:
        raise ServiceError(f"{cleared[0]} cannot be null")
    if "title" in values:
        values["title"] = validate_title(values["title"])
    if values.get("status") == "completed" and not values.get("completed_at"):
        values["completed_at"] = datetime.now(timezone.utc)
    if values.get("parent_task_id") == task_id:
        raise ServiceError("A task cannot be its own parent")

    updates = [f"{k} = %s" for k in values]
    params = [_adapt(k, v) for k, v in values.items()]
    updates.append("updated_at = NOW()")
    params.extend([task_id, thread_id])

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM chatflow.channel_tasks WHERE id = %s AND thread_id = %s",
                (task_id, thread_id)
            )
            if not cur.fetchone():
                raise NotFoundError("Task not found in this channel")
            _validate_fields(cur, thread_id, values)
            cur.execute(
                f"""UPDATE chatflow.channel_tasks
                    SET {', '.join(updates)}
                    WHERE id = %s AND thread_id = %s""",
                params
            )
            cur.execute(f"{TASK_SELECT} WHERE ct.id = %s", (task_id,))
            task = cur.fetchone()
            conn.commit()
    return task


def delete_task(thread_id: UUID, task_id: UUID) -> None:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM chatflow.channel_tasks WHERE id = %s AND thread_id = %s",
                (task_id, thread_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("Task not found in this channel")
            conn.commit()


def list_subtasks(thread_id: UUID, task_id: UUID) -> list[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""{TASK_SELECT}
                    WHERE ct.parent_task_id = %s AND ct.thread_id = %s
                    ORDER BY ct.created_at ASC""",
                (task_id, thread_id)
            )
            return cur.fetchall()


# Cross-channel task views: every channel the user belongs to, in every
# non-archived workspace.

USER_TASK_SELECT = """SELECT ct.*,
                             t.name AS channel_name,
                             t.workspace_id,
                             w.name AS workspace_name,
                             COALESCE(a.display_name, a.email) AS assigned_to_name,
                             COALESCE(c.display_name, c.email) AS created_by_name,
                             (ct.created_by = %s OR ct.assigned_to = %s) AS user_can_edit
                      FROM chatflow.channel_tasks ct
                      JOIN chatflow.threads t ON t.id = ct.thread_id
                      JOIN chatflow.workspaces w ON w.id = t.workspace_id
                      LEFT JOIN chatflow.users a ON a.id = ct.assigned_to
                      LEFT JOIN chatflow.users c ON c.id = ct.created_by"""

USER_TASK_SCOPE = """w.archived_at IS NULL
                     AND EXISTS (SELECT 1 FROM chatflow.thread_members tm
                                 WHERE tm.thread_id = ct.thread_id AND tm.user_id = %s)"""


def list_user_tasks(user_id: UUID, workspace_ids: Optional[list[UUID]] = None,
                    channel_ids: Optional[list[UUID]] = None, status: Optional[str] = None,
                    start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                    assigned_to_me: bool = False, created_by_me: bool = False,
                    limit: int = 500, offset: int = 0) -> dict:
    """Tasks from every channel the user is a member of, soonest first.

    A task falls in the date range when its start (or due) date is at or
    after start_date and its end (or due) date is at or before end_date.
    """
    conditions = [USER_TASK_SCOPE]
    params: list = [user_id]
    if workspace_ids:
        conditions.append("t.workspace_id = ANY(%s)")
        params.append(list(workspace_ids))
    if channel_ids:
        conditions.append("ct.thread_id = ANY(%s)")
        params.append(list(channel_ids))
    if status:
        conditions.append("ct.status = %s")
        params.append(status)
    if start_date:
        conditions.append("(ct.start_date >= %s OR ct.due_date >= %s)")
        params.extend([start_date, start_date])
    if end_date:
        conditions.append("(ct.end_date <= %s OR ct.due_date <= %s)")
        params.extend([end_date, end_date])
    if assigned_to_me and created_by_me:
        conditions.append("(ct.assigned_to = %s OR ct.created_by = %s)")
        params.extend([user_id, user_id])
    elif assigned_to_me:
        conditions.append("ct.assigned_to = %s")
        params.append(user_id)
    elif created_by_me:
        conditions.append("ct.created_by = %s")
        params.append(user_id)
    where = " AND ".join(conditions)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""SELECT COUNT(*) AS total
                    FROM chatflow.channel_tasks ct
                    JOIN chatflow.threads t ON t.id = ct.thread_id
                    JOIN chatflow.workspaces w ON w.id = t.workspace_id
                    WHERE {where}""",
                params
            )
            total = cur.fetchone()["total"]
            cur.execute(
                f"""{USER_TASK_SELECT}
                    WHERE {where}
                    ORDER BY COALESCE(ct.start_date, ct.due_date, ct.created_at) ASC,
                             ct.created_at DESC
                    LIMIT %s OFFSET %s""",
                [user_id, user_id] + params + [limit, offset]
            )
            tasks = cur.fetchall()

    return {
        "tasks": tasks,
        "total": total,
        "limit": limit,
        "offset": offset,
        "filters": {
            "workspace_ids": [str(w) for w in workspace_ids] if workspace_ids else None,
            "channel_ids": [str(c) for c in channel_ids] if channel_ids else None,
            "status": status,
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "assigned_to_me": assigned_to_me,
            "created_by_me": created_by_me,
        },
    }


def list_task_workspaces(user_id: UUID) -> list[dict]:
    """The user's workspaces with the number of tasks visible to them in each."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT w.id, w.name, w.description,
                          (SELECT COUNT(*)
                           FROM chatflow.channel_tasks ct
                           JOIN chatflow.threads t ON t.id = ct.thread_id
                           JOIN chatflow.thread_members tm ON tm.thread_id = t.id
                           WHERE t.workspace_id = w.id AND tm.user_id = %s) AS task_count
                   FROM chatflow.workspaces w
                   JOIN chatflow.workspace_members wm ON wm.workspace_id = w.id
                   WHERE wm.user_id = %s AND w.archived_at IS NULL
                   ORDER BY w.name ASC""",
                (user_id, user_id)
            )
            return cur.fetchall()


def list_task_channels(user_id: UUID, workspace_ids: Optional[list[UUID]] = None) -> list[dict]:
    """Channels the user belongs to, with their task counts."""
    conditions = ["tm.user_id = %s", "w.archived_at IS NULL"]
    params: list = [user_id]
    if workspace_ids:
        conditions.append("t.workspace_id = ANY(%s)")
        params.append(list(workspace_ids))

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""SELECT t.id, t.name, t.type, t.workspace_id, w.name AS workspace_name,
                           (SELECT COUNT(*) FROM chatflow.channel_tasks ct
                            WHERE ct.thread_id = t.id) AS task_count
                    FROM chatflow.threads t
                    JOIN chatflow.workspaces w ON w.id = t.workspace_id
                    JOIN chatflow.thread_members tm ON tm.thread_id = t.id
                    WHERE {' AND '.join(conditions)}
                    ORDER BY w.name ASC, t.name ASC""",
                params
            )
            return cur.fetchall()
