"""Per-user email notification preferences."""
from uuid import UUID
from psycopg.types.json import Jsonb
from .database import get_db_connection


DEFAULT_PREFERENCES = {
    "immediateMentions": True,
    "immediateDirectMessages": True,
    "immediateWorkspaceInvites": True,
    "batchedEnabled": True,
    "batchedFrequencyMinutes": 30,
    "digestEnabled": True,
    "digestTime": "09:00:00",
    "digestTimezone": "America/New_York",
}


def get_preferences(user_id: UUID) -> dict:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT preferences FROM chatflow.email_notification_preferences WHERE user_id = %s",
                (user_id,)
            )
            row = cur.fetchone()
    return {**DEFAULT_PREFERENCES, **(row["preferences"] if row else {})}


def update_preferences(user_id: UUID, changes: dict) -> dict:
    """Merge known keys over the stored (or default) preferences."""
    unknown = set(changes) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValueError(f"Unknown preference: {', '.join(sorted(unknown))}")

    merged = {**get_preferences(user_id), **changes}
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """INSERT INTO chatflow.email_notification_preferences (user_id, preferences)
                   VALUES (%s, %s)
                   ON CONFLICT (user_id) DO UPDATE
                   SET preferences = EXCLUDED.preferences, updated_at = NOW()""",
                (user_id, Jsonb(merged))
            )
            conn.commit()
    return merged
