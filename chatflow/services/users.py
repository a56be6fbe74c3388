"""User management service."""
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4
import psycopg
from .database import get_db_connection


USER_COLUMNS = """id, email, display_name, profile_picture_url, phone_number, role,
                  is_active, verified_at, last_login_at, created_at, updated_at"""


def _to_iso(dt):
    if dt is None:
        return None
    if hasattr(dt, "isoformat"):
        return dt.isoformat()
    return str(dt)


class User:
    """Chat user, identified by email."""
    def __init__(self, id: UUID, email: str, display_name: Optional[str],
                 profile_picture_url: Optional[str], phone_number: Optional[str],
                 role: str, is_active: bool, verified_at: Optional[datetime],
                 last_login_at: Optional[datetime], created_at: datetime,
                 updated_at: datetime):
        self.id = id
        self.email = email
        self.display_name = display_name
        self.profile_picture_url = profile_picture_url
        self.phone_number = phone_number
        self.role = role
        self.is_active = is_active
        self.verified_at = verified_at
        self.last_login_at = last_login_at
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            row["id"], row["email"], row["display_name"], row["profile_picture_url"],
            row["phone_number"], row["role"], row["is_active"], row["verified_at"],
            row["last_login_at"], row["created_at"], row["updated_at"],
        )

    @property
    def name(self) -> str:
        """Display name, falling back to the email local part."""
        return self.display_name or self.email.split("@")[0]

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "email": self.email,
            "display_name": self.display_name,
            "profile_picture_url": self.profile_picture_url,
            "phone_number": self.phone_number,
            "role": self.role,
            "is_active": self.is_active,
            "verified_at": _to_iso(self.verified_at),
            "last_login_at": _to_iso(self.last_login_at),
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
        }

    def to_public_dict(self):
        """Fields other workspace members may see."""
        return {
            "id": str(self.id),
            "display_name": self.name,
            "profile_picture_url": self.profile_picture_url,
            "created_at": _to_iso(self.created_at),
        }


def find_user_by_email(email: str) -> Optional[User]:
    """Find user by email address (case-insensitive)."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {USER_COLUMNS} FROM chatflow.users WHERE lower(email) = lower(%s)",
                (email,)
            )
            row = cur.fetchone()
            return User.from_row(row) if row else None


def find_user_by_id(user_id: UUID) -> Optional[User]:
    """Find user by ID."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {USER_COLUMNS} FROM chatflow.users WHERE id = %s",
                (user_id,)
            )
            row = cur.fetchone()
            return User.from_row(row) if row else None


def user_exists(user_id: UUID) -> bool:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM chatflow.users WHERE id = %s", (user_id,))
            return cur.fetchone() is not None


def create_user(email: str, display_name: Optional[str] = None,
                role: str = "user") -> User:
    """Create a new user with email as primary identifier."""
    email = email.lower()
    if not display_name:
        display_name = email.split("@")[0]
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            try:
                cur.execute(
                    f"""INSERT INTO chatflow.users (id, email, display_name, role, is_active)
                       VALUES (%s, %s, %s, %s, true)
                       RETURNING {USER_COLUMNS}""",
                    (uuid4(), email, display_name, role)
                )
                row = cur.fetchone()
                conn.commit()
                return User.from_row(row)
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ValueError(f"User with email {email} already exists")


def update_last_login(user_id: UUID) -> None:
    """Update user's last login timestamp, verifying on first login."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """UPDATE chatflow.users
                   SET last_login_at = NOW(),
                       verified_at = COALESCE(verified_at, NOW()),
                       updated_at = NOW()
                   WHERE id = %s""",
                (user_id,)
            )
            conn.commit()


def update_profile(user_id: UUID, display_name: Optional[str] = None,
                   profile_picture_url: Optional[str] = None,
                   phone_number: Optional[str] = None) -> Optional[User]:
    """Partial profile update. Returns None if the user vanished."""
    updates = []
    params = []

    if display_name is not None:
        updates.append("display_name = %s")
        params.append(display_name)

    if profile_picture_url is not None:
        updates.append("profile_picture_url = %s")
        params.append(profile_picture_url)

    if phone_number is not None:
        updates.append("phone_number = %s")
        params.append(phone_number)

    if not updates:
        return find_user_by_id(user_id)

    updates.append("updated_at = NOW()")
    params.append(user_id)

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""UPDATE chatflow.users
                    SET {', '.join(updates)}
                    WHERE id = %s
                    RETURNING {USER_COLUMNS}""",
                params
            )
            row = cur.fetchone()
            conn.commit()
            return User.from_row(row) if row else None


def list_user_workspaces(user_id: UUID) -> list[dict]:
    """Workspaces the user belongs to, with their role."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT w.id, w.name, wm.role, wm.joined_at
                   FROM chatflow.workspace_members wm
                   JOIN chatflow.workspaces w ON w.id = wm.workspace_id
                   WHERE wm.user_id = %s AND w.archived_at IS NULL
                   ORDER BY wm.joined_at""",
                (user_id,)
            )
            return [
                {
                    "id": str(r["id"]),
                    "name": r["name"],
                    "role": r["role"],
                    "joined_at": _to_iso(r["joined_at"]),
                }
                for r in cur.fetchall()
            ]


def search_users(query: str, limit: int = 10) -> list[User]:
    """Active users whose email or display name contains the query."""
    pattern = f"%{query}%"
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""SELECT {USER_COLUMNS} FROM chatflow.users
                    WHERE is_active = true
                      AND (email ILIKE %s OR display_name ILIKE %s)
                    ORDER BY display_name NULLS LAST, email
                    LIMIT %s""",
                (pattern, pattern, limit)
            )
            return [User.from_row(r) for r in cur.fetchall()]
