import os
import sys
import time
import logging
from datetime import datetime, timezone

import psycopg
from alembic import command
from alembic.config import Config

from . import __version__


log = logging.getLogger("chatflow.migrate")

SERVICE = "chatflow"
# Advisory lock key for chatflow migrations (arbitrary stable bigint)
LOCK_KEY = 7302144185509912331
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _truthy(val: str | None) -> bool:
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def get_migrations_url() -> str:
    db_url = os.environ.get("MIGRATIONS_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL or MIGRATIONS_DATABASE_URL must be set")
    return db_url


def get_alembic_config() -> Config:
    cfg = Config(os.path.join(ROOT, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(ROOT, "alembic"))
    return cfg


def _acquire_lock(db_url: str) -> psycopg.Connection:
    """Connect (retrying while the database comes up) and take the advisory lock.

    The returned connection holds the session-level lock until closed.
    """
    attempts = int(os.environ.get("MIGRATIONS_CONNECT_ATTEMPTS", "12"))
    delay_seconds = int(os.environ.get("MIGRATIONS_CONNECT_DELAY", "5"))

    for attempt in range(1, attempts + 1):
        try:
            conn = psycopg.connect(db_url, autocommit=True)
            break
        except psycopg.OperationalError as e:
            if attempt == attempts:
                print(f"Failed to connect to DB for migrations after {attempts} attempts: {e}", file=sys.stderr)
                raise
            print(f"DB not reachable (attempt {attempt}/{attempts}); retrying in {delay_seconds}s", file=sys.stderr)
            time.sleep(delay_seconds)

    with conn.cursor() as cur:
        cur.execute("SELECT pg_try_advisory_lock(%s)", (LOCK_KEY,))
        if not cur.fetchone()[0]:
            print("Another migration is in progress; waiting for lock...", file=sys.stderr)
            cur.execute("SELECT pg_advisory_lock(%s)", (LOCK_KEY,))
    return conn


def record_schema_version(conn: psycopg.Connection, head: str, semver: str) -> bool:
    """Point the registry at head and append history when it moved.

    Returns:
        True if a new registry entry was written
    """
    ts_key = int(datetime.now(timezone.utc).strftime("%Y%m%d%H%M"))
    with conn.cursor() as cur:
        cur.execute(
            "SELECT alembic_rev FROM chatflow.schema_registry WHERE service = %s",
            (SERVICE,)
        )
        row = cur.fetchone()
        if row and row[0] == head:
            return False

        cur.execute(
            "INSERT INTO chatflow.schema_registry(service, semver, ts_key, alembic_rev) "
            "VALUES (%s, %s, %s, %s) "
            "ON CONFLICT (service) DO UPDATE SET semver = EXCLUDED.semver, "
            "ts_key = EXCLUDED.ts_key, alembic_rev = EXCLUDED.alembic_rev, applied_at = now()",
            (SERVICE, semver, ts_key, head),
        )
        cur.execute(
            "INSERT INTO chatflow.schema_registry_history(service, semver, ts_key, alembic_rev) "
            "VALUES (%s, %s, %s, %s)",
            (SERVICE, semver, ts_key, head),
        )
    return True


def run_migrations() -> None:
    """Upgrade to head under the advisory lock and record the new version."""
    db_url = get_migrations_url()
    # env.py reads the URL from the environment
    os.environ.setdefault("DATABASE_URL", db_url)

    conn = _acquire_lock(db_url)
    try:
        print("Running DB migrations to head...", file=sys.stderr)
        command.upgrade(get_alembic_config(), "head")

        with conn.cursor() as cur:
            cur.execute("SELECT version_num FROM chatflow.alembic_version LIMIT 1")
            head = (cur.fetchone() or [None])[0]

        semver = os.environ.get("APP_VERSION") or __version__
        changed = record_schema_version(conn, head, semver) if head else False
        print(f"=== MIGRATION DONE === head={head} semver={semver} registry_updated={changed}", file=sys.stderr)
    finally:
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_advisory_unlock(%s)", (LOCK_KEY,))
        finally:
            conn.close()


def migrate_if_enabled() -> None:
    """Run migrations when MIGRATE_AT_START is truthy (default off)."""
    mig_flag = os.environ.get("MIGRATE_AT_START")
    if not _truthy(mig_flag):
        log.info("Migrations skipped: MIGRATE_AT_START is not enabled")
        return
    run_migrations()


def list_schema_versions(n: int = 5) -> list[dict]:
    """Last n registry history rows, newest first; [] before first migration."""
    from .services.database import get_db_connection

    limit = max(1, min(n, 100))
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT to_regclass('chatflow.schema_registry_history') AS t")
            if cur.fetchone()["t"] is None:
                return []
            cur.execute(
                "SELECT service, semver, ts_key, alembic_rev, applied_at "
                "FROM chatflow.schema_registry_history WHERE service = %s "
                "ORDER BY applied_at DESC LIMIT %s",
                (SERVICE, limit),
            )
            rows = cur.fetchall()
    return [
        {
            "service": r["service"],
            "semver": r["semver"],
            "ts_key": int(r["ts_key"]),
            "alembic_rev": r["alembic_rev"],
            "applied_at": r["applied_at"].isoformat() if r["applied_at"] else None,
        }
        for r in rows
    ]


if __name__ == "__main__":
    run_migrations()
