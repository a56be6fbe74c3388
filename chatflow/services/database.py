"""Database connection helpers."""
import os
from contextlib import contextmanager
from urllib.parse import urlparse
import psycopg
from psycopg.rows import dict_row


LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", ""}


def get_database_url() -> str:
    """Get database URL from environment."""
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise ValueError("DATABASE_URL environment variable not set")
    return dsn


def get_environment() -> str:
    """Deployment environment name (production, development, test)."""
    return os.environ.get("NODE_ENV") or os.environ.get("APP_ENV") or "development"


def is_production() -> bool:
    return get_environment() == "production"


def get_ssl_options(dsn: str) -> dict:
    """Extra connect() kwargs for SSL.

    Managed databases in production require TLS; local databases and DSNs
    that already choose an sslmode are left alone.
    """
    if "sslmode" in dsn or not is_production():
        return {}
    host = urlparse(dsn).hostname or ""
    if host in LOCAL_HOSTS:
        return {}
    return {"sslmode": "require"}


@contextmanager
def get_db_connection():
    """Get a database connection context manager."""
    dsn = get_database_url()
    conn = psycopg.connect(dsn, row_factory=dict_row, **get_ssl_options(dsn))
    try:
        yield conn
    finally:
        conn.close()


def check_database(timeout: int = 3) -> dict:
    """Connectivity check used by the health endpoint."""
    dsn = get_database_url()
    with psycopg.connect(dsn, connect_timeout=timeout, **get_ssl_options(dsn)) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT version(), current_database(), current_user")
            version, dbname, user = cur.fetchone()
    return {"database": dbname, "user": user, "version": str(version)}
