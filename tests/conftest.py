"""Shared fixtures: app client, authenticated users, and mocked DB connections."""
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

# The app reads these at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-chatflow-tests")
os.environ.setdefault("AUTH_RATE_LIMIT_MAX", "100000")
os.environ.setdefault("API_RATE_LIMIT_MAX", "100000")

from fastapi.testclient import TestClient  # noqa: E402

from chatflow.main import app  # noqa: E402
from chatflow.services import jwt  # noqa: E402
from chatflow.services.users import User  # noqa: E402


@pytest.fixture
def client():
    return TestClient(app, raise_server_exceptions=False)


def make_user(email="alice@example.com", display_name="Alice", role="user", is_active=True):
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    return User(
        id=uuid4(), email=email, display_name=display_name, profile_picture_url=None,
        phone_number=None, role=role, is_active=is_active, verified_at=now,
        last_login_at=now, created_at=now, updated_at=now,
    )


@pytest.fixture
def user():
    return make_user()


@pytest.fixture
def auth_headers(user, monkeypatch):
    """Bearer headers for `user`, with the user lookup patched."""
    monkeypatch.setattr("chatflow.deps.users.find_user_by_id", lambda uid: user if uid == user.id else None)
    token = jwt.generate_jwt(str(user.id), user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def membership(monkeypatch):
    """Set the caller's role in any workspace: membership('admin'), membership(None)."""
    def set_role(role, is_owner=False):
        row = None if role is None else {"role": role, "is_owner": is_owner, "workspace_name": "Acme"}
        monkeypatch.setattr("chatflow.deps.get_membership", lambda workspace_id, user_id: row)
    return set_role


@pytest.fixture
def mock_db(monkeypatch):
    """Patch get_db_connection in a service module with a scripted cursor.

    Usage: cursor = mock_db("chatflow.services.tasks", fetchone=[...], fetchall=[...])
    """
    def install(module_path, fetchone=None, fetchall=None, rowcount=1):
        cursor = MagicMock()
        cursor.fetchone.side_effect = list(fetchone or [])
        cursor.fetchall.side_effect = list(fetchall or [])
        cursor.rowcount = rowcount
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor

        @contextmanager
        def fake_connection():
            yield conn

        monkeypatch.setattr(f"{module_path}.get_db_connection", fake_connection)
        cursor.connection = conn
        return cursor
    return install


@pytest.fixture
def user_factory():
    return make_user
