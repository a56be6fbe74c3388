"""Tests for notifications, unread summaries, and email preferences."""
from unittest.mock import patch
from uuid import uuid4

import pytest

from chatflow.services import notifications, preferences
from chatflow.services.errors import NotFoundError

WORKSPACE_ID = uuid4()


def test_unread_summary_excludes_muted_channels(mock_db):
    rows = [
        {"thread_id": uuid4(), "name": "dev", "is_muted": False, "unread_count": 4},
        {"thread_id": uuid4(), "name": "random", "is_muted": True, "unread_count": 9},
        {"thread_id": uuid4(), "name": "general", "is_muted": False, "unread_count": 0},
    ]
    mock_db("chatflow.services.notifications", fetchall=[rows])
    summary = notifications.get_unread_summary(uuid4(), WORKSPACE_ID)
    assert summary["total_unread"] == 4
    assert summary["unread_conversations"] == 1
    assert summary["channels"] == rows


def test_mark_missing_notification(mock_db):
    mock_db("chatflow.services.notifications", fetchone=[None])
    with pytest.raises(NotFoundError):
        notifications.mark_notification_read(uuid4(), uuid4())


def test_mute_requires_membership(mock_db):
    mock_db("chatflow.services.notifications", rowcount=0)
    with pytest.raises(NotFoundError):
        notifications.set_muted(uuid4(), WORKSPACE_ID, uuid4(), True)


def test_history_filters_by_type(mock_db):
    cursor = mock_db("chatflow.services.notifications", fetchone=[{"n": 1}], fetchall=[[{"id": 1}]])
    user_id = uuid4()
    result = notifications.get_history(user_id, WORKSPACE_ID, type="mention", unread_only=True)
    count_sql, params = cursor.execute.call_args_list[0].args
    assert "type = %s" in count_sql
    assert "is_read = false" in count_sql
    assert params == [user_id, WORKSPACE_ID, "mention"]
    assert result["pagination"]["has_more"] is False


def test_preferences_default_when_unset(mock_db):
    mock_db("chatflow.services.preferences", fetchone=[None])
    assert preferences.get_preferences(uuid4()) == preferences.DEFAULT_PREFERENCES


def test_preferences_merge_stored_values(mock_db):
    mock_db("chatflow.services.preferences", fetchone=[{"preferences": {"digestEnabled": False}}])
    prefs = preferences.get_preferences(uuid4())
    assert prefs["digestEnabled"] is False
    assert prefs["immediateMentions"] is True


def test_update_preferences_rejects_unknown_keys(mock_db):
    cursor = mock_db("chatflow.services.preferences")
    with pytest.raises(ValueError, match="Unknown preference: sms"):
        preferences.update_preferences(uuid4(), {"sms": True})
    cursor.execute.assert_not_called()


def test_update_preferences_upserts_merged(mock_db):
    cursor = mock_db("chatflow.services.preferences", fetchone=[{"preferences": {"digestEnabled": False}}])
    merged = preferences.update_preferences(uuid4(), {"batchedFrequencyMinutes": 60})
    assert merged["digestEnabled"] is False
    assert merged["batchedFrequencyMinutes"] == 60
    stored = cursor.execute.call_args.args[1][1].obj
    assert stored == merged


# Routes

def test_list_notifications_route(client, user, auth_headers):
    with patch("chatflow.routers.notifications.notifications.list_notifications",
               return_value={"notifications": [], "unread_count": 0}) as listing:
        response = client.get("/api/workspaces/notifications", headers=auth_headers,
                              params={"unread_only": "true"})
    assert response.status_code == 200
    listing.assert_called_once_with(user.id, 20, 0, True)


def test_unread_summary_requires_membership(client, auth_headers, membership):
    membership(None)
    response = client.get(f"/api/workspaces/{WORKSPACE_ID}/notifications/unread-summary", headers=auth_headers)
    assert response.status_code == 403


def test_mute_route(client, user, auth_headers, membership):
    membership("member")
    thread_id = uuid4()
    with patch("chatflow.routers.notifications.notifications.set_muted") as set_muted:
        response = client.put(f"/api/workspaces/{WORKSPACE_ID}/notifications/mute", headers=auth_headers,
                              json={"thread_id": str(thread_id), "is_muted": True})
    assert response.json()["message"] == "Channel muted"
    set_muted.assert_called_once_with(user.id, WORKSPACE_ID, thread_id, True)


def test_update_preferences_route(client, user, auth_headers):
    with patch("chatflow.routers.notifications.preferences.update_preferences",
               return_value={"digestEnabled": False}) as update:
        response = client.post("/api/email-notifications/preferences", headers=auth_headers,
                               json={"digestEnabled": False})
    assert response.status_code == 200
    update.assert_called_once_with(user.id, {"digestEnabled": False})


def test_preferences_route_validates_frequency(client, auth_headers):
    response = client.post("/api/email-notifications/preferences", headers=auth_headers,
                           json={"batchedFrequencyMinutes": 1})
    assert response.status_code == 422


def test_email_status_route(client, auth_headers, monkeypatch):
    for name in ("GMAIL_OAUTH_CLIENT_ID", "GMAIL_OAUTH_CLIENT_SECRET", "SMTP_HOST"):
        monkeypatch.delenv(name, raising=False)
    response = client.get("/api/email-notifications/status", headers=auth_headers)
    assert response.json()["mode"] == "console"
    assert "analytics" in response.json()
