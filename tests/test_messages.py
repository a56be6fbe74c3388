"""Tests for message posting, editing, deletion and their routes."""
from datetime import datetime, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from chatflow.services import messages
from chatflow.services.errors import ForbiddenError, NotFoundError, ServiceError

SERVICE = "chatflow.services.messages"
WORKSPACE_ID = uuid4()
THREAD_ID = uuid4()
BASE = f"/api/workspaces/{WORKSPACE_ID}/threads/{THREAD_ID}/messages"


def _executed(cursor, fragment):
    """(sql, params) of every statement containing fragment."""
    return [c.args for c in cursor.execute.call_args_list if fragment in c.args[0]]


def _access(is_member=True, type="channel", is_private=False, name="dev"):
    return {"id": THREAD_ID, "name": name, "type": type, "is_private": is_private, "is_member": is_member}


def test_public_channel_readable_by_non_member(mock_db):
    cursor = mock_db(SERVICE, fetchone=[_access(is_member=False), {"n": 0}], fetchall=[[]])
    result = messages.list_messages(WORKSPACE_ID, THREAD_ID, uuid4())
    assert result["pagination"] == {"total": 0, "limit": 50, "offset": 0, "has_more": False}
    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert not any("last_read_at" in s for s in statements)


def test_private_channel_hidden_from_non_member(mock_db):
    mock_db(SERVICE, fetchone=[_access(is_member=False, is_private=True)])
    with pytest.raises(ForbiddenError):
        messages.list_messages(WORKSPACE_ID, THREAD_ID, uuid4())


def test_list_messages_marks_read_and_paginates(mock_db):
    rows = [{"id": uuid4()} for _ in range(2)]
    cursor = mock_db(SERVICE, fetchone=[_access(), {"n": 5}], fetchall=[rows])
    result = messages.list_messages(WORKSPACE_ID, THREAD_ID, uuid4(), limit=2, search="deploy")
    assert result["pagination"]["has_more"] is True
    [(count_sql, count_params)] = _executed(cursor, "COUNT(*)")
    assert "ILIKE" in count_sql
    assert count_params == [THREAD_ID, "%deploy%"]
    assert "last_read_at" in cursor.execute.call_args_list[-1].args[0]


def test_post_requires_membership(mock_db):
    mock_db(SERVICE, fetchone=[_access(is_member=False)])
    with pytest.raises(ForbiddenError):
        messages.create_message(WORKSPACE_ID, THREAD_ID, uuid4(), "Alice", "hello")


@pytest.mark.parametrize("content,message_type,error", [
    ("   ", "text", "Message content is required"),
    ("x" * 10001, "text", "Message content cannot exceed 10,000 characters"),
    ("hello", "system", "Invalid message type"),
])
def test_post_validation(mock_db, content, message_type, error):
    mock_db(SERVICE, fetchone=[_access()])
    with pytest.raises(ServiceError) as exc:
        messages.create_message(WORKSPACE_ID, THREAD_ID, uuid4(), "Alice", content, message_type)
    assert exc.value.message == error


def test_mentions_notify_workspace_members(mock_db):
    sender, mentioned, outsider = uuid4(), uuid4(), uuid4()
    cursor = mock_db(SERVICE, fetchone=[_access(), {"id": uuid4()}],
                     fetchall=[[{"user_id": mentioned}]])

    messages.create_message(WORKSPACE_ID, THREAD_ID, sender, "Alice", " hi @bob ",
                            mentions=[mentioned, outsider, sender])

    [(_, insert_params)] = _executed(cursor, "INSERT INTO chatflow.messages")
    assert insert_params[3] == "hi @bob"
    [(_, member_lookup)] = _executed(cursor, "FROM chatflow.workspace_members")
    assert set(member_lookup[1]) == {mentioned, outsider}
    notifications = [c.args[1] for c in cursor.execute.call_args_list
                     if "INSERT INTO chatflow.notifications" in c.args[0]]
    assert len(notifications) == 1
    assert notifications[0][1] == mentioned
    assert notifications[0][4] == "Alice mentioned you in #dev"


def test_edit_someone_elses_message(mock_db):
    mock_db(SERVICE, fetchone=[{"id": uuid4(), "sender_id": uuid4()}])
    with pytest.raises(ForbiddenError):
        messages.update_message(WORKSPACE_ID, THREAD_ID, uuid4(), uuid4(), "edited")


def test_edit_own_message(mock_db):
    author = uuid4()
    edited = {"id": uuid4(), "content": "edited", "is_edited": True}
    cursor = mock_db(SERVICE, fetchone=[{"id": edited["id"], "sender_id": author}, edited])
    assert messages.update_message(WORKSPACE_ID, THREAD_ID, edited["id"], author, " edited ") == edited
    assert cursor.execute.call_args_list[-1].args[1][0] == "edited"


def test_edit_missing_message(mock_db):
    mock_db(SERVICE, fetchone=[None])
    with pytest.raises(NotFoundError):
        messages.update_message(WORKSPACE_ID, THREAD_ID, uuid4(), uuid4(), "edited")


def test_admin_can_delete_any_message(mock_db):
    cursor = mock_db(SERVICE, fetchone=[{"id": uuid4(), "sender_id": uuid4()}])
    messages.delete_message(WORKSPACE_ID, THREAD_ID, uuid4(), uuid4(), is_admin=True)
    assert "is_deleted = true" in cursor.execute.call_args_list[-1].args[0]
    cursor.connection.commit.assert_called_once()


def test_member_cannot_delete_others_message(mock_db):
    mock_db(SERVICE, fetchone=[{"id": uuid4(), "sender_id": uuid4()}])
    with pytest.raises(ForbiddenError):
        messages.delete_message(WORKSPACE_ID, THREAD_ID, uuid4(), uuid4(), is_admin=False)


# Routes

def test_post_message_route(client, user, auth_headers, membership):
    membership("member")
    with patch("chatflow.routers.messages.messages.create_message", return_value={"id": "m1"}) as create:
        response = client.post(BASE, headers=auth_headers, json={"content": "hello"})
    assert response.status_code == 201
    assert response.json() == {"message": "Message sent successfully", "data": {"id": "m1"}}
    assert create.call_args.args == (WORKSPACE_ID, THREAD_ID, user.id, "Alice", "hello", "text", [])


def test_delete_route_passes_admin_flag(client, user, auth_headers, membership):
    membership("admin")
    message_id = uuid4()
    with patch("chatflow.routers.messages.messages.delete_message") as delete:
        response = client.delete(f"{BASE}/{message_id}", headers=auth_headers)
    assert response.status_code == 200
    delete.assert_called_once_with(WORKSPACE_ID, THREAD_ID, message_id, user.id, True)


def test_list_route_bounds_limit(client, auth_headers, membership):
    membership("member")
    response = client.get(BASE, headers=auth_headers, params={"limit": 500})
    assert response.status_code == 422


def test_list_route_rejects_malformed_dates(client, auth_headers, membership):
    membership("member")
    with patch("chatflow.routers.messages.messages.list_messages") as list_messages:
        response = client.get(BASE, headers=auth_headers, params={"before": "not-a-date"})
    assert response.status_code == 422
    list_messages.assert_not_called()


def test_list_route_parses_date_filters(client, auth_headers, membership):
    membership("member")
    with patch("chatflow.routers.messages.messages.list_messages", return_value={"messages": []}) as list_messages:
        response = client.get(BASE, headers=auth_headers,
                              params={"after": "2026-10-01T00:00:00Z", "before": "2026-10-19T12:00:00+00:00"})
    assert response.status_code == 200
    before, after = list_messages.call_args.args[-2:]
    assert before == datetime(2026, 10, 19, 12, tzinfo=timezone.utc)
    assert after == datetime(2026, 10, 1, tzinfo=timezone.utc)
