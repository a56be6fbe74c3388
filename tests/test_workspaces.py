"""Tests for workspace routes, membership checks, and invitation flows."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

import psycopg
import pytest

from chatflow.services import invitations, workspaces
from chatflow.services.errors import ConflictError, ForbiddenError, NotFoundError, ServiceError

WORKSPACE_ID = uuid4()
BASE = f"/api/workspaces/{WORKSPACE_ID}"


@pytest.fixture
def ws_service():
    with patch("chatflow.routers.workspaces.workspaces") as service:
        yield service


@pytest.fixture
def inv_service():
    with patch("chatflow.routers.workspaces.invitations") as service:
        yield service


# Routes

def test_list_workspaces(client, auth_headers, ws_service):
    ws_service.list_workspaces.return_value = [{"id": "w1", "name": "Acme"}]
    response = client.get("/api/workspaces", headers=auth_headers)
    assert response.json() == {"workspaces": [{"id": "w1", "name": "Acme"}], "count": 1}


def test_create_workspace(client, user, auth_headers, ws_service):
    ws_service.create_workspace.return_value = {"id": "w1", "name": "Acme", "role": "admin"}
    response = client.post("/api/workspaces", headers=auth_headers, json={"name": "Acme"})
    assert response.status_code == 201
    ws_service.create_workspace.assert_called_once_with(user.id, "Acme", None, None)


def test_create_workspace_conflict(client, auth_headers, ws_service):
    ws_service.create_workspace.side_effect = ConflictError("A workspace with this name already exists")
    response = client.post("/api/workspaces", headers=auth_headers, json={"name": "Acme"})
    assert response.status_code == 409
    assert response.json() == {"detail": "A workspace with this name already exists"}


def test_non_member_is_forbidden(client, auth_headers, membership, ws_service):
    membership(None)
    response = client.get(BASE, headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "You are not a member of this workspace"
    ws_service.get_workspace.assert_not_called()


def test_get_workspace_includes_role(client, auth_headers, membership, ws_service):
    membership("member")
    ws_service.get_workspace.return_value = {"id": str(WORKSPACE_ID), "members": [], "channels": []}
    response = client.get(BASE, headers=auth_headers)
    assert response.json()["workspace"]["role"] == "member"


def test_invalid_workspace_id(client, auth_headers):
    response = client.get("/api/workspaces/not-a-uuid", headers=auth_headers)
    assert response.status_code == 422


def test_update_requires_admin(client, auth_headers, membership, ws_service):
    membership("member")
    response = client.put(BASE, headers=auth_headers, json={"name": "New"})
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin privileges required for this operation"


def test_update_as_admin(client, auth_headers, membership, ws_service):
    membership("admin")
    ws_service.update_workspace.return_value = {"id": str(WORKSPACE_ID), "name": "New"}
    response = client.put(BASE, headers=auth_headers, json={"settings": {"theme": "dark"}})
    assert response.status_code == 200
    ws_service.update_workspace.assert_called_once_with(WORKSPACE_ID, None, None, {"theme": "dark"})


def test_delete_requires_owner(client, auth_headers, membership, ws_service):
    membership("admin", is_owner=False)
    response = client.delete(BASE, headers=auth_headers)
    assert response.status_code == 403
    ws_service.delete_workspace.assert_not_called()


def test_delete_archives_by_default(client, auth_headers, membership, ws_service):
    membership("admin", is_owner=True)
    ws_service.delete_workspace.return_value = "archived"
    response = client.delete(BASE, headers=auth_headers)
    assert response.json() == {"message": "Workspace archived successfully", "action": "archived"}
    ws_service.delete_workspace.assert_called_once_with(WORKSPACE_ID, archive=True)


def test_hard_delete(client, auth_headers, membership, ws_service):
    membership("admin", is_owner=True)
    ws_service.delete_workspace.return_value = "deleted"
    client.delete(BASE, headers=auth_headers, params={"archive": "false"})
    ws_service.delete_workspace.assert_called_once_with(WORKSPACE_ID, archive=False)


def test_remove_member(client, user, auth_headers, membership, ws_service):
    membership("admin")
    target = uuid4()
    response = client.delete(f"{BASE}/members/{target}", headers=auth_headers)
    assert response.status_code == 200
    ws_service.remove_member.assert_called_once_with(WORKSPACE_ID, user.id, target)


def test_invite(client, user, auth_headers, membership, inv_service):
    membership("admin")
    inv_service.create_invitation.return_value = {"email": "bob@example.com", "email_sent": True}
    response = client.post(f"{BASE}/invite", headers=auth_headers, json={"email": "bob@example.com"})
    assert response.status_code == 201
    assert response.json()["message"] == "Invitation sent to bob@example.com"
    inv_service.create_invitation.assert_called_once_with(
        WORKSPACE_ID, user.id, "Alice", "bob@example.com", "member"
    )


def test_invite_rejects_unknown_role(client, auth_headers, membership, inv_service):
    membership("admin")
    response = client.post(f"{BASE}/invite", headers=auth_headers,
                           json={"email": "bob@example.com", "role": "owner"})
    assert response.status_code == 422


def test_revoke_invitation(client, auth_headers, membership, inv_service):
    membership("admin")
    inv_service.revoke_invitation.return_value = True
    response = client.delete(f"{BASE}/invitations/{uuid4()}", headers=auth_headers)
    assert response.status_code == 204
    assert response.content == b""


def test_revoke_missing_invitation(client, auth_headers, membership, inv_service):
    membership("admin")
    inv_service.revoke_invitation.return_value = False
    response = client.delete(f"{BASE}/invitations/{uuid4()}", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Invitation not found"


def test_preview_is_public(client, inv_service):
    inv_service.get_invitation_preview.return_value = {"workspace_name": "Acme"}
    response = client.get("/api/workspaces/invitations/abc123")
    assert response.json() == {"invitation": {"workspace_name": "Acme"}}


def test_preview_unknown_token(client, inv_service):
    inv_service.get_invitation_preview.return_value = None
    response = client.get("/api/workspaces/invitations/abc123")
    assert response.status_code == 404


def test_accept_invite(client, user, auth_headers, inv_service):
    inv_service.accept_invitation.return_value = {"id": "w1", "name": "Acme", "role": "member"}
    response = client.post("/api/workspaces/accept-invite/abc123", headers=auth_headers)
    assert response.json()["message"] == "Welcome to Acme!"
    inv_service.accept_invitation.assert_called_once_with("abc123", user.id, user.email, "Alice")


def test_accept_invite_wrong_email(client, auth_headers, inv_service):
    inv_service.accept_invitation.side_effect = ForbiddenError(
        "This invitation was sent to a different email address"
    )
    response = client.post("/api/workspaces/accept-invite/abc123", headers=auth_headers)
    assert response.status_code == 403


# Services

@pytest.mark.parametrize("name", ["", "   ", None, "x" * 256])
def test_validate_name_rejects(name):
    with pytest.raises(ServiceError):
        workspaces.validate_name(name)


def test_validate_name_strips():
    assert workspaces.validate_name("  Acme  ") == "Acme"


def test_update_without_fields_skips_database(mock_db):
    cursor = mock_db("chatflow.services.workspaces")
    with pytest.raises(ServiceError, match="No fields to update"):
        workspaces.update_workspace(WORKSPACE_ID)
    cursor.execute.assert_not_called()


def test_create_workspace_adds_owner_and_general(mock_db):
    owner = uuid4()
    row = {"id": uuid4(), "name": "Acme", "description": None, "owner_id": owner, "settings": {}}
    cursor = mock_db("chatflow.services.workspaces", fetchone=[row])

    result = workspaces.create_workspace(owner, " Acme ", settings={"max_file_size_mb": 50})

    assert result["role"] == "admin"
    assert result["member_count"] == 1
    assert result["general_channel_id"] is not None
    insert_params = cursor.execute.call_args_list[0].args[1]
    assert insert_params[1] == "Acme"
    assert insert_params[4].obj["max_file_size_mb"] == 50
    assert insert_params[4].obj["allow_public_channels"] is True
    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert any("workspace_members" in s and "'admin'" in s for s in statements)
    assert any("chatflow.threads" in s for s in statements)
    cursor.connection.commit.assert_called_once()


def test_create_workspace_duplicate_name(mock_db):
    cursor = mock_db("chatflow.services.workspaces")
    cursor.execute.side_effect = psycopg.errors.UniqueViolation()
    with pytest.raises(ConflictError):
        workspaces.create_workspace(uuid4(), "Acme")
    cursor.connection.rollback.assert_called_once()


def test_delete_missing_workspace(mock_db):
    mock_db("chatflow.services.workspaces", rowcount=0)
    with pytest.raises(NotFoundError):
        workspaces.delete_workspace(WORKSPACE_ID, archive=True)


def test_remove_self_is_rejected(mock_db):
    cursor = mock_db("chatflow.services.workspaces")
    user_id = uuid4()
    with pytest.raises(ServiceError, match="cannot remove yourself"):
        workspaces.remove_member(WORKSPACE_ID, user_id, user_id)
    cursor.execute.assert_not_called()


def test_remove_owner_is_rejected(mock_db):
    owner = uuid4()
    mock_db("chatflow.services.workspaces",
            fetchone=[{"name": "Acme", "owner_id": owner, "member_id": owner}])
    with pytest.raises(ServiceError, match="owner cannot be removed"):
        workspaces.remove_member(WORKSPACE_ID, uuid4(), owner)


def test_remove_member_notifies(mock_db):
    target = uuid4()
    cursor = mock_db("chatflow.services.workspaces",
                     fetchone=[{"name": "Acme", "owner_id": uuid4(), "member_id": target}])
    workspaces.remove_member(WORKSPACE_ID, uuid4(), target)
    last_sql, params = cursor.execute.call_args_list[-1].args
    assert "chatflow.notifications" in last_sql
    assert "member_removed" in params
    cursor.connection.commit.assert_called_once()


def test_invitation_token_is_64_hex():
    token = invitations.generate_invitation_token()
    assert len(token) == 64
    int(token, 16)


def test_create_invitation_rejects_role(mock_db):
    cursor = mock_db("chatflow.services.invitations")
    with pytest.raises(ServiceError):
        invitations.create_invitation(WORKSPACE_ID, uuid4(), "Alice", "bob@example.com", role="owner")
    cursor.execute.assert_not_called()


def test_create_invitation_for_existing_member(mock_db):
    mock_db("chatflow.services.invitations",
            fetchone=[{"name": "Acme", "description": None}, {"?column?": 1}])
    with pytest.raises(ConflictError):
        invitations.create_invitation(WORKSPACE_ID, uuid4(), "Alice", "bob@example.com")


def test_create_invitation_sends_email(mock_db, monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://chat.example.com")
    cursor = mock_db("chatflow.services.invitations",
                     fetchone=[{"name": "Acme", "description": None}, None, {"n": 3}])
    with patch("chatflow.services.invitations.email_service.send_workspace_invitation",
               return_value={"success": True}) as send:
        result = invitations.create_invitation(WORKSPACE_ID, uuid4(), "Alice", " Bob@Example.com ")

    assert result["email"] == "bob@example.com"
    assert result["email_sent"] is True
    assert result["invite_url"].startswith("https://chat.example.com/#/invite/")
    args = send.call_args.args
    assert args[:6] == ("bob@example.com", "Alice", "Acme", None, "member", 3)
    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert any(s.strip().startswith("DELETE FROM chatflow.workspace_invitations") for s in statements)


def test_create_invitation_email_failure_still_succeeds(mock_db):
    mock_db("chatflow.services.invitations",
            fetchone=[{"name": "Acme", "description": "Team"}, None, {"n": 1}])
    with patch("chatflow.services.invitations.email_service.send_workspace_invitation",
               return_value={"success": False, "error": "down"}):
        result = invitations.create_invitation(WORKSPACE_ID, uuid4(), "Alice", "bob@example.com")
    assert result["email_sent"] is False


def _pending(email="bob@example.com"):
    return {
        "id": uuid4(), "workspace_id": WORKSPACE_ID, "email": email, "role": "member",
        "expires_at": datetime.now(timezone.utc) + timedelta(days=3), "invited_by": uuid4(),
        "workspace_name": "Acme", "inviter_name": "Alice", "inviter_email": "alice@example.com",
    }


def test_accept_unknown_token(mock_db):
    mock_db("chatflow.services.invitations", fetchone=[None])
    with pytest.raises(NotFoundError, match="not found or has expired"):
        invitations.accept_invitation("tok", uuid4(), "bob@example.com", "Bob")


def test_accept_with_other_email(mock_db):
    mock_db("chatflow.services.invitations", fetchone=[_pending()])
    with pytest.raises(ForbiddenError):
        invitations.accept_invitation("tok", uuid4(), "mallory@example.com", "Mallory")


def test_accept_when_already_member(mock_db):
    mock_db("chatflow.services.invitations", fetchone=[_pending(), {"?column?": 1}])
    with pytest.raises(ConflictError):
        invitations.accept_invitation("tok", uuid4(), "BOB@example.com", "Bob")


def test_accept_joins_general_and_notifies_inviter(mock_db):
    invitation = _pending()
    cursor = mock_db("chatflow.services.invitations", fetchone=[invitation, None])
    user_id = uuid4()
    with patch("chatflow.services.invitations.email_service.send_member_joined",
               return_value={"success": True}) as send:
        result = invitations.accept_invitation("tok", user_id, "bob@example.com", "Bob")

    assert result == {"id": str(WORKSPACE_ID), "name": "Acme", "role": "member"}
    statements = " ".join(c.args[0] for c in cursor.execute.call_args_list)
    assert "INSERT INTO chatflow.workspace_members" in statements
    assert "thread_members" in statements
    assert "accepted_at = NOW()" in statements
    assert send.call_args.args[0] == "alice@example.com"
    cursor.connection.commit.assert_called_once()


def test_preview_formats_pending_invitation(mock_db):
    invitation = _pending()
    mock_db("chatflow.services.invitations", fetchone=[invitation])
    preview = invitations.get_invitation_preview("tok")
    assert preview["inviter_name"] == "Alice"
    assert preview["expires_at"] == invitation["expires_at"].isoformat()
