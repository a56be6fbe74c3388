"""Tests for /api/users profile and directory routes."""
from unittest.mock import patch
from uuid import uuid4

import pytest


@pytest.fixture
def users_service():
    with patch("chatflow.routers.users.users.list_user_workspaces") as workspaces, \
         patch("chatflow.routers.users.users.update_profile") as update, \
         patch("chatflow.routers.users.users.search_users") as search:
        yield workspaces, update, search


def test_get_me(client, user, auth_headers, users_service):
    workspaces, _, _ = users_service
    workspaces.return_value = [{"id": "w1", "name": "Acme", "role": "admin", "joined_at": None}]
    response = client.get("/api/users/me", headers=auth_headers)
    body = response.json()
    assert body["user"]["email"] == user.email
    assert body["meta"] == {"workspace_count": 1}


def test_update_me_requires_fields(client, auth_headers, users_service):
    response = client.put("/api/users/me", headers=auth_headers, json={})
    assert response.status_code == 400
    assert response.json()["detail"] == "No valid fields to update"


def test_update_me_rejects_blank_name(client, auth_headers, users_service):
    response = client.put("/api/users/me", headers=auth_headers, json={"display_name": "   "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Display name cannot be empty"


def test_update_me_validates_phone(client, auth_headers, users_service):
    response = client.put("/api/users/me", headers=auth_headers, json={"phone_number": "call me"})
    assert response.status_code == 422


def test_update_me(client, user, auth_headers, users_service, user_factory):
    _, update, _ = users_service
    update.return_value = user_factory(display_name="Alice B")
    response = client.put("/api/users/me", headers=auth_headers,
                          json={"display_name": " Alice B ", "phone_number": "+1 (555) 123-4567"})
    assert response.status_code == 200
    assert response.json()["user"]["display_name"] == "Alice B"
    update.assert_called_once_with(user.id, display_name="Alice B", phone_number="+1 (555) 123-4567")


def test_search_requires_two_characters(client, auth_headers, users_service):
    response = client.get("/api/users/search", headers=auth_headers, params={"q": "a"})
    assert response.status_code == 422


def test_search_includes_email(client, auth_headers, users_service, user_factory):
    _, _, search = users_service
    search.return_value = [user_factory(email="bob@example.com", display_name=None)]
    response = client.get("/api/users/search", headers=auth_headers, params={"q": " bo ", "limit": 5})
    found = response.json()["users"][0]
    assert found["email"] == "bob@example.com"
    assert found["display_name"] == "bob"
    search.assert_called_once_with("bo", 5)


def test_get_unknown_user(client, auth_headers):
    response = client.get(f"/api/users/{uuid4()}", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "User not found"


def test_get_user_public_fields(client, user, auth_headers):
    response = client.get(f"/api/users/{user.id}", headers=auth_headers)
    assert response.status_code == 200
    assert "email" not in response.json()["user"]
