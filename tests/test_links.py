"""Tests for outbound link resolution."""
import pytest

from chatflow.services import links


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("FRONTEND_URL", "REACT_APP_FRONTEND_URL", "BACKEND_URL", "NODE_ENV", "APP_ENV"):
        monkeypatch.delenv(name, raising=False)


def test_frontend_url_defaults_to_production():
    assert links.get_frontend_url() == "https://coral-app-rgki8.ondigitalocean.app"


def test_frontend_url_prefers_frontend_url(monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://chat.example.com/")
    monkeypatch.setenv("REACT_APP_FRONTEND_URL", "https://other.example.com")
    assert links.get_frontend_url() == "https://chat.example.com"


@pytest.mark.parametrize("placeholder", ["undefined", "null", "", "  "])
def test_placeholder_values_are_skipped(monkeypatch, placeholder):
    monkeypatch.setenv("FRONTEND_URL", placeholder)
    monkeypatch.setenv("REACT_APP_FRONTEND_URL", "https://react.example.com")
    assert links.get_frontend_url() == "https://react.example.com"


def test_only_undefined_and_null_are_placeholders(monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "none")
    monkeypatch.setenv("REACT_APP_FRONTEND_URL", "https://react.example.com")
    assert links.get_frontend_url() == "none"


def test_invite_and_workspace_urls(monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://chat.example.com")
    assert links.build_invite_url("abc123") == "https://chat.example.com/#/invite/abc123"
    assert links.build_workspace_url("ws-1") == "https://chat.example.com/#/workspace/ws-1"


def test_backend_url_by_environment(monkeypatch):
    assert links.get_backend_url() == "http://localhost:8080"
    monkeypatch.setenv("NODE_ENV", "production")
    assert links.get_backend_url() == links.PRODUCTION_FRONTEND_URL
    monkeypatch.setenv("BACKEND_URL", "https://api.example.com/")
    assert links.get_google_redirect_uri() == "https://api.example.com/api/auth/google/callback"


def test_allowed_origins_include_frontend(monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://chat.example.com")
    origins = links.get_allowed_origins()
    assert "http://localhost:5173" in origins
    assert "https://chat.example.com" in origins


def test_mask_secret():
    assert links.mask_secret(None) == "NOT SET"
    assert links.mask_secret("short") == "***"
    assert links.mask_secret("12345678901234") == "***"
    assert links.mask_secret("abcdefghijklmnopqrstuvwxyz") == "abcdefghij...wxyz"
