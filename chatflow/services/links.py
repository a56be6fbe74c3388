"""Outbound link resolution.

Every URL the API hands to a browser or puts in an email is derived here
from the environment, so invitation links, workspace links and the Google
OAuth redirect all agree on the same frontend/backend origins.
"""
import os
from typing import Optional

from .database import is_production


PRODUCTION_FRONTEND_URL = "https://coral-app-rgki8.ondigitalocean.app"
DEVELOPMENT_BACKEND_URL = "http://localhost:8080"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "https://localhost:5173",
    PRODUCTION_FRONTEND_URL,
]

# Values that leak through from badly templated deploy configs.
_PLACEHOLDERS = {"", "undefined", "null"}


def _env_url(name: str) -> Optional[str]:
    value = (os.environ.get(name) or "").strip()
    if value.lower() in _PLACEHOLDERS:
        return None
    return value.rstrip("/")


def get_frontend_url() -> str:
    """Frontend origin: FRONTEND_URL, then REACT_APP_FRONTEND_URL, then production."""
    return (
        _env_url("FRONTEND_URL")
        or _env_url("REACT_APP_FRONTEND_URL")
        or PRODUCTION_FRONTEND_URL
    )


def get_backend_url() -> str:
    """Public origin of this API."""
    configured = _env_url("BACKEND_URL")
    if configured:
        return configured
    if is_production():
        return PRODUCTION_FRONTEND_URL
    return DEVELOPMENT_BACKEND_URL


def build_invite_url(token: str) -> str:
    """Link the invitee opens to accept (hash route in the SPA)."""
    return f"{get_frontend_url()}/#/invite/{token}"


def build_workspace_url(workspace_id) -> str:
    return f"{get_frontend_url()}/#/workspace/{workspace_id}"


def get_google_redirect_uri() -> str:
    return f"{get_backend_url()}/api/auth/google/callback"


def get_allowed_origins() -> list[str]:
    """CORS allow-list."""
    origins = list(DEFAULT_ALLOWED_ORIGINS)
    frontend = _env_url("FRONTEND_URL")
    if frontend and frontend not in origins:
        origins.append(frontend)
    return origins


def mask_secret(value: Optional[str]) -> str:
    """Mask a credential for logs: first 10 chars ... last 4."""
    if not value:
        return "NOT SET"
    if len(value) <= 14:
        return "***"
    return f"{value[:10]}...{value[-4:]}"
