"""Google OAuth flow for the outbound Gmail sender account.

The consent flow yields a long-lived refresh token with the gmail.send
scope. It is stored Fernet-encrypted in chatflow.app_credentials and used
by the email service when GMAIL_REFRESH_TOKEN is not set in the environment.
"""
import os
import base64
import logging
import secrets
from typing import Optional, Dict, Any
from urllib.parse import urlencode
import httpx
from cachetools import TTLCache
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from .database import get_db_connection
from .links import get_google_redirect_uri


log = logging.getLogger("chatflow.oauth")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"
GMAIL_CREDENTIAL_NAME = "gmail"
STATE_TTL_MINUTES = 10


def _get_encryption_key() -> bytes:
    """Get or derive encryption key from environment."""
    key_str = os.environ.get("OAUTH_ENCRYPTION_KEY")
    if not key_str:
        raise ValueError("OAUTH_ENCRYPTION_KEY environment variable not set")

    # Already a Fernet key (32 bytes, urlsafe base64)
    try:
        key_bytes = base64.urlsafe_b64decode(key_str)
        if len(key_bytes) == 32:
            return base64.urlsafe_b64encode(key_bytes)
    except (ValueError, TypeError):
        pass

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"chatflow_oauth_salt",
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(key_str.encode()))


_FERNET: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    global _FERNET
    if _FERNET is None:
        _FERNET = Fernet(_get_encryption_key())
    return _FERNET


def encrypt_token(plaintext: str) -> str:
    """Encrypt a token for storage."""
    if not plaintext:
        return ""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_token(ciphertext: str) -> str:
    """Decrypt a stored token."""
    if not ciphertext:
        return ""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


def get_google_client() -> Optional[dict]:
    """Gmail OAuth client credentials from environment."""
    client_id = os.environ.get("GMAIL_OAUTH_CLIENT_ID")
    client_secret = os.environ.get("GMAIL_OAUTH_CLIENT_SECRET")
    if not client_id or not client_secret:
        return None
    return {"client_id": client_id, "client_secret": client_secret}


# One-time states, keyed by the state string; in memory, single process
_oauth_states: TTLCache = TTLCache(maxsize=1000, ttl=STATE_TTL_MINUTES * 60)


def generate_oauth_state(user_id: str, purpose: str = GMAIL_CREDENTIAL_NAME) -> str:
    """Generate and store a one-time OAuth state bound to the admin who started the flow."""
    state = secrets.token_urlsafe(32)
    _oauth_states[state] = {"purpose": purpose, "user_id": user_id}
    return state


def validate_oauth_state(state: Optional[str], purpose: str = GMAIL_CREDENTIAL_NAME) -> Optional[str]:
    """Consume a state and return the user id it was issued to.

    Unknown, expired, or mismatched states return None.
    """
    if not state:
        return None
    state_data = _oauth_states.pop(state, None)
    if not state_data or state_data["purpose"] != purpose:
        return None
    return state_data["user_id"]


def build_google_authorize_url(user_id: str) -> str:
    """Google consent URL requesting an offline gmail.send grant."""
    client = get_google_client()
    if not client:
        raise ValueError("GMAIL_OAUTH_CLIENT_ID and GMAIL_OAUTH_CLIENT_SECRET must be set")

    params = {
        "client_id": client["client_id"],
        "redirect_uri": get_google_redirect_uri(),
        "response_type": "code",
        "scope": GMAIL_SEND_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
        "state": generate_oauth_state(user_id),
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(code: str) -> Dict[str, Any]:
    """Exchange authorization code for access and refresh tokens."""
    client = get_google_client()
    if not client:
        raise ValueError("GMAIL_OAUTH_CLIENT_ID and GMAIL_OAUTH_CLIENT_SECRET must be set")

    async with httpx.AsyncClient(timeout=10.0) as http:
        response = await http.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": client["client_id"],
                "client_secret": client["client_secret"],
                "code": code,
                "redirect_uri": get_google_redirect_uri(),
                "grant_type": "authorization_code",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"}
        )
        response.raise_for_status()
        return response.json()


def store_refresh_token(tokens: Dict[str, Any], name: str = GMAIL_CREDENTIAL_NAME) -> None:
    """Upsert the encrypted refresh token."""
    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        raise ValueError("Token response did not include a refresh token")
    scope = tokens.get("scope", "")

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO chatflow.app_credentials
                    (name, encrypted_refresh_token, scopes, updated_at)
                VALUES (%s, %s, %s, now())
                ON CONFLICT (name) DO UPDATE
                SET encrypted_refresh_token = EXCLUDED.encrypted_refresh_token,
                    scopes = EXCLUDED.scopes,
                    updated_at = now()
                """,
                (name, encrypt_token(refresh_token), scope.split() if scope else [])
            )
        conn.commit()
    log.info("Stored refresh token for %s credential", name)


def load_refresh_token(name: str = GMAIL_CREDENTIAL_NAME) -> Optional[str]:
    """Stored refresh token, or None if absent or undecryptable."""
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT encrypted_refresh_token FROM chatflow.app_credentials WHERE name = %s",
                (name,)
            )
            row = cur.fetchone()
    if not row or not row["encrypted_refresh_token"]:
        return None
    try:
        return decrypt_token(row["encrypted_refresh_token"])
    except InvalidToken:
        log.error("Stored %s refresh token could not be decrypted; was OAUTH_ENCRYPTION_KEY rotated?", name)
        return None
