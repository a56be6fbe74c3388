"""JWT token generation and verification."""
import os
from datetime import datetime, timedelta, timezone
import jwt


TOKEN_LIFETIME_DAYS = 7


def get_jwt_secret() -> str:
    """Get JWT secret from environment."""
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        raise ValueError("JWT_SECRET environment variable not set")
    return secret


def generate_jwt(user_id: str, email: str, role: str = "user") -> str:
    """Generate JWT token for user.

    Args:
        user_id: User UUID as string
        email: User email
        role: User role, carried for admin checks

    Returns:
        JWT token string
    """
    secret = get_jwt_secret()
    now = datetime.now(timezone.utc)

    payload = {
        "userId": user_id,
        "email": email,
        "role": role,
        "exp": now + timedelta(days=TOKEN_LIFETIME_DAYS),
        "iat": now,
    }

    return jwt.encode(payload, secret, algorithm="HS256")


def verify_jwt(token: str) -> dict:
    """Verify and decode JWT token.

    Raises:
        jwt.ExpiredSignatureError: Token has expired
        jwt.InvalidTokenError: Token is invalid
    """
    secret = get_jwt_secret()
    return jwt.decode(token, secret, algorithms=["HS256"])
