"""Login code generation, storage, and validation service."""
import os
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4
from typing import Optional
import bcrypt
from .database import get_db_connection


def get_otp_config():
    """Get login code configuration from environment."""
    return {
        "expiry_minutes": int(os.environ.get("OTP_EXPIRY_MINUTES", "5")),
        "max_attempts": int(os.environ.get("OTP_MAX_ATTEMPTS", "8")),
        "rate_limit_window_minutes": int(os.environ.get("RATE_LIMIT_WINDOW_MINUTES", "15")),
        "rate_limit_max_requests": int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "3")),
    }


def generate_otp() -> str:
    """Generate a random 6-digit code."""
    return f"{secrets.randbelow(1000000):06d}"


def hash_otp(otp: str) -> bytes:
    """Hash code using bcrypt, return as bytes."""
    return bcrypt.hashpw(otp.encode(), bcrypt.gensalt())


def verify_otp_hash(otp: str, otp_hash: bytes) -> bool:
    """Verify code against hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(otp.encode(), bytes(otp_hash))
    except ValueError:
        return False


def check_rate_limit(email: str) -> bool:
    """Record a code request and report whether the email is over its limit.

    Returns:
        True if rate limit exceeded, False otherwise
    """
    config = get_otp_config()
    window_seconds = config["rate_limit_window_minutes"] * 60
    limit_value = config["rate_limit_max_requests"]
    subject = email.lower()

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            now = datetime.now(timezone.utc)
            cur.execute(
                """SELECT id, count, window_start
                   FROM chatflow.rate_limits
                   WHERE subject_type = 'email' AND subject = %s
                   AND window_seconds = %s""",
                (subject, window_seconds)
            )
            row = cur.fetchone()

            if row and now - row["window_start"] <= timedelta(seconds=window_seconds):
                if row["count"] >= limit_value:
                    return True
                cur.execute(
                    "UPDATE chatflow.rate_limits SET count = count + 1 WHERE id = %s",
                    (row["id"],)
                )
            elif row:
                # Window elapsed; start a new one
                cur.execute(
                    "UPDATE chatflow.rate_limits SET count = 1, window_start = %s WHERE id = %s",
                    (now, row["id"])
                )
            else:
                cur.execute(
                    """INSERT INTO chatflow.rate_limits
                       (id, subject_type, subject, window_start, window_seconds, count, limit_value)
                       VALUES (%s, 'email', %s, %s, %s, 1, %s)""",
                    (uuid4(), subject, now, window_seconds, limit_value)
                )
            conn.commit()
            return False


def store_otp(user_id: UUID, otp: str, request_ip: Optional[str] = None,
              user_agent: Optional[str] = None) -> UUID:
    """Store a code challenge, cancelling any outstanding one.

    Returns:
        Challenge ID
    """
    config = get_otp_config()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=config["expiry_minutes"])
    challenge_id = uuid4()

    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """UPDATE chatflow.otp_challenges
                   SET status = 'canceled'
                   WHERE user_id = %s AND status = 'sent'""",
                (user_id,)
            )
            cur.execute(
                """INSERT INTO chatflow.otp_challenges
                   (id, user_id, code_hash, expires_at, max_attempts, request_ip, user_agent)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)""",
                (challenge_id, user_id, hash_otp(otp), expires_at,
                 config["max_attempts"], request_ip, user_agent)
            )
            conn.commit()
            return challenge_id


def validate_otp(user_id: UUID, otp: str) -> tuple[bool, str]:
    """Validate a submitted code for user.

    Returns:
        (success, error_message)
    """
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """SELECT id, code_hash, attempts, max_attempts, expires_at
                   FROM chatflow.otp_challenges
                   WHERE user_id = %s AND status = 'sent'
                   ORDER BY sent_at DESC
                   LIMIT 1""",
                (user_id,)
            )
            row = cur.fetchone()

            if not row:
                return False, "No active login code found for this user"

            challenge_id = row["id"]

            if datetime.now(timezone.utc) > row["expires_at"]:
                cur.execute(
                    "UPDATE chatflow.otp_challenges SET status = 'expired' WHERE id = %s",
                    (challenge_id,)
                )
                conn.commit()
                return False, "Login code has expired"

            if row["attempts"] >= row["max_attempts"]:
                cur.execute(
                    "UPDATE chatflow.otp_challenges SET status = 'denied' WHERE id = %s",
                    (challenge_id,)
                )
                conn.commit()
                return False, "Maximum attempts exceeded"

            if not verify_otp_hash(otp, row["code_hash"]):
                cur.execute(
                    "UPDATE chatflow.otp_challenges SET attempts = attempts + 1 WHERE id = %s",
                    (challenge_id,)
                )
                conn.commit()
                remaining = row["max_attempts"] - row["attempts"] - 1
                return False, f"Invalid login code. {remaining} attempts remaining."

            cur.execute(
                "UPDATE chatflow.otp_challenges SET status = 'approved', used_at = NOW() WHERE id = %s",
                (challenge_id,)
            )
            conn.commit()
            return True, ""
