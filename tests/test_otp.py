"""Tests for login code hashing, rate limiting, and validation."""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from chatflow.services import otp

SERVICE = "chatflow.services.otp"


def test_generate_otp_is_six_digits():
    for _ in range(20):
        code = otp.generate_otp()
        assert len(code) == 6
        assert code.isdigit()


def test_hash_and_verify():
    hashed = otp.hash_otp("123456")
    assert otp.verify_otp_hash("123456", hashed)
    assert not otp.verify_otp_hash("654321", hashed)


def test_malformed_hash_never_matches():
    assert otp.verify_otp_hash("123456", b"not-a-bcrypt-hash") is False


def test_config_defaults(monkeypatch):
    for name in ("OTP_EXPIRY_MINUTES", "OTP_MAX_ATTEMPTS", "RATE_LIMIT_WINDOW_MINUTES", "RATE_LIMIT_MAX_REQUESTS"):
        monkeypatch.delenv(name, raising=False)
    assert otp.get_otp_config() == {
        "expiry_minutes": 5,
        "max_attempts": 8,
        "rate_limit_window_minutes": 15,
        "rate_limit_max_requests": 3,
    }


def test_rate_limit_first_request_opens_window(mock_db):
    cursor = mock_db(SERVICE, fetchone=[None])
    assert otp.check_rate_limit("Alice@Example.com") is False
    insert_sql, params = cursor.execute.call_args.args
    assert "INSERT INTO chatflow.rate_limits" in insert_sql
    assert params[1] == "alice@example.com"
    cursor.connection.commit.assert_called_once()


def test_rate_limit_exceeded_within_window(mock_db):
    row = {"id": uuid4(), "count": 3, "window_start": datetime.now(timezone.utc)}
    cursor = mock_db(SERVICE, fetchone=[row])
    assert otp.check_rate_limit("alice@example.com") is True
    assert cursor.execute.call_count == 1


def test_rate_limit_resets_after_window(mock_db):
    row = {"id": uuid4(), "count": 3, "window_start": datetime.now(timezone.utc) - timedelta(hours=1)}
    cursor = mock_db(SERVICE, fetchone=[row])
    assert otp.check_rate_limit("alice@example.com") is False
    assert "SET count = 1" in cursor.execute.call_args.args[0]


def test_store_otp_cancels_previous_challenge(mock_db):
    cursor = mock_db(SERVICE)
    challenge_id = otp.store_otp(uuid4(), "123456", request_ip="10.0.0.1", user_agent="pytest")
    first, second = cursor.execute.call_args_list
    assert "status = 'canceled'" in first.args[0]
    params = second.args[1]
    assert params[0] == challenge_id
    assert otp.verify_otp_hash("123456", params[2])
    assert params[5:] == ("10.0.0.1", "pytest")


def _challenge(code="123456", attempts=0, max_attempts=8, expires_in=timedelta(minutes=5)):
    return {
        "id": uuid4(),
        "code_hash": otp.hash_otp(code),
        "attempts": attempts,
        "max_attempts": max_attempts,
        "expires_at": datetime.now(timezone.utc) + expires_in,
    }


def test_validate_without_challenge(mock_db):
    mock_db(SERVICE, fetchone=[None])
    assert otp.validate_otp(uuid4(), "123456") == (False, "No active login code found for this user")


def test_validate_success_marks_approved(mock_db):
    cursor = mock_db(SERVICE, fetchone=[_challenge()])
    assert otp.validate_otp(uuid4(), "123456") == (True, "")
    assert "status = 'approved'" in cursor.execute.call_args.args[0]


def test_validate_wrong_code_counts_attempt(mock_db):
    cursor = mock_db(SERVICE, fetchone=[_challenge(attempts=2)])
    ok, message = otp.validate_otp(uuid4(), "000000")
    assert not ok
    assert message == "Invalid login code. 5 attempts remaining."
    assert "attempts = attempts + 1" in cursor.execute.call_args.args[0]


def test_validate_expired(mock_db):
    cursor = mock_db(SERVICE, fetchone=[_challenge(expires_in=timedelta(minutes=-1))])
    assert otp.validate_otp(uuid4(), "123456") == (False, "Login code has expired")
    assert "status = 'expired'" in cursor.execute.call_args.args[0]


def test_validate_attempts_exhausted(mock_db):
    mock_db(SERVICE, fetchone=[_challenge(attempts=8)])
    assert otp.validate_otp(uuid4(), "123456") == (False, "Maximum attempts exceeded")
