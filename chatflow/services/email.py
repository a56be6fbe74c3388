"""Transactional email: Gmail API, SMTP, or console fallback."""
import os
import base64
import html
import logging
import smtplib
import threading
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Optional

import psycopg
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from . import oauth


log = logging.getLogger("chatflow.email")

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_WORKSPACE_DESCRIPTION = "A collaborative workspace for your team"


def get_gmail_config() -> Optional[dict]:
    """Gmail API configuration, or None when incomplete.

    The refresh token comes from GMAIL_REFRESH_TOKEN, falling back to the
    token captured by the /api/auth/google consent flow.
    """
    client = oauth.get_google_client()
    if not client:
        return None

    refresh_token = os.environ.get("GMAIL_REFRESH_TOKEN")
    source = "env"
    if not refresh_token:
        refresh_token = _stored_refresh_token()
        source = "database"
    if not refresh_token:
        return None

    sender = os.environ.get("GMAIL_SERVICE_ACCOUNT_EMAIL")
    return {
        **client,
        "refresh_token": refresh_token,
        "token_source": source,
        "from_email": f"ChatFlow <{sender}>" if sender else "ChatFlow",
    }


def _stored_refresh_token() -> Optional[str]:
    if not os.environ.get("DATABASE_URL") or not os.environ.get("OAUTH_ENCRYPTION_KEY"):
        return None
    try:
        return oauth.load_refresh_token()
    except psycopg.Error as e:
        log.warning("Could not read stored Gmail credential: %s", e)
        return None


def get_smtp_config() -> Optional[dict]:
    """Get SMTP configuration from environment."""
    host = os.environ.get("SMTP_HOST")
    port = int(os.environ.get("SMTP_PORT", "587"))
    user = os.environ.get("SMTP_USER")
    password = os.environ.get("SMTP_PASS")
    from_email = os.environ.get("SMTP_FROM", "ChatFlow <noreply@chatflow.app>")

    if not all([host, user, password]):
        return None

    return {
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "from_email": from_email,
    }


def is_smtp_configured() -> bool:
    """Check if SMTP is configured."""
    return get_smtp_config() is not None


def get_email_mode() -> str:
    """Active transport: gmail, smtp, or console."""
    if get_gmail_config():
        return "gmail"
    if is_smtp_configured():
        return "smtp"
    return "console"


# In-process delivery counters
_analytics_lock = threading.Lock()
_analytics = {
    "sent": 0,
    "failed": 0,
    "by_template": {},
    "last_error": None,
    "last_sent_at": None,
}


def _record(template: str, success: bool, error: Optional[str] = None) -> None:
    with _analytics_lock:
        bucket = _analytics["by_template"].setdefault(template, {"sent": 0, "failed": 0})
        if success:
            _analytics["sent"] += 1
            bucket["sent"] += 1
            _analytics["last_sent_at"] = datetime.now(timezone.utc).isoformat()
        else:
            _analytics["failed"] += 1
            bucket["failed"] += 1
            _analytics["last_error"] = error


def get_email_analytics() -> dict:
    with _analytics_lock:
        return {
            **_analytics,
            "by_template": {k: dict(v) for k, v in _analytics["by_template"].items()},
        }


def reset_email_analytics() -> None:
    with _analytics_lock:
        _analytics.update(sent=0, failed=0, by_template={}, last_error=None, last_sent_at=None)


def build_message(to: str, subject: str, html_body: str, text_body: str,
                  from_email: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_email
    msg["To"] = to
    msg["Message-ID"] = make_msgid(domain="chatflow.app")
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


def _send_via_gmail(msg: MIMEMultipart, config: dict) -> Optional[str]:
    credentials = Credentials(
        token=None,
        refresh_token=config["refresh_token"],
        token_uri=GOOGLE_TOKEN_URI,
        client_id=config["client_id"],
        client_secret=config["client_secret"],
        scopes=[oauth.GMAIL_SEND_SCOPE],
    )
    service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
    raw = base64.urlsafe_b64encode(msg.as_bytes()).decode()
    result = service.users().messages().send(userId="me", body={"raw": raw}).execute()
    return result.get("id")


def _send_via_smtp(msg: MIMEMultipart, config: dict) -> Optional[str]:
    with smtplib.SMTP(config["host"], config["port"]) as server:
        server.starttls()
        server.login(config["user"], config["password"])
        server.send_message(msg)
    return msg["Message-ID"]


def send_email(to: str, subject: str, html_body: str, text_body: str,
               template: str = "custom") -> dict:
    """Send one message with the best available transport.

    Transport failures are logged and reported in the result, never raised.

    Returns:
        {success, mode, message_id?, error?}
    """
    gmail_config = get_gmail_config()
    smtp_config = None if gmail_config else get_smtp_config()

    if gmail_config:
        mode, config, sender = "gmail", gmail_config, _send_via_gmail
    elif smtp_config:
        mode, config, sender = "smtp", smtp_config, _send_via_smtp
    else:
        log.info("[console email] to=%s subject=%s", to, subject)
        _record(template, True)
        return {"success": True, "mode": "console", "message_id": None}

    msg = build_message(to, subject, html_body, text_body, config["from_email"])
    try:
        message_id = sender(msg, config)
    except Exception as e:
        log.error("Email send via %s to %s failed: %s", mode, to, e)
        _record(template, False, str(e))
        return {"success": False, "mode": mode, "error": str(e)}

    log.info("Email sent via %s to %s (%s)", mode, to, template)
    _record(template, True)
    return {"success": True, "mode": mode, "message_id": message_id}


# Templates

def _initials(name: str) -> str:
    parts = [p for p in (name or "").split() if p]
    if not parts:
        return "?"
    return "".join(p[0] for p in parts[:2]).upper()


def _format_date(value) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return f"{value:%B} {value.day}, {value.year}"


_BASE_STYLE = """
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
            line-height: 1.6;
            color: #1f2937;
            background: #f3f4f6;
            margin: 0;
            padding: 24px;
        }}
        .container {{
            max-width: 560px;
            margin: 0 auto;
            background: #ffffff;
            border-radius: 12px;
            padding: 40px;
            box-shadow: 0 2px 8px rgba(0,0,0,0.08);
        }}
        .brand {{
            color: #2563eb;
            font-size: 22px;
            font-weight: 700;
            margin: 0 0 24px 0;
        }}
        .button {{
            display: inline-block;
            background: linear-gradient(135deg, #2563eb 0%, #7c3aed 100%);
            color: #ffffff !important;
            text-decoration: none;
            padding: 14px 32px;
            border-radius: 8px;
            font-weight: 600;
        }}
        .muted {{
            color: #6b7280;
            font-size: 13px;
        }}
"""


def render_invitation_email(inviter_name: str, workspace_name: str,
                            workspace_description: Optional[str], role: str,
                            member_count: int, invite_url: str,
                            expires_at) -> tuple[str, str, str]:
    """Workspace invitation. Returns (subject, html, text)."""
    description = workspace_description or DEFAULT_WORKSPACE_DESCRIPTION
    expiry = _format_date(expires_at)
    member_label = "member" if member_count == 1 else "members"
    subject = f"You're invited to join {workspace_name} on ChatFlow"

    e = html.escape
    style = _BASE_STYLE.format()
    html_body = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>{style}
        .avatar {{
            width: 48px;
            height: 48px;
            border-radius: 50%;
            background: #2563eb;
            color: #ffffff;
            font-weight: 700;
            font-size: 18px;
            line-height: 48px;
            text-align: center;
            display: inline-block;
        }}
        .workspace {{
            background: #f9fafb;
            border: 1px solid #e5e7eb;
            border-radius: 8px;
            padding: 20px;
            margin: 24px 0;
        }}
    </style>
</head>
<body>
    <div class="container">
        <p class="brand">ChatFlow</p>
        <div class="avatar">{e(_initials(inviter_name))}</div>
        <h2>{e(inviter_name)} invited you to join {e(workspace_name)}</h2>
        <div class="workspace">
            <strong>{e(workspace_name)}</strong>
            <p>{e(description)}</p>
            <p class="muted">{member_count} {member_label} &middot; You'll join as {e(role)}</p>
        </div>
        <p style="text-align: center;">
            <a class="button" href="{e(invite_url)}">Join {e(workspace_name)}</a>
        </p>
        <p class="muted">This invitation expires on {e(expiry)}.</p>
        <p class="muted">Or paste this link into your browser: {e(invite_url)}</p>
    </div>
</body>
</html>
"""

    text_body = f"""{inviter_name} invited you to join {workspace_name} on ChatFlow.

{description}
{member_count} {member_label}. You'll join as {role}.

Accept the invitation: {invite_url}

This invitation expires on {expiry}.
"""
    return subject, html_body, text_body


def render_member_joined_email(member_name: str, member_email: str,
                               workspace_name: str, workspace_url: str) -> tuple[str, str, str]:
    """Notice to the inviter that their invitation was accepted."""
    subject = f"🎉 {member_name} joined {workspace_name}"

    e = html.escape
    style = _BASE_STYLE.format()
    html_body = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <p class="brand">ChatFlow</p>
        <h2>{e(member_name)} joined {e(workspace_name)}</h2>
        <p>{e(member_name)} ({e(member_email)}) accepted your invitation and is now a member of the workspace.</p>
        <p style="text-align: center;">
            <a class="button" href="{e(workspace_url)}">Open {e(workspace_name)}</a>
        </p>
        <p class="muted">Say hello in #general.</p>
    </div>
</body>
</html>
"""

    text_body = f"""{member_name} ({member_email}) accepted your invitation and joined {workspace_name}.

Open the workspace: {workspace_url}
"""
    return subject, html_body, text_body


def render_login_code_email(code: str, expiry_minutes: int) -> tuple[str, str, str]:
    subject = "Your ChatFlow verification code"

    style = _BASE_STYLE.format()
    html_body = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>{style}
        .otp-code {{
            background: #f0f2f5;
            border: 2px solid #2563eb;
            border-radius: 8px;
            padding: 20px;
            font-size: 36px;
            font-weight: bold;
            letter-spacing: 8px;
            color: #2563eb;
            margin: 30px 0;
            text-align: center;
            font-family: 'Courier New', monospace;
        }}
    </style>
</head>
<body>
    <div class="container">
        <p class="brand">ChatFlow</p>
        <h2>Your verification code</h2>
        <p>Enter this code to sign in:</p>
        <div class="otp-code">{html.escape(code)}</div>
        <p>This code expires in {expiry_minutes} minutes.</p>
        <p class="muted">Never share this code with anyone. If you didn't request it, ignore this email.</p>
    </div>
</body>
</html>
"""

    text_body = f"""Your ChatFlow verification code is: {code}

This code expires in {expiry_minutes} minutes.

Never share this code with anyone.

If you didn't request this code, please ignore this email.
"""
    return subject, html_body, text_body


def send_workspace_invitation(to: str, inviter_name: str, workspace_name: str,
                              workspace_description: Optional[str], role: str,
                              member_count: int, invite_url: str, expires_at) -> dict:
    subject, html_body, text_body = render_invitation_email(
        inviter_name, workspace_name, workspace_description, role,
        member_count, invite_url, expires_at,
    )
    return send_email(to, subject, html_body, text_body, template="workspace-invitation")


def send_member_joined(to: str, member_name: str, member_email: str,
                       workspace_name: str, workspace_url: str) -> dict:
    subject, html_body, text_body = render_member_joined_email(
        member_name, member_email, workspace_name, workspace_url,
    )
    return send_email(to, subject, html_body, text_body, template="member-joined")


def send_login_code(to: str, code: str, expiry_minutes: int) -> dict:
    subject, html_body, text_body = render_login_code_email(code, expiry_minutes)
    return send_email(to, subject, html_body, text_body, template="login-code")


def send_test_email(to: str) -> dict:
    sent_at = datetime.now(timezone.utc).isoformat()
    subject = "ChatFlow test email"
    text_body = f"This is a test message from ChatFlow sent at {sent_at} using {get_email_mode()} mode."
    html_body = f"<p>{html.escape(text_body)}</p>"
    return send_email(to, subject, html_body, text_body, template="test")
