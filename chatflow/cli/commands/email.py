"""Email configuration check and test send."""
from __future__ import annotations

import os
from argparse import Namespace, _SubParsersAction

from ...services import email as email_service
from ...services.links import mask_secret

__all__ = ["register", "run_env", "run_send"]

EMAIL_VARIABLES = [
    "GMAIL_OAUTH_CLIENT_ID",
    "GMAIL_OAUTH_CLIENT_SECRET",
    "GMAIL_REFRESH_TOKEN",
    "GMAIL_SERVICE_ACCOUNT_EMAIL",
    "OAUTH_ENCRYPTION_KEY",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_FROM",
]

# Shown unmasked
PLAIN_VARIABLES = {"GMAIL_SERVICE_ACCOUNT_EMAIL", "SMTP_HOST", "SMTP_PORT", "SMTP_FROM"}


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("email-env", help="Show email settings (masked) and the selected transport")
    parser.set_defaults(handler=run_env)

    parser = subparsers.add_parser("send-test-email", help="Send a test message")
    parser.add_argument("--to", required=True, help="Recipient address")
    parser.set_defaults(handler=run_send)


def run_env(_: Namespace) -> int:
    print("Email environment:")
    for name in EMAIL_VARIABLES:
        value = os.environ.get(name)
        shown = (value or "NOT SET") if name in PLAIN_VARIABLES else mask_secret(value)
        print(f"  {name}: {shown}")
    print(f"Transport: {email_service.get_email_mode()}")
    return 0


def run_send(args: Namespace) -> int:
    print(f"Sending test email to {args.to} via {email_service.get_email_mode()}...")
    result = email_service.send_test_email(args.to)
    if not result.get("success"):
        print(f"FAILED: {result.get('error')}")
        return 1
    print(f"Sent (mode={result.get('mode')}, message_id={result.get('message_id')})")
    return 0
