"""Invitation link resolution check."""
from __future__ import annotations

import os
from argparse import Namespace, _SubParsersAction

from ...services.links import build_invite_url, get_frontend_url
from ...services.invitations import generate_invitation_token

__all__ = ["register", "run"]


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("invite-url", help="Show how invitation links resolve")
    parser.add_argument("--token", help="Token to embed (random when omitted)")
    parser.set_defaults(handler=run)


def run(args: Namespace) -> int:
    for name in ("FRONTEND_URL", "REACT_APP_FRONTEND_URL", "NODE_ENV"):
        print(f"{name}: {os.environ.get(name) or 'NOT SET'}")

    frontend = get_frontend_url()
    url = build_invite_url(args.token or generate_invitation_token())
    print(f"Frontend URL: {frontend}")
    print(f"Invitation URL: {url}")

    if "undefined" in url:
        print("FAILED: invitation URL contains 'undefined'")
        return 1
    print("OK")
    return 0
