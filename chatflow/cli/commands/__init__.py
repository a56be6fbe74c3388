"""Command registrations for the diagnostics CLI."""
from __future__ import annotations

from argparse import _SubParsersAction

from . import email, invite, migrate, smoke, spaces

__all__ = ["register"]


def register(subparsers: _SubParsersAction) -> None:
    """Register all CLI commands with *subparsers*."""
    email.register(subparsers)
    invite.register(subparsers)
    spaces.register(subparsers)
    migrate.register(subparsers)
    smoke.register(subparsers)
