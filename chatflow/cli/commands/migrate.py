"""Run database migrations now."""
from __future__ import annotations

from argparse import Namespace, _SubParsersAction

from ...migrate import run_migrations

__all__ = ["register", "run"]


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("migrate", help="Upgrade the database to head (ignores MIGRATE_AT_START)")
    parser.set_defaults(handler=run)


def run(_: Namespace) -> int:
    try:
        run_migrations()
    except ValueError as e:
        print(f"FAILED: {e}")
        return 1
    return 0
