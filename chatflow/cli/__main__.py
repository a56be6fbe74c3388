"""Command-line entry point: ``python -m chatflow.cli <command>``."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import commands


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatflow-diag",
        description="Diagnostics for email, storage, invitations and deployments.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (CRITICAL, ERROR, WARNING, INFO, DEBUG). Default: INFO",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    commands.register(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(args.handler(args) or 0)


if __name__ == "__main__":
    main()
