"""Round-trip upload against DigitalOcean Spaces."""
from __future__ import annotations

from argparse import Namespace, _SubParsersAction
from datetime import datetime, timezone

from ...services.errors import StorageError
from ...services.storage import SpacesStorage

__all__ = ["register", "run"]


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("spaces-upload", help="Upload and delete a small test object")
    parser.add_argument("--workspace", default="diagnostics")
    parser.add_argument("--channel", default="spaces-test")
    parser.set_defaults(handler=run)


def run(args: Namespace) -> int:
    try:
        spaces = SpacesStorage.from_env()
        print(f"Bucket: {spaces.config['bucket']} ({spaces.config['region']})")
        body = f"ChatFlow storage test {datetime.now(timezone.utc).isoformat()}\n".encode()
        uploaded = spaces.upload_file(
            body, "spaces-test.txt", "text/plain",
            workspace=args.workspace, channel=args.channel,
        )
        print(f"Uploaded: {uploaded['url']}")
        print(f"Key: {uploaded['key']}")
        spaces.delete_file(uploaded["key"])
        print("Deleted test object")
    except StorageError as e:
        print(f"FAILED: {e.message}")
        return 1
    return 0
