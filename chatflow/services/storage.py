"""DigitalOcean Spaces (S3-compatible) file storage."""
import os
import re
import logging
import secrets
import time
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .errors import StorageError


log = logging.getLogger("chatflow.storage")

KEY_PREFIX = "chat-uploads/"
MAX_FILE_SIZE = 100 * 1024 * 1024
MAX_FILES_PER_REQUEST = 10
SIGNED_URL_EXPIRY = 3600

ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    "image/heic", "image/heif",
    "video/mp4", "video/webm", "video/quicktime", "video/mpeg",
    "audio/mpeg", "audio/wav", "audio/webm", "audio/ogg",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain", "text/csv",
    "application/zip", "application/x-zip-compressed",
}


def _strip_scheme(endpoint: str) -> str:
    return re.sub(r"^https?://", "", endpoint).rstrip("/")


def get_spaces_config() -> Optional[dict]:
    """Spaces configuration from environment, or None if incomplete."""
    endpoint = os.environ.get("SPACES_ENDPOINT")
    bucket = os.environ.get("SPACES_BUCKET")
    key = os.environ.get("SPACES_KEY")
    secret = os.environ.get("SPACES_SECRET")

    if not all([endpoint, bucket, key, secret]):
        return None

    host = _strip_scheme(endpoint)
    cdn = (os.environ.get("SPACES_CDN_ENDPOINT") or f"https://{bucket}.{host}").rstrip("/")
    return {
        "endpoint": f"https://{host}",
        "host": host,
        "bucket": bucket,
        "key": key,
        "secret": secret,
        "region": os.environ.get("SPACES_REGION", "nyc3"),
        "cdn": cdn,
    }


def is_storage_configured() -> bool:
    return get_spaces_config() is not None


def sanitize_path(value: Optional[str]) -> str:
    """Make a workspace/channel/file name safe for use in an object key."""
    cleaned = (value or "").lower()
    cleaned = re.sub(r"[^a-z0-9\-_]", "-", cleaned)
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned or "unknown"


def build_object_key(original_name: str, workspace: Optional[str] = None,
                     channel: Optional[str] = None) -> str:
    """chat-uploads/<workspace>/<channel>/<ms>-<hex>-<base>.<ext>"""
    path = PurePosixPath(original_name or "file")
    ext = path.suffix.lstrip(".").lower() or "bin"
    base = sanitize_path(path.stem)
    stamp = int(time.time() * 1000)
    return (
        f"{KEY_PREFIX}{sanitize_path(workspace or 'general')}/"
        f"{sanitize_path(channel or 'general')}/"
        f"{stamp}-{secrets.token_hex(4)}-{base}.{ext}"
    )


def validate_upload(content_type: Optional[str], size: int) -> None:
    if content_type not in ALLOWED_MIME_TYPES:
        raise StorageError(f"File type {content_type} is not allowed", status_code=400)
    if size > MAX_FILE_SIZE:
        raise StorageError("File exceeds the 100MB size limit", status_code=413)


class SpacesStorage:
    """Thin wrapper over a boto3 S3 client pointed at Spaces."""

    def __init__(self, config: dict):
        self.config = config
        self._client = boto3.client(
            "s3",
            endpoint_url=config["endpoint"],
            region_name=config["region"],
            aws_access_key_id=config["key"],
            aws_secret_access_key=config["secret"],
            config=Config(signature_version="s3v4"),
        )

    @classmethod
    def from_env(cls) -> "SpacesStorage":
        config = get_spaces_config()
        if not config:
            raise StorageError("File storage is not configured", status_code=503)
        return cls(config)

    def public_url(self, key: str) -> str:
        return f"{self.config['cdn']}/{key}"

    def upload_file(self, content: bytes, original_name: str, content_type: str,
                    workspace: Optional[str] = None, channel: Optional[str] = None) -> dict:
        """Upload a public-read object.

        Returns:
            {url, key, originalName, size, mimeType, uploadedAt}
        """
        validate_upload(content_type, len(content))
        key = build_object_key(original_name, workspace, channel)
        uploaded_at = datetime.now(timezone.utc).isoformat()

        try:
            self._client.put_object(
                Bucket=self.config["bucket"],
                Key=key,
                Body=content,
                ContentType=content_type,
                ACL="public-read",
                CacheControl="max-age=31536000",
                Metadata={
                    # S3 metadata must be ASCII
                    "original-name": original_name.encode("ascii", "replace").decode(),
                    "uploaded-at": uploaded_at,
                    "workspace": sanitize_path(workspace or "general"),
                    "channel": sanitize_path(channel or "general"),
                },
            )
        except ClientError as e:
            log.error("Spaces upload of %s failed: %s", key, e)
            raise StorageError(f"Upload failed: {e}")

        log.info("Uploaded %s (%d bytes)", key, len(content))
        return {
            "url": self.public_url(key),
            "key": key,
            "originalName": original_name,
            "size": len(content),
            "mimeType": content_type,
            "uploadedAt": uploaded_at,
        }

    def delete_file(self, key: str) -> None:
        if not key.startswith(KEY_PREFIX):
            raise StorageError("Only chat uploads can be deleted", status_code=400)
        try:
            self._client.delete_object(Bucket=self.config["bucket"], Key=key)
        except ClientError as e:
            log.error("Spaces delete of %s failed: %s", key, e)
            raise StorageError(f"Delete failed: {e}")

    def get_file_metadata(self, key: str) -> Optional[dict]:
        """Object metadata, or None when the key does not exist."""
        try:
            head = self._client.head_object(Bucket=self.config["bucket"], Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise StorageError(f"Metadata lookup failed: {e}")

        last_modified = head.get("LastModified")
        return {
            "key": key,
            "url": self.public_url(key),
            "size": head.get("ContentLength"),
            "mimeType": head.get("ContentType"),
            "lastModified": last_modified.isoformat() if last_modified else None,
            "metadata": head.get("Metadata", {}),
        }

    def get_signed_url(self, key: str, expires_in: int = SIGNED_URL_EXPIRY) -> str:
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config["bucket"], "Key": key},
            ExpiresIn=expires_in,
        )
