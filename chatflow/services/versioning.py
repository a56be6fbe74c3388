"""App version resolution and client version tracking."""
import base64
import os
import subprocess
import threading
import time
from datetime import datetime, timezone
from importlib import metadata
from typing import Callable, Optional

from cachetools import TTLCache


PACKAGE_NAME = "chatflow-api"
MINIMUM_CURRENT_VERSION = "1.8.3"
TRACKING_TTL_HOURS = 24
TRACKING_MAX_CLIENTS = 10000
RECENT_USERS_LIMIT = 20

_cached_version: Optional[str] = None


def _git_short_hash() -> Optional[str]:
    try:
        out = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True, text=True, timeout=2, check=True,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    return out.stdout.strip() or None


def get_app_version() -> str:
    """APP_VERSION, then the installed package version, then git, then 'development'."""
    global _cached_version
    env_version = os.environ.get("APP_VERSION")
    if env_version:
        return env_version
    if _cached_version is None:
        try:
            _cached_version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            _cached_version = _git_short_hash() or "development"
    return _cached_version


def parse_version(value: str) -> tuple:
    """Numeric components of a dotted version; non-numeric parts count as 0."""
    parts = []
    for piece in value.lstrip("v").split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def is_outdated(version: str, minimum: str = MINIMUM_CURRENT_VERSION) -> bool:
    a, b = parse_version(version), parse_version(minimum)
    width = max(len(a), len(b))
    return a + (0,) * (width - len(a)) < b + (0,) * (width - len(b))


def client_identifier(user_id: Optional[str], ip: str, user_agent: Optional[str]) -> str:
    if user_id:
        return user_id
    agent = base64.b64encode((user_agent or "").encode()).decode()[:8]
    return f"{ip}-{agent}"


def _summarize(client: dict) -> dict:
    identifier = client["identifier"]
    if not identifier.startswith("user-"):
        identifier = f"anonymous-{identifier}"
    agent = client["userAgent"]
    return {
        "identifier": identifier,
        "version": client["version"],
        "lastSeen": client["lastSeen"].isoformat(),
        "userAgent": f"{agent[:50]}..." if agent else "unknown",
    }


class VersionTracker:
    """Last reported frontend version per client, kept in memory.

    Entries expire ttl_hours after the client's last report; past max_clients
    the least recently reported clients are dropped first.
    """

    def __init__(self, ttl_hours: int = TRACKING_TTL_HOURS, max_clients: int = TRACKING_MAX_CLIENTS,
                 timer: Callable[[], float] = time.time):
        self._timer = timer
        self._lock = threading.Lock()
        self._clients: TTLCache = TTLCache(maxsize=max_clients, ttl=ttl_hours * 3600, timer=timer)

    def report(self, identifier: str, version: str, user_agent: Optional[str] = None,
               ip: Optional[str] = None, user_id: Optional[str] = None) -> None:
        with self._lock:
            self._clients[identifier] = {
                "identifier": identifier,
                "version": version,
                "userAgent": user_agent,
                "ip": ip,
                "userId": user_id,
                "lastSeen": datetime.fromtimestamp(self._timer(), timezone.utc),
            }

    def __len__(self) -> int:
        with self._lock:
            self._clients.expire()
            return len(self._clients)

    def stats(self) -> dict:
        with self._lock:
            self._clients.expire()
            clients = list(self._clients.values())
            now = datetime.fromtimestamp(self._timer(), timezone.utc)

        total = len(clients)
        counts: dict[str, int] = {}
        for c in clients:
            counts[c["version"]] = counts.get(c["version"], 0) + 1

        distribution = [
            {
                "version": version,
                "count": count,
                "percentage": f"{count / total * 100:.1f}",
            }
            for version, count in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        ]
        recent = sorted(clients, key=lambda c: c["lastSeen"], reverse=True)[:RECENT_USERS_LIMIT]

        return {
            "totalUsers": total,
            "versionDistribution": distribution,
            "outdatedUsers": sum(1 for c in clients if is_outdated(c["version"])),
            "recentUsers": [_summarize(c) for c in recent],
            "lastUpdated": now.isoformat(),
        }

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()


tracker = VersionTracker()
