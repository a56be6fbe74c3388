"""Tests for version resolution and the client version tracker."""
import base64
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from chatflow.services import versioning
from chatflow.services.versioning import VersionTracker, client_identifier, is_outdated


@pytest.mark.parametrize("version,expected", [
    ("1.8.2", True),
    ("1.7.10", True),
    ("1.8.3", False),
    ("1.8.10", False),
    ("1.9", False),
    ("v1.8", True),
    ("2.0.0", False),
])
def test_is_outdated_compares_numerically(version, expected):
    assert is_outdated(version) is expected


def test_client_identifier_prefers_user_id():
    assert client_identifier("user-42", "10.0.0.1", "Mozilla") == "user-42"


def test_client_identifier_anonymous():
    agent = base64.b64encode(b"Mozilla/5.0").decode()[:8]
    assert client_identifier(None, "10.0.0.1", "Mozilla/5.0") == f"10.0.0.1-{agent}"


def test_app_version_from_env(monkeypatch):
    monkeypatch.setenv("APP_VERSION", "9.9.9")
    assert versioning.get_app_version() == "9.9.9"


def test_app_version_falls_back_to_development(monkeypatch):
    monkeypatch.delenv("APP_VERSION", raising=False)
    monkeypatch.setattr(versioning, "_cached_version", None)
    with patch.object(versioning.metadata, "version", side_effect=versioning.metadata.PackageNotFoundError), \
            patch.object(versioning, "_git_short_hash", return_value=None):
        assert versioning.get_app_version() == "development"


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta).total_seconds()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 12, tzinfo=timezone.utc).timestamp())


def test_tracker_keeps_latest_version_per_client(clock):
    t = VersionTracker(timer=clock)
    t.report("user-1", "1.8.0")
    t.report("user-1", "1.8.3")
    stats = t.stats()
    assert stats["totalUsers"] == 1
    assert stats["versionDistribution"] == [{"version": "1.8.3", "count": 1, "percentage": "100.0"}]


def test_tracker_drops_stale_clients(clock):
    t = VersionTracker(timer=clock)
    t.report("old", "1.7.0")
    clock.advance(hours=24)
    t.report("new", "1.8.3")
    clock.advance(hours=1)
    stats = t.stats()
    assert stats["totalUsers"] == 1
    assert stats["outdatedUsers"] == 0
    assert stats["lastUpdated"] == "2026-10-20T13:00:00+00:00"


def test_tracker_expires_clients_without_stats_calls(clock):
    t = VersionTracker(timer=clock)
    for i in range(5000):
        t.report(f"10.0.{i // 256}.{i % 256}-TW96aWxs", "1.8.3")
    clock.advance(days=30)
    t.report("user-1", "1.8.3")
    assert len(t) == 1


def test_tracker_is_bounded(clock):
    t = VersionTracker(max_clients=100, timer=clock)
    for i in range(1000):
        t.report(f"client-{i}", "1.8.3")
    assert len(t) == 100


def test_tracker_recent_users_are_newest_first_and_labelled(clock):
    t = VersionTracker(timer=clock)
    t.report("10.0.0.1-TW96aWxs", "1.8.3", user_agent="A" * 80)
    clock.advance(minutes=5)
    t.report("user-1", "1.8.3", user_id="user-1")
    t.report("u9", "1.8.3", user_id="u9")
    recent = t.stats()["recentUsers"]
    identifiers = [r["identifier"] for r in recent]
    assert set(identifiers[:2]) == {"user-1", "anonymous-u9"}
    assert recent[2]["identifier"] == "anonymous-10.0.0.1-TW96aWxs"
    assert recent[2]["userAgent"] == "A" * 50 + "..."
    assert recent[2]["lastSeen"] == "2026-10-19T12:00:00+00:00"


def test_tracker_empty_stats():
    stats = VersionTracker().stats()
    assert stats["totalUsers"] == 0
    assert stats["versionDistribution"] == []
