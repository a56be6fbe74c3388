"""Tests for the per-IP rate limiting middleware."""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatflow.ratelimit import FixedWindowCounter, RateLimitMiddleware


@pytest.fixture
def app():
    test_app = FastAPI()
    test_app.add_middleware(RateLimitMiddleware, window_seconds=60, api_max=5, auth_max=2)

    @test_app.get("/api/test")
    async def api_endpoint():
        return {"status": "ok"}

    @test_app.post("/api/auth/login")
    async def auth_endpoint():
        return {"status": "ok"}

    @test_app.get("/status")
    async def status():
        return {"status": "running"}

    return test_app


def test_requests_under_limit_allowed(app):
    client = TestClient(app)
    for _ in range(5):
        assert client.get("/api/test").status_code == 200


def test_api_limit_returns_429(app):
    client = TestClient(app)
    for _ in range(5):
        client.get("/api/test")
    response = client.get("/api/test")
    assert response.status_code == 429
    assert response.json()["error"] == "Too Many Requests"
    assert int(response.headers["Retry-After"]) >= 1


def test_auth_routes_have_stricter_limit(app):
    client = TestClient(app)
    assert client.post("/api/auth/login").status_code == 200
    assert client.post("/api/auth/login").status_code == 200
    response = client.post("/api/auth/login")
    assert response.status_code == 429
    assert "authentication" in response.json()["message"]


def test_non_api_paths_are_not_limited(app):
    client = TestClient(app)
    for _ in range(10):
        assert client.get("/status").status_code == 200


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_counter_resets_after_window():
    clock = FakeClock(1000.0)
    counter = FixedWindowCounter(window_seconds=60, timer=clock)
    assert counter.hit("ip") == 1
    clock.now = 1030.0
    assert counter.hit("ip") == 2
    assert counter.retry_after("ip") == 30
    clock.now = 1061.0
    assert counter.hit("ip") == 1


def test_counter_isolates_keys():
    clock = FakeClock(0.0)
    counter = FixedWindowCounter(window_seconds=60, timer=clock)
    counter.hit("a")
    clock.now = 1.0
    counter.hit("a")
    clock.now = 2.0
    assert counter.hit("b") == 1


def test_counter_is_bounded_by_maxsize():
    clock = FakeClock(0.0)
    counter = FixedWindowCounter(window_seconds=60, maxsize=100, timer=clock)
    for i in range(500):
        counter.hit(f"10.0.{i // 256}.{i % 256}")
    assert len(counter) == 100


def test_expired_windows_are_dropped():
    clock = FakeClock(0.0)
    counter = FixedWindowCounter(window_seconds=60, timer=clock)
    for i in range(50):
        counter.hit(f"ip-{i}")
    clock.now = 61.0
    assert len(counter) == 0


def test_retry_after_for_unknown_key_is_full_window():
    counter = FixedWindowCounter(window_seconds=60, timer=FakeClock(0.0))
    assert counter.retry_after("nobody") == 60
