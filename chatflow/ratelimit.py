"""Per-IP request rate limiting for /api routes (in memory, per process)."""
import os
import threading
import time
from typing import Callable

from cachetools import TTLCache
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


MAX_TRACKED_IPS = 10000


def get_rate_limit_config() -> dict:
    return {
        "window_seconds": int(os.environ.get("API_RATE_LIMIT_WINDOW_MINUTES", "15")) * 60,
        "api_max": int(os.environ.get("API_RATE_LIMIT_MAX", "1000")),
        "auth_max": int(os.environ.get("AUTH_RATE_LIMIT_MAX", "50")),
    }


class FixedWindowCounter:
    """Counts hits per key in fixed windows.

    Each key holds a mutable [window_start, count] pair in a TTLCache. The
    pair is only mutated in place after insertion, so its expiry stays at
    window_start + window_seconds and a fresh window begins once it lapses.
    """

    def __init__(self, window_seconds: int, maxsize: int = MAX_TRACKED_IPS,
                 timer: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._timer = timer
        self._lock = threading.Lock()
        self._windows: TTLCache = TTLCache(maxsize=maxsize, ttl=window_seconds, timer=timer)

    def hit(self, key: str) -> int:
        """Record a hit and return the count in the current window."""
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                window = [self._timer(), 0]
                self._windows[key] = window
            window[1] += 1
            return window[1]

    def retry_after(self, key: str) -> int:
        with self._lock:
            now = self._timer()
            window = self._windows.get(key)
            start = window[0] if window is not None else now
        return max(1, int(start + self.window_seconds - now))

    def __len__(self) -> int:
        with self._lock:
            self._windows.expire()
            return len(self._windows)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, window_seconds: int = 900, api_max: int = 1000, auth_max: int = 50):
        super().__init__(app)
        self.api_max = api_max
        self.auth_max = auth_max
        self.api_counter = FixedWindowCounter(window_seconds)
        self.auth_counter = FixedWindowCounter(window_seconds)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith("/api/"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        if path.startswith("/api/auth/"):
            if self.auth_counter.hit(client_ip) > self.auth_max:
                return self._reject(
                    "Too many authentication attempts from this IP, please try again later.",
                    self.auth_counter.retry_after(client_ip),
                )

        if self.api_counter.hit(client_ip) > self.api_max:
            return self._reject(
                "Too many requests from this IP, please try again later.",
                self.api_counter.retry_after(client_ip),
            )

        return await call_next(request)

    @staticmethod
    def _reject(message: str, retry_after: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"error": "Too Many Requests", "message": message},
            headers={"Retry-After": str(retry_after)},
        )
