import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import psycopg

from .migrate import list_schema_versions, migrate_if_enabled
from .ratelimit import RateLimitMiddleware, get_rate_limit_config
from .routers import (
    auth, channels, global_tasks, messages, notifications, tasks, upload, users, version, workspaces,
)
from .services.database import check_database, get_environment
from .services.errors import ServiceError
from .services.links import get_allowed_origins
from .services.versioning import get_app_version


log = logging.getLogger("chatflow.api")

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run database migrations on startup when enabled."""
    try:
        migrate_if_enabled()
    except Exception as e:
        print(f"Database migration failed: {e}")
        raise
    log.info(f"ChatFlow API {get_app_version()} started ({get_environment()})")
    yield


app = FastAPI(title="ChatFlow API", version=get_app_version(), lifespan=lifespan)

app.add_middleware(RateLimitMiddleware, **get_rate_limit_config())


@app.middleware("http")
async def log_requests(request: Request, call_next):
    client = request.client.host if request.client else "unknown"
    log.info(f"{datetime.now(timezone.utc).isoformat()} - {request.method} {request.url.path} - {client}")
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Order matters: fixed paths under /api/workspaces before /{workspace_id}
app.include_router(version.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(notifications.router)
app.include_router(notifications.email_router)
app.include_router(workspaces.router)
app.include_router(channels.router)
app.include_router(messages.router)
app.include_router(tasks.router)
app.include_router(global_tasks.router)
app.include_router(upload.router)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    # Only unmatched routes get the JSON envelope; explicit 404s keep their detail
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested endpoint does not exist",
                "path": request.url.path,
                "method": request.method,
            },
        )
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "Something went wrong on our end",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.get("/")
def root():
    return {
        "status": "healthy",
        "message": "Chat App API Server",
        "version": get_app_version(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": get_environment(),
    }


@app.get("/status")
def status():
    return {
        "status": "running",
        "version": get_app_version(),
        "environment": get_environment(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": int(time.monotonic() - STARTED_AT),
    }


@app.get("/api/health")
def health():
    """Minimal liveness endpoint for internal checks."""
    return {"status": "ok"}


@app.get("/api/db/health")
def db_health():
    """Lightweight DB connectivity check using DATABASE_URL.

    Returns:
        { status: "ok" | "skipped", database?, user?, version?, details? }
    """
    if not os.environ.get("DATABASE_URL"):
        return {"status": "skipped", "details": "DATABASE_URL not set"}
    try:
        return {"status": "ok", **check_database(timeout=3)}
    except psycopg.Error as e:
        raise HTTPException(status_code=500, detail=f"DB check failed: {e}")


@app.get("/api/debug")
def debug():
    return {
        "status": "success",
        "message": "The debug backend service is running and reachable!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/versions")
def versions(n: int = 5):
    """Return the last n applied schema versions (newest first)."""
    if not os.environ.get("DATABASE_URL"):
        return []
    try:
        return list_schema_versions(n)
    except psycopg.Error as e:
        raise HTTPException(status_code=500, detail=f"Version lookup failed: {e}")
