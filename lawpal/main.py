"""
LawPal - FastAPI application entry point.

Backend for the LawPal chat app:
- Email signup with verification, password setup and reset
- Google / GitHub OAuth sign-in
- Profile management with photo uploads
- Per-user conversation persistence (PostgreSQL)
- Security hardening (CORS, headers, optional rate limiting)
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from lawpal.api.routes import api_router
from lawpal.core.config import settings
from lawpal.services.database import database
from lawpal.services.rate_limiter import rate_limit_middleware
from lawpal.services.redis_connection import redis_connection

# Configure structured logging
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lawpal")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Create the upload directory
    - Connect to PostgreSQL in the background, retrying at a fixed interval
    - Connect to Redis if rate limiting is enabled

    Shutdown:
    - Stop the reconnect loop and close connections
    """
    logger.info("Starting up %s...", settings.PROJECT_NAME)

    Path(settings.UPLOAD_DIR, "profiles").mkdir(parents=True, exist_ok=True)

    # Requests are served meanwhile; guarded routes answer 503 until connected
    connect_task = asyncio.create_task(database.connect_with_retry())

    if settings.ENABLE_RATE_LIMITING:
        if await redis_connection.connect():
            logger.info("Redis connected for rate limiting")
        else:
            logger.error("Rate limiting enabled but Redis is unavailable")

    yield

    logger.info("Shutting down...")

    connect_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await connect_task

    await redis_connection.close()
    await database.close()

    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Authentication, profile and conversation API for the LawPal chat app",
    version="0.1.0",
    lifespan=lifespan,
)

# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as {"success": false, "message": ...}."""
    content: dict = {"success": False}
    if isinstance(exc.detail, dict):
        content.update(exc.detail)
    else:
        content["message"] = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), not 422."""
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


# =============================================================================
# Security Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """
    Add security headers to all responses.

    Headers:
    - X-Content-Type-Options: Prevent MIME type sniffing
    - X-Frame-Options: Prevent clickjacking
    - Referrer-Policy: Control referrer information
    - Cache-Control: Prevent caching of auth responses (they carry tokens)
    """
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    if request.url.path.startswith("/auth"):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"

    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


# Rate limiting middleware (applies to /auth routes only)
app.middleware("http")(rate_limit_middleware)


@app.middleware("http")
async def catch_exceptions_middleware(request: Request, call_next):
    """
    Global exception handler to prevent internal error details leaking.

    Logs full exception for debugging, returns generic error to client.
    """
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception during request to %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )


# =============================================================================
# Routes
# =============================================================================

app.include_router(api_router)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    state = "connected" if database.is_available else "disconnected"
    return {
        "status": "ok",
        "database": state,
        # Older frontends read the store state under this key
        "mongodb": state,
        "timestamp": datetime.now(UTC).isoformat(),
    }
