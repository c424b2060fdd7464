"""
api/main.py -- FastAPI application entry point for PulseCount.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- allows the browser client at CLIENT_URL
  2. log_requests          -- one log line per request with latency

Lifespan handles startup (document store, auth service, tracker hydration,
sweep task) and shutdown (cancel sweep task, close DB connection)
symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.engagement import router as engagement_router
from auth.service import AuthService
from auth.store import AccountStore
from core.config import get_settings
from core.documents import DocumentStore
from core.errors import AppError, PersistenceError
from engagement.tracker import EngagementTracker

_VERSION = "1.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pulsecount.api")

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI) -> None:
    """Purge stale live visitors every SWEEP_INTERVAL_SECONDS.

    The sweep takes the tracker lock and may write to the store, so it runs
    in a worker thread to keep the event loop free. A failed sweep is logged
    and the loop carries on. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine
    cleanly.
    """
    while True:
        await asyncio.sleep(_settings.sweep_interval_seconds)
        sweep = asyncio.ensure_future(asyncio.to_thread(app.state.tracker.sweep_live_visitors))
        try:
            removed = await asyncio.shield(sweep)
        except asyncio.CancelledError:
            # Let an in-flight sweep finish before shutdown closes the store.
            await asyncio.wait([sweep])
            raise
        except Exception:
            logger.exception("Live visitor sweep failed")
            continue
        if removed:
            logger.info("Swept %d stale live visitors", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Document store first -- everything else reads through it.
      2. Tracker hydration second -- must finish before any vote is accepted.
      3. Sweep task last -- references app.state.tracker.
    """
    logger.info("PulseCount API starting up")
    app.state.documents = DocumentStore(_settings.database_url)
    app.state.auth_service = AuthService(AccountStore(app.state.documents))
    app.state.tracker = EngagementTracker.from_settings(app.state.documents, _settings)
    app.state.tracker.hydrate()
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app))

    yield

    app.state.sweep_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.sweep_task
    app.state.documents.close()
    logger.info("PulseCount API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PulseCount API",
    description="Account registration, one-per-visitor voting and visitor counters.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(engagement_router, tags=["Engagement"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope ({"error", "code"}) so
# clients can read error["error"] regardless of status.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate service errors into their status code and envelope.

    PersistenceError details were already logged by the store; the caller
    only ever sees the generic message.
    """
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, code=exc.code).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body has the wrong shape or types."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid request body", code="validation_error").model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return the envelope for framework-raised HTTP errors (404, 405, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), code=f"http_{exc.status_code}").model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Something went wrong", code="internal_error").model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and whether the document store answers."""
    database = "ok" if request.app.state.documents.ping() else "error"
    return HealthResponse(version=_VERSION, components={"app": "ok", "database": database})
