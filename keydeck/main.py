"""KeyDeck FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to keydeck/health.py
  - /        route  — service discovery root
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()             → app.state.config
  2. DashboardSession.open()   → app.state.session
                                 (create_key_store() + initial controller.load())
  3. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close the key store

Uvicorn hardened defaults (see keydeck/run.py):
  uvicorn keydeck.main:app \\
    --host 127.0.0.1 \\
    --port 4343 \\
    --limit-concurrency 100 \\
    --backlog 50 \\
    --timeout-keep-alive 5
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from keydeck.config import Config, load_config
from keydeck.dashboard.api import router as dashboard_router
from keydeck.dashboard.limiter import limiter
from keydeck.dashboard.middleware import DashboardLocalhostMiddleware, RequestIdMiddleware
from keydeck.health import router as health_router
from keydeck.session import DashboardSession
from keydeck.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Root Endpoint ────────────────────────────────────────────────────────────

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root() -> dict[str, str]:
    """Service identity / discovery."""
    return {
        "service": "KeyDeck",
        "tagline": "API key management dashboard",
        "health": "/health",
        "keys": "/dashboard/api/keys",
        "validate": "/dashboard/api/validate",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    load_config() raises SystemExit on a bad config or missing store
    credentials, so the process exits before ready=True is ever set. A store
    that is reachable-but-failing does not block startup: the controller
    records the failure and /health reports "degraded".
    """
    logger.info("keydeck_starting")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    config: Config = load_config()
    app.state.config = config
    logger.info(
        "config_loaded",
        store_backend=config.store.backend,
        store_schema=config.store.schema,
        table=config.store.table,
    )

    # ── Step 2: Key store + controller + initial load ─────────────────────────
    session = await DashboardSession.open(config)
    app.state.session = session

    # ── Step 3: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "keydeck_ready",
        key_set=session.controller.state,
        key_count=len(session.controller.records),
    )

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("keydeck_shutting_down")
    app.state.ready = False
    await session.close()
    logger.info("keydeck_shutdown_complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the KeyDeck FastAPI application.

    Call this directly in tests to get an isolated app instance; set
    ``app.state.session`` and ``app.state.ready`` by hand to skip the lifespan.
    """
    # Docs expose the full API schema; only served with DEBUG=true
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="KeyDeck",
        description="Dashboard service for creating, editing, deleting and validating API keys",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health and the dashboard answer 503 until the lifespan flips this
    application.state.ready = False
    application.state.session = None

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:4343",
            "http://127.0.0.1:4343",
            "http://localhost:3000",   # Dev front end (if served separately)
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # NOTE: in Starlette the LAST-added middleware is OUTERMOST (runs first).
    application.add_middleware(DashboardLocalhostMiddleware)
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(RequestIdMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(dashboard_router, prefix="/dashboard/api")

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
