"""FastAPI server for the Linked Profiles service.

Run with:
    uv run uvicorn linked_profiles.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response

from linked_profiles.api.routes import router
from linked_profiles.config import DISCOVERY_STRATEGY, SERVER_HOST, SERVER_PORT, SERVICE_NAME
from linked_profiles.services.lookup import create_lookup_service

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Open one HTTP connection pool for Meevo and build the lookup
    service around it; close the pool on shutdown."""
    http = httpx.AsyncClient()
    application.state.lookup_service = create_lookup_service(http)
    logger.info("Lookup service ready (discovery strategy: %s)", DISCOVERY_STRATEGY)
    try:
        yield
    finally:
        application.state.lookup_service = None
        await http.aclose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Linked Profiles",
    description=(
        "Finds a caller's Meevo account and the minors and guests "
        "linked to it, for voice-agent booking."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request for log correlation and echo
    it back in ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": SERVICE_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting %s on %s:%d", SERVICE_NAME, SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "linked_profiles.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
    )
