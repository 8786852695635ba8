from __future__ import annotations
"""genvault — FastAPI application entry point.

Mounts all API routes, configures CORS, owns the shared provider HTTP client
and initializes the database on startup.
"""

import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from genvault.api.router import api_router
from genvault.config import get_settings
from genvault.database import close_db, init_db
from genvault.errors import register_exception_handlers

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB and HTTP client on startup, close on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("Blob backend: %s, provider configured: %s",
                settings.BLOB_BACKEND, bool(settings.SORA_ENDPOINT and settings.SORA_API_KEY))

    # Ensure media_volume directory exists
    if settings.BLOB_BACKEND == "local":
        os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)

    if settings.CREATE_TABLES_ON_STARTUP:
        await init_db()
    else:
        logger.info("Skipping init_db (tables assumed to exist)")

    app.state.http_client = httpx.AsyncClient(timeout=settings.SORA_TIMEOUT)

    yield

    await app.state.http_client.aclose()
    await close_db()
    logger.info("%s shut down", settings.APP_NAME)


app = FastAPI(
    title="genvault API",
    description="Video generation jobs, durable media migration and per-user history",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# CORS for the frontend dev server (configurable via CORS_ORIGINS env)
_cors_origins = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Mount API routes
app.include_router(api_router)

# Mount media static files (durable-absolute URLs of the local backend).
# Only container directories are exposed, not the store's .meta/.tmp areas.
if settings.BLOB_BACKEND == "local":
    for _container in settings.known_containers:
        _directory = os.path.join(settings.MEDIA_VOLUME, _container)
        os.makedirs(_directory, exist_ok=True)
        app.mount(f"/media/{_container}", StaticFiles(directory=_directory), name=f"media-{_container}")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": settings.APP_NAME,
        "status": "running",
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "blob_backend": settings.BLOB_BACKEND,
        "provider_configured": bool(settings.SORA_ENDPOINT and settings.SORA_API_KEY),
    }
