from __future__ import annotations
"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from genvault.api.content import router as content_router
from genvault.api.history import router as history_router
from genvault.api.jobs import router as jobs_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(jobs_router, prefix="/jobs", tags=["Jobs"])
api_router.include_router(history_router, prefix="/history", tags=["History"])
api_router.include_router(content_router, prefix="/content", tags=["Content"])
