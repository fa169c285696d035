"""API router initialization."""

# Hey future me, this is the API router aggregator. main.py mounts it under /api, so the sync
# router's endpoints end up at /api/sync/...

from fastapi import APIRouter

from musicsync.api.routers import sync

api_router = APIRouter()

api_router.include_router(sync.router, prefix="/sync", tags=["Sync"])

__all__ = ["api_router"]
