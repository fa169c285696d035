"""FastAPI application factory."""

from fastapi import FastAPI

from musicsync.api.exception_handlers import register_exception_handlers
from musicsync.api.routers import api_router
from musicsync.infrastructure.lifecycle import lifespan


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="musicsync",
        description="Merges a local music library and Spotify into one deduplicated library",
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
