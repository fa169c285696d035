"""Application lifecycle management for startup and shutdown tasks.

This module holds the FastAPI lifespan context manager that wires the sync engine:
database, provider integrations, the provider adapters and the orchestrator.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from musicsync.application.services.library_sync_orchestrator import LibrarySyncOrchestrator
from musicsync.application.sources.local_library_source import LocalLibrarySyncSource
from musicsync.application.sources.spotify_source import SpotifyLibrarySyncSource
from musicsync.config import Settings, get_settings
from musicsync.domain.entities import Source
from musicsync.infrastructure.integrations import (
    FileSystemLibrarySource,
    SpotifyClient,
    SpotifyTokenProvider,
)
from musicsync.infrastructure.observability import configure_logging
from musicsync.infrastructure.persistence import Database, SqlAlchemySyncStateRepository

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Settings,
    db: Database,
    spotify_client: SpotifyClient,
    token_provider: SpotifyTokenProvider,
    local_library: FileSystemLibrarySource,
) -> LibrarySyncOrchestrator:
    """Wire both provider adapters into an orchestrator."""
    primary = Source(settings.sync.primary_source)
    sources = [
        LocalLibrarySyncSource(
            local_library,
            db.store_scope,
            first_page_timeout=settings.local_library.first_page_timeout,
            primary_source=primary,
            yield_every=settings.sync.yield_every,
        ),
        SpotifyLibrarySyncSource(
            spotify_client,
            token_provider,
            db.store_scope,
            page_limit=settings.spotify.page_limit,
            primary_source=primary,
            yield_every=settings.sync.yield_every,
        ),
    ]
    return LibrarySyncOrchestrator(
        sources,
        db.store_scope,
        SqlAlchemySyncStateRepository(db),
        staleness_threshold_seconds=settings.sync.staleness_threshold_seconds,
        primary_source=primary,
    )


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# The try/finally makes sure the DB engine and the Spotify HTTP client get closed even when
# startup blows up halfway. Routes reach the orchestrator via app.state (see api/dependencies.py).
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()

    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db: Database | None = None
    spotify_client: SpotifyClient | None = None
    try:
        db = Database(settings)
        await db.create_tables()
        app.state.db = db
        logger.info("Database initialized: %s", settings.database.url)

        spotify_client = SpotifyClient(settings.spotify)
        token_provider = SpotifyTokenProvider(settings.spotify)
        local_library = FileSystemLibrarySource(settings.local_library)
        app.state.spotify_tokens = token_provider

        orchestrator = build_orchestrator(
            settings, db, spotify_client, token_provider, local_library
        )
        await orchestrator.load_state()
        app.state.orchestrator = orchestrator
        logger.info(
            "Sync orchestrator ready (providers: %s)",
            ", ".join(source.value for source in orchestrator.sources),
        )

        yield
    finally:
        logger.info("Shutting down application")
        running = getattr(app.state, "orchestrator", None)
        if running is not None:
            # Let a running sync reach its commit instead of cutting the session
            await running.join()
        if spotify_client is not None:
            await spotify_client.close()
        if db is not None:
            await db.close()
