# Hey future me - this router is the UI's window into the sync engine!
#
# Endpoints:
# - GET    /api/sync/status           -> statuses, last full sync, first error
# - POST   /api/sync?force=false      -> sync_all (stale providers only unless forced)
# - POST   /api/sync/errors/dismiss   -> every error status back to idle
# - POST   /api/sync/{source}         -> sync one provider now
# - POST   /api/sync/{source}/reset   -> that provider's status back to idle
# - DELETE /api/sync/{source}         -> disconnect: drop everything the provider contributed
#
# The POSTs AWAIT the run. If another run is in flight the request waits in the queue behind it;
# a client that gives up does not cancel anything (the queue shields the run).
"""Library sync endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from musicsync.api.dependencies import get_orchestrator
from musicsync.api.schemas.sync import (
    DisconnectResponse,
    SourceStatusResponse,
    SyncStatusResponse,
)
from musicsync.application.services.library_sync_orchestrator import LibrarySyncOrchestrator
from musicsync.domain.entities import Source

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_response(orchestrator: LibrarySyncOrchestrator) -> SyncStatusResponse:
    return SyncStatusResponse(
        is_syncing=orchestrator.is_syncing,
        last_synced_at=orchestrator.last_synced_at,
        first_error_message=orchestrator.first_error_message,
        sources=[
            SourceStatusResponse.from_status(source, status)
            for source, status in orchestrator.statuses.items()
        ],
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> SyncStatusResponse:
    """Get sync status of every provider."""
    return _status_response(orchestrator)


@router.post("", response_model=SyncStatusResponse)
async def sync_all(
    force: bool = Query(False, description="Sync every provider even if recently synced"),
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> SyncStatusResponse:
    """Sync all connected providers, then deduplicate."""
    logger.info(f"Sync requested via API (force={force})")
    await orchestrator.sync_all(force=force)
    return _status_response(orchestrator)


@router.post("/errors/dismiss", response_model=SyncStatusResponse)
async def dismiss_errors(
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> SyncStatusResponse:
    """Dismiss every provider error."""
    orchestrator.dismiss_errors()
    return _status_response(orchestrator)


@router.post("/{source}", response_model=SourceStatusResponse)
async def sync_source(
    source: Source,
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> SourceStatusResponse:
    """Sync one provider now, regardless of when it last synced."""
    status = await orchestrator.sync_source(source)
    return SourceStatusResponse.from_status(source, status)


@router.post("/{source}/reset", response_model=SourceStatusResponse)
async def reset_status(
    source: Source,
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> SourceStatusResponse:
    """Reset one provider's status to idle."""
    orchestrator.reset_status(source)
    return SourceStatusResponse.from_status(source, orchestrator.status(source))


@router.delete("/{source}", response_model=DisconnectResponse)
async def disconnect_source(
    source: Source,
    orchestrator: LibrarySyncOrchestrator = Depends(get_orchestrator),
) -> DisconnectResponse:
    """Disconnect a provider and delete the library data it contributed."""
    result = await orchestrator.disconnect(source)
    return DisconnectResponse.from_result(source, result)
