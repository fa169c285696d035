"""FastAPI dependencies."""

from typing import cast

from fastapi import HTTPException, Request

from musicsync.application.services.library_sync_orchestrator import LibrarySyncOrchestrator


# Listen up, the orchestrator is an app-wide singleton living in app.state - it owns the run queue,
# so every request MUST get the same instance or the single-flight guarantee is gone. The lifespan
# puts it there at startup; a 503 here means startup failed or hasn't finished.
def get_orchestrator(request: Request) -> LibrarySyncOrchestrator:
    """Get the sync orchestrator from app state.

    Raises:
        HTTPException: If the orchestrator is not initialized
    """
    if not hasattr(request.app.state, "orchestrator"):
        raise HTTPException(
            status_code=503,
            detail="Sync orchestrator not initialized",
        )
    return cast(LibrarySyncOrchestrator, request.app.state.orchestrator)
