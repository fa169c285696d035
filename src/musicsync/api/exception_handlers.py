"""Custom exception handlers for FastAPI application.

Domain exceptions raised by the orchestrator reach the API as typed errors; these
handlers turn them into JSON responses with a fitting status code instead of a 500.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from musicsync.domain.exceptions import (
    StorageUnavailableError,
    SyncError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# Hey future me, handlers must be registered during app setup, BEFORE the first request.
# Order of specificity is handled by FastAPI (most specific exception class wins), so
# StorageUnavailableError gets its 503 even though it is also a SyncError.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for domain exceptions."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Unknown or unconfigured provider -> 404."""
        logger.info(
            "Validation error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": exc.message},
        )

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(
        request: Request, exc: StorageUnavailableError
    ) -> JSONResponse:
        """Database busy or broken -> 503."""
        logger.error(
            "Storage unavailable at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.message},
        )

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
        """Any other sync failure that escaped the orchestrator -> 502."""
        logger.warning(
            "Sync error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.message},
        )
