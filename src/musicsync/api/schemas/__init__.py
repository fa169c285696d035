"""API request/response schemas."""

from musicsync.api.schemas.sync import (
    DisconnectResponse,
    SourceStatusResponse,
    SyncStatusResponse,
)

__all__ = [
    "DisconnectResponse",
    "SourceStatusResponse",
    "SyncStatusResponse",
]
