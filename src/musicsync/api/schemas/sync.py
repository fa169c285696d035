"""Sync status schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from musicsync.application.services.library_cleanup_service import CleanupResult
from musicsync.domain.entities import Source, SourceSyncStatus, SyncState


class SourceStatusResponse(BaseModel):
    """Sync status of one provider."""

    source: Source
    display_name: str
    state: SyncState
    last_synced_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_status(cls, source: Source, status: SourceSyncStatus) -> "SourceStatusResponse":
        return cls(
            source=source,
            display_name=source.display_name,
            state=status.state,
            last_synced_at=status.last_synced_at,
            error_message=status.error_message,
        )


class SyncStatusResponse(BaseModel):
    """Overall sync status as shown in the UI."""

    is_syncing: bool
    last_synced_at: datetime | None = Field(
        default=None, description="When the last full sync cycle finished"
    )
    first_error_message: str | None = None
    sources: list[SourceStatusResponse] = Field(default_factory=list)


class DisconnectResponse(BaseModel):
    """What disconnecting a provider removed."""

    source: Source
    source_tracks_deleted: int
    tracks_deleted: int
    playlists_deleted: int
    albums_deleted: int

    @classmethod
    def from_result(cls, source: Source, result: CleanupResult) -> "DisconnectResponse":
        return cls(
            source=source,
            source_tracks_deleted=result.source_tracks_deleted,
            tracks_deleted=result.tracks_deleted,
            playlists_deleted=result.playlists_deleted,
            albums_deleted=result.albums_deleted,
        )
