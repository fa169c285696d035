"""Domain entities."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# Hey future me, Source is the CLOSED set of providers we merge. The string value is what lands in
# the DB (source column on source_tracks/playlists/albums) - never rename a value without a
# migration! Code compares Source members, only the persistence layer ever sees the raw strings.
# LOCAL_LIBRARY is the on-device catalog and by default the primary provider: its artwork wins and
# its tracks survive dedup merges.
class Source(str, Enum):
    """Provider a library record came from."""

    LOCAL_LIBRARY = "local_library"
    SPOTIFY = "spotify"

    @property
    def display_name(self) -> str:
        """Human-readable provider name for logs and status messages."""
        return {
            Source.LOCAL_LIBRARY: "Local Library",
            Source.SPOTIFY: "Spotify",
        }[self]


class SyncState(str, Enum):
    """Per-provider sync state machine.

    idle -> syncing -> completed | error; completed/error -> syncing on the next run;
    error -> idle when dismissed.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


# Yo, SourceSyncStatus is an immutable VALUE - the orchestrator swaps whole statuses instead of
# poking fields, so a reader never sees "completed" with a missing timestamp. Build them with the
# classmethods, not the constructor.
@dataclass(frozen=True)
class SourceSyncStatus:
    """Status of one provider as seen by the UI."""

    state: SyncState = SyncState.IDLE
    last_synced_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def idle(cls) -> "SourceSyncStatus":
        return cls(SyncState.IDLE)

    @classmethod
    def syncing(cls) -> "SourceSyncStatus":
        return cls(SyncState.SYNCING)

    @classmethod
    def completed(cls, last_synced_at: datetime) -> "SourceSyncStatus":
        return cls(SyncState.COMPLETED, last_synced_at=last_synced_at)

    @classmethod
    def error(cls, message: str) -> "SourceSyncStatus":
        return cls(SyncState.ERROR, error_message=message)

    @property
    def is_syncing(self) -> bool:
        return self.state is SyncState.SYNCING

    @property
    def is_error(self) -> bool:
        return self.state is SyncState.ERROR


@dataclass
class SyncSummary:
    """Counters for one track sync run."""

    source: Source
    processed: int = 0
    total: int | None = None
    tracks_created: int = 0
    tracks_updated: int = 0
    source_tracks_created: int = 0
    source_tracks_updated: int = 0
    skipped_unchanged: bool = False


__all__ = [
    "Source",
    "SourceSyncStatus",
    "SyncState",
    "SyncSummary",
]
