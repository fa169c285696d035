"""Infrastructure persistence layer."""

from .database import Database
from .library_store import SqlAlchemyLibraryStore
from .models import (
    AlbumModel,
    Base,
    PlaylistModel,
    PlaylistTrackModel,
    SourceTrackModel,
    SyncStateModel,
    TrackModel,
)
from .sync_state_repository import SqlAlchemySyncStateRepository

__all__ = [
    "AlbumModel",
    "Base",
    "Database",
    "PlaylistModel",
    "PlaylistTrackModel",
    "SourceTrackModel",
    "SqlAlchemyLibraryStore",
    "SqlAlchemySyncStateRepository",
    "SyncStateModel",
    "TrackModel",
]
