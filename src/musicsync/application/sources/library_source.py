"""Provider adapter contract and shared adapter plumbing."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

from musicsync.application.services.library_reconciler import LibraryReconciler, TrackIndex
from musicsync.domain.dtos import CanonicalTrack
from musicsync.domain.entities import Source, SyncSummary
from musicsync.domain.ports import ILibraryStore
from musicsync.infrastructure.persistence.models import (
    AlbumModel,
    PlaylistModel,
    SourceTrackModel,
    TrackModel,
)

logger = logging.getLogger(__name__)

StoreScope = Callable[[], AbstractAsyncContextManager[ILibraryStore]]


# Hey future me - this is what the orchestrator talks to. One implementation per provider.
# Each phase method opens its OWN store (own session), builds its indexes once, commits once
# at the end and raises a SyncError subclass on failure. Adapters never touch sync status;
# that belongs to the orchestrator.
@runtime_checkable
class LibrarySyncSource(Protocol):
    """One provider's sync phases."""

    source: Source
    # False means a failed playlist phase is logged and the albums phase still counts toward success
    fatal_playlist_errors: bool

    async def is_connected(self) -> bool:
        """Whether the provider is authorized/connected and can be synced."""
        ...

    async def sync_tracks(self) -> SyncSummary:
        """Sync the provider's saved tracks."""
        ...

    async def sync_playlists(self) -> None:
        """Sync the provider's playlists and their entries."""
        ...

    async def sync_albums(self) -> None:
        """Sync the provider's saved albums."""
        ...


class BaseLibrarySyncSource:
    """Index building, playlist-entry resolution and event-loop yielding shared by adapters."""

    source: Source
    fatal_playlist_errors = True

    def __init__(
        self,
        store_scope: StoreScope,
        primary_source: Source = Source.LOCAL_LIBRARY,
        yield_every: int = 100,
    ) -> None:
        self._store_scope = store_scope
        self._primary_source = primary_source
        self._yield_every = max(1, yield_every)

    def _reconciler(self, store: ILibraryStore) -> LibraryReconciler:
        return LibraryReconciler(store, primary_source=self._primary_source)

    async def _source_track_index(self, store: ILibraryStore) -> dict[str, SourceTrackModel]:
        rows = await store.fetch(SourceTrackModel, SourceTrackModel.source == self.source)
        return {row.source_id: row for row in rows}

    async def _playlist_index(self, store: ILibraryStore) -> dict[str, PlaylistModel]:
        rows = await store.fetch(PlaylistModel, PlaylistModel.source == self.source)
        return {row.source_id: row for row in rows}

    async def _album_index(self, store: ILibraryStore) -> dict[str, AlbumModel]:
        rows = await store.fetch(AlbumModel, AlbumModel.source == self.source)
        return {row.source_id: row for row in rows}

    async def _checkpoint(self, processed: int) -> None:
        """Yield to the event loop every ``yield_every`` items."""
        if processed % self._yield_every == 0:
            await asyncio.sleep(0)

    # Playlist entries: a song we already know resolves to its Track as-is (no update - the
    # track phase owns those). Unknown songs go through the normal upsert so playlist-only songs
    # still land in the library. A SourceTrack without a Track yields None and the entry is skipped.
    async def _resolve_entry_track(
        self,
        canonical: CanonicalTrack,
        reconciler: LibraryReconciler,
        source_index: dict[str, SourceTrackModel],
        track_index: TrackIndex,
    ) -> TrackModel | None:
        known = source_index.get(canonical.source_id)
        if known is not None:
            return known.track
        source_track = await reconciler.upsert_track(canonical, source_index, track_index)
        return source_track.track

    def _summary(self, summary: SyncSummary, reconciler: LibraryReconciler) -> SyncSummary:
        counters = reconciler.counters
        summary.tracks_created = counters.tracks_created
        summary.tracks_updated = counters.tracks_updated
        summary.source_tracks_created = counters.source_tracks_created
        summary.source_tracks_updated = counters.source_tracks_updated
        return summary
