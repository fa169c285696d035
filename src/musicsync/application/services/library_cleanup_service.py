"""Removal of one provider's data when it is disconnected."""

import logging
from dataclasses import dataclass

from musicsync.domain.entities import Source
from musicsync.domain.ports import ILibraryStore
from musicsync.infrastructure.persistence.models import (
    AlbumModel,
    PlaylistModel,
    SourceTrackModel,
    TrackModel,
)

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """What a disconnect removed."""

    source_tracks_deleted: int = 0
    tracks_deleted: int = 0
    playlists_deleted: int = 0
    albums_deleted: int = 0


class LibraryCleanupService:
    """Deletes everything a provider contributed, then sweeps orphaned tracks."""

    def __init__(self, store: ILibraryStore) -> None:
        self._store = store

    # Hey future me - Tracks are SHARED. A track the local library also knows keeps living with its
    # other SourceTrack; only tracks left with zero SourceTracks get swept. Deleting a swept track
    # cascades to its entries in OTHER providers' playlists too - those playlists come back
    # complete on their own next sync.
    async def remove_source(self, source: Source) -> CleanupResult:
        result = CleanupResult()
        tracks = await self._store.fetch(TrackModel)
        source_tracks = await self._store.fetch(
            SourceTrackModel, SourceTrackModel.source == source
        )

        for source_track in source_tracks:
            track = source_track.track
            if track is not None:
                # delete-orphan takes care of the row once it leaves the collection
                track.source_tracks.remove(source_track)
            else:
                await self._store.delete(source_track)
            result.source_tracks_deleted += 1

        # First checkpoint: the stripped SourceTracks are gone before any Track delete cascades
        await self._store.save()

        for track in tracks:
            if not track.source_tracks:
                await self._store.delete(track)
                result.tracks_deleted += 1

        for playlist in await self._store.fetch(PlaylistModel, PlaylistModel.source == source):
            await self._store.delete(playlist)
            result.playlists_deleted += 1

        for album in await self._store.fetch(AlbumModel, AlbumModel.source == source):
            await self._store.delete(album)
            result.albums_deleted += 1

        await self._store.save()
        logger.info(
            f"Disconnected {source.display_name}: removed {result.source_tracks_deleted} "
            f"source tracks, {result.tracks_deleted} tracks, {result.playlists_deleted} playlists "
            f"and {result.albums_deleted} albums"
        )
        return result
