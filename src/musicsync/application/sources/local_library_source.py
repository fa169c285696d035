"""Sync adapter for the on-device music library (the primary provider)."""

import logging

from musicsync.application.services.library_reconciler import TrackIndex
from musicsync.application.sources.library_source import BaseLibrarySyncSource, StoreScope
from musicsync.application.workers.run_queue import race_with_timeout
from musicsync.domain.dtos import (
    CanonicalAlbum,
    CanonicalPlaylist,
    CanonicalTrack,
    LocalAlbum,
    LocalPlaylist,
    LocalSong,
)
from musicsync.domain.entities import Source, SyncSummary
from musicsync.domain.ports import ILocalLibrarySource
from musicsync.domain.value_objects import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    UNKNOWN_TRACK,
    best_artwork_url,
    clamp_duration_ms,
    clean_optional,
    clean_text,
)
from musicsync.infrastructure.observability.logger_template import log_operation

logger = logging.getLogger(__name__)


def map_song(song: LocalSong) -> CanonicalTrack:
    """Map a native library song to a canonical track."""
    duration_ms = (
        clamp_duration_ms(song.duration_seconds * 1000)
        if song.duration_seconds is not None
        else 0
    )
    return CanonicalTrack(
        source=Source.LOCAL_LIBRARY,
        source_id=song.id,
        title=clean_text(song.title, UNKNOWN_TRACK),
        artist_name=clean_text(song.artist_name, UNKNOWN_ARTIST),
        album_name=clean_text(song.album_title, UNKNOWN_ALBUM),
        duration_ms=duration_ms,
        album_artist_name=clean_optional(song.album_artist_name),
        artwork_url=best_artwork_url(song.artwork),
        genre_names=[g.strip() for g in song.genre_names if g and g.strip()],
        release_date=song.release_date,
        is_explicit=(song.content_rating or "").lower() == "explicit",
        isrc=clean_optional(song.isrc),
        disc_number=song.disc_number,
        track_number=song.track_number,
        composer_name=clean_optional(song.composer_name),
        added_at=song.library_added_date,
        play_count=song.play_count,
        last_played_at=song.last_played_date,
        rating=song.rating,
    )


def map_playlist(playlist: LocalPlaylist) -> CanonicalPlaylist:
    return CanonicalPlaylist(
        source=Source.LOCAL_LIBRARY,
        source_id=playlist.id,
        name=clean_text(playlist.name, "Untitled Playlist"),
        description=clean_optional(playlist.description),
        artwork_url=best_artwork_url(playlist.artwork),
        owner_name=clean_optional(playlist.curator_name),
        is_public=playlist.is_public,
    )


def map_album(album: LocalAlbum) -> CanonicalAlbum:
    return CanonicalAlbum(
        source=Source.LOCAL_LIBRARY,
        source_id=album.id,
        name=clean_text(album.title, UNKNOWN_ALBUM),
        artist_name=clean_text(album.artist_name, UNKNOWN_ARTIST),
        artwork_url=best_artwork_url(album.artwork),
        release_date=album.release_date,
        track_count=max(0, album.track_count),
        genre_names=[g.strip() for g in album.genre_names if g and g.strip()],
    )


class LocalLibrarySyncSource(BaseLibrarySyncSource):
    """Pages the local catalog into the library store."""

    source = Source.LOCAL_LIBRARY

    def __init__(
        self,
        library: ILocalLibrarySource,
        store_scope: StoreScope,
        first_page_timeout: float = 60.0,
        primary_source: Source = Source.LOCAL_LIBRARY,
        yield_every: int = 100,
    ) -> None:
        super().__init__(store_scope, primary_source=primary_source, yield_every=yield_every)
        self._library = library
        self._first_page_timeout = first_page_timeout

    async def is_connected(self) -> bool:
        return await self._library.is_authorized()

    # Hey future me - the FIRST page races a timer! On a cold start the catalog read can hang
    # (permission prompt never answered, huge library being indexed). After first_page_timeout the
    # timer wins, the page fetch gets cancelled and the phase fails with SyncTimeoutError. Later
    # pages are not raced - once the first one arrived the catalog is clearly responsive.
    async def sync_tracks(self) -> SyncSummary:
        summary = SyncSummary(source=self.source)
        async with log_operation(logger, "sync.tracks", source=self.source.value):
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                source_index = await self._source_track_index(store)
                track_index = TrackIndex(store)

                page = await race_with_timeout(
                    self._library.songs(None), self._first_page_timeout
                )
                summary.total = page.total
                while True:
                    for song in page.items:
                        await reconciler.upsert_track(map_song(song), source_index, track_index)
                        summary.processed += 1
                        await self._checkpoint(summary.processed)
                    if not page.has_next:
                        break
                    page = await self._library.songs(page.next_cursor)

                await store.save()
        logger.info(
            f"Local library: synced {summary.processed} songs "
            f"({reconciler.counters.tracks_created} new tracks)"
        )
        return self._summary(summary, reconciler)

    async def sync_playlists(self) -> None:
        async with log_operation(logger, "sync.playlists", source=self.source.value):
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                source_index = await self._source_track_index(store)
                track_index = TrackIndex(store)
                playlist_index = await self._playlist_index(store)

                cursor: str | None = None
                processed = 0
                while True:
                    page = await self._library.playlists(cursor)
                    for native in page.items:
                        playlist = reconciler.upsert_playlist(map_playlist(native), playlist_index)
                        resolved = []
                        for entry in await self._library.playlist_entries(native.id):
                            # Non-song items (videos, missing files) keep no slot
                            if entry.song is None:
                                continue
                            track = await self._resolve_entry_track(
                                map_song(entry.song), reconciler, source_index, track_index
                            )
                            if track is not None:
                                resolved.append((track, entry.added_at))
                        await reconciler.replace_playlist_entries(playlist, resolved)
                        processed += 1
                        await self._checkpoint(processed)
                    if not page.has_next:
                        break
                    cursor = page.next_cursor

                await store.save()

    async def sync_albums(self) -> None:
        async with log_operation(logger, "sync.albums", source=self.source.value):
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                album_index = await self._album_index(store)

                cursor: str | None = None
                processed = 0
                while True:
                    page = await self._library.albums(cursor)
                    for native in page.items:
                        reconciler.upsert_album(map_album(native), album_index)
                        processed += 1
                        await self._checkpoint(processed)
                    if not page.has_next:
                        break
                    cursor = page.next_cursor

                await store.save()
