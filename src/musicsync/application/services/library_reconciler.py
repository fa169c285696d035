"""Library Reconciler.

Hey future me - THIS IS THE UPSERT CORE! Every provider maps its records to canonical
values and hands them here, one at a time, together with two in-memory indexes:

    source_index: {source_id: SourceTrackModel}   (this provider's attachments)
    track_index:  TrackIndex  {metadata_key: TrackModel}  (all canonical tracks)

Identity resolution for one incoming track:
    1. source_id already known        -> update SourceTrack in place, merge into its Track
    2. metadata key matches a Track   -> attach a NEW SourceTrack to it, merge
    3. nothing matches                -> create Track + SourceTrack, register both

Both indexes are mutated as we go, so item 500 of a run sees what item 3 inserted.
They are built once per phase and never re-queried mid-run.

Merge policy ("preserve existing, prefer authoritative artwork"):
    - never blank a non-empty field; only non-empty incoming values overwrite
    - "Unknown ..." placeholders never overwrite a real title/artist/album
    - an identity rename that would collide with ANOTHER track's key is skipped
    - primary-provider artwork is kept against other providers
    - added_at keeps the earliest value ever seen
    - ISRC is only filled in when empty
    - is_explicit only ever turns on

Playlists and albums share one keyed upsert (_upsert_keyed): look up by source_id,
update in place or create + insert + register.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, TypeVar

from musicsync.domain.dtos import CanonicalAlbum, CanonicalPlaylist, CanonicalTrack
from musicsync.domain.entities import Source
from musicsync.domain.ports import ILibraryStore
from musicsync.domain.value_objects import (
    earliest,
    ensure_utc,
    is_placeholder,
    normalize_isrc,
    track_metadata_key,
)
from musicsync.infrastructure.persistence.models import (
    AlbumModel,
    PlaylistModel,
    PlaylistTrackModel,
    SourceTrackModel,
    TrackModel,
    utc_now,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


def _same(old: Any, new: Any) -> bool:
    # SQLite returns naive datetimes; everything we store is UTC
    if isinstance(old, datetime) and isinstance(new, datetime):
        return ensure_utc(old) == ensure_utc(new)
    return bool(old == new)


def _assign(entity: Any, field: str, value: Any) -> bool:
    """Set an attribute only if the value differs. Returns True if it changed."""
    if _same(getattr(entity, field), value):
        return False
    setattr(entity, field, value)
    return True


# Yo, TrackIndex loads LAZILY: a run where every item hits the source_index (the common
# "nothing changed" re-sync) never pays for loading every Track in the library.
class TrackIndex:
    """Canonical tracks keyed by normalized (title, artist, album)."""

    def __init__(self, store: ILibraryStore) -> None:
        self._store = store
        self._by_key: dict[str, TrackModel] | None = None

    @property
    def is_loaded(self) -> bool:
        return self._by_key is not None

    async def _index(self) -> dict[str, TrackModel]:
        if self._by_key is None:
            tracks = await self._store.fetch(TrackModel)
            self._by_key = {track.metadata_key: track for track in tracks}
        return self._by_key

    async def lookup(self, key: str) -> TrackModel | None:
        return (await self._index()).get(key)

    async def register(self, track: TrackModel) -> None:
        (await self._index())[track.metadata_key] = track

    async def rekey(self, track: TrackModel, old_key: str) -> None:
        index = await self._index()
        if index.get(old_key) is track:
            del index[old_key]
        index[track.metadata_key] = track


@dataclass
class ReconcileCounters:
    """What one reconciler instance did."""

    tracks_created: int = 0
    tracks_updated: int = 0
    source_tracks_created: int = 0
    source_tracks_updated: int = 0


class LibraryReconciler:
    """Upserts canonical values into the library store."""

    def __init__(
        self,
        store: ILibraryStore,
        primary_source: Source = Source.LOCAL_LIBRARY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._primary_source = primary_source
        self._clock = clock
        self.counters = ReconcileCounters()

    # =========================================================================
    # TRACKS
    # =========================================================================

    async def upsert_track(
        self,
        canonical: CanonicalTrack,
        source_index: dict[str, SourceTrackModel],
        track_index: TrackIndex,
    ) -> SourceTrackModel:
        """Reconcile one canonical track.

        Args:
            canonical: Cleaned provider record
            source_index: This provider's SourceTracks by source_id (mutated)
            track_index: Canonical tracks by metadata key (mutated)

        Returns:
            The SourceTrack now representing this provider record
        """
        now = self._clock()

        existing = source_index.get(canonical.source_id)
        if existing is not None:
            if self._update_source_track(existing, canonical):
                self.counters.source_tracks_updated += 1
            existing.last_synced_at = now
            track = existing.track
            if track is not None:
                if await self._merge_into_track(track, canonical, track_index):
                    self.counters.tracks_updated += 1
                track.last_synced_at = now
            return existing

        key = track_metadata_key(canonical.title, canonical.artist_name, canonical.album_name)
        track = await track_index.lookup(key)
        if track is not None:
            await self._merge_into_track(track, canonical, track_index)
            track.last_synced_at = now
            self.counters.tracks_updated += 1
        else:
            track = self._new_track(canonical, key, now)
            self._store.insert(track)
            await track_index.register(track)
            self.counters.tracks_created += 1

        source_track = self._new_source_track(canonical, track, now)
        self._store.insert(source_track)
        source_index[canonical.source_id] = source_track
        self.counters.source_tracks_created += 1
        return source_track

    def _new_track(self, c: CanonicalTrack, key: str, now: datetime) -> TrackModel:
        return TrackModel(
            title=c.title,
            artist_name=c.artist_name,
            album_name=c.album_name,
            metadata_key=key,
            album_artist_name=c.album_artist_name,
            artwork_url=c.artwork_url,
            artwork_source=c.source if c.artwork_url else None,
            duration_ms=c.duration_ms,
            genre_names=list(c.genre_names),
            release_date=c.release_date,
            is_explicit=c.is_explicit,
            isrc=normalize_isrc(c.isrc) or None,
            disc_number=c.disc_number,
            track_number=c.track_number,
            composer_name=c.composer_name,
            added_at=c.added_at,
            last_synced_at=now,
        )

    def _new_source_track(
        self, c: CanonicalTrack, track: TrackModel, now: datetime
    ) -> SourceTrackModel:
        return SourceTrackModel(
            source=c.source,
            source_id=c.source_id,
            track=track,
            added_at=c.added_at,
            play_count=c.play_count,
            last_played_at=c.last_played_at,
            rating=c.rating,
            popularity=c.popularity,
            preview_url=c.preview_url,
            artwork_url=c.artwork_url,
            last_synced_at=now,
        )

    # Same source_id seen again: the provider's own fields are simply overwritten (last write
    # wins). These are provider stats, there is nothing to merge.
    def _update_source_track(self, source_track: SourceTrackModel, c: CanonicalTrack) -> bool:
        changed = False
        for field, value in (
            ("added_at", c.added_at),
            ("play_count", c.play_count),
            ("last_played_at", c.last_played_at),
            ("rating", c.rating),
            ("popularity", c.popularity),
            ("preview_url", c.preview_url),
            ("artwork_url", c.artwork_url),
        ):
            changed |= _assign(source_track, field, value)
        return changed

    async def _merge_into_track(
        self, track: TrackModel, c: CanonicalTrack, track_index: TrackIndex
    ) -> bool:
        """Apply the merge policy. Returns True if any Track field changed."""
        changed = await self._merge_identity(track, c, track_index)

        if c.duration_ms > 0:
            changed |= _assign(track, "duration_ms", c.duration_ms)

        optional: tuple[tuple[str, str | int | date | None], ...] = (
            ("album_artist_name", c.album_artist_name),
            ("composer_name", c.composer_name),
            ("release_date", c.release_date),
            ("disc_number", c.disc_number),
            ("track_number", c.track_number),
        )
        for field, value in optional:
            if value is not None and value != "":
                changed |= _assign(track, field, value)

        if c.genre_names:
            changed |= _assign(track, "genre_names", list(c.genre_names))

        # Explicit is sticky: providers disagree often (clean edits, missing ratings), and taking
        # each provider's value would flip the flag on every sync. Only True is ever merged in.
        if c.is_explicit:
            changed |= _assign(track, "is_explicit", True)

        isrc = normalize_isrc(c.isrc)
        if isrc and not normalize_isrc(track.isrc):
            changed |= _assign(track, "isrc", isrc)

        changed |= self._merge_artwork(track, c)

        added_at = earliest(track.added_at, c.added_at)
        if added_at is not None:
            changed |= _assign(track, "added_at", added_at)

        return changed

    async def _merge_identity(
        self, track: TrackModel, c: CanonicalTrack, track_index: TrackIndex
    ) -> bool:
        title = track.title if is_placeholder(c.title) else c.title
        artist_name = track.artist_name if is_placeholder(c.artist_name) else c.artist_name
        album_name = track.album_name if is_placeholder(c.album_name) else c.album_name

        new_key = track_metadata_key(title, artist_name, album_name)
        if new_key == track.metadata_key:
            # Same identity; keep the stored spelling so providers don't flip-flop on case
            return False

        owner = await track_index.lookup(new_key)
        if owner is not None and owner is not track:
            logger.debug(
                f"Skipping rename of track {track.id} to '{title}' by '{artist_name}': "
                f"identity already taken by track {owner.id}"
            )
            return False

        old_key = track.metadata_key
        track.title = title
        track.artist_name = artist_name
        track.album_name = album_name
        track.metadata_key = new_key
        await track_index.rekey(track, old_key)
        return True

    # Hey future me - artwork_source is what makes this exact. Without it we'd have to guess
    # "does this artwork come from the primary provider?" from the attached SourceTracks, which
    # is wrong as soon as the primary record simply had no artwork.
    def _merge_artwork(self, track: TrackModel, c: CanonicalTrack) -> bool:
        if not c.artwork_url:
            return False
        keep_primary = (
            track.artwork_url is not None
            and track.artwork_source is self._primary_source
            and c.source is not self._primary_source
        )
        if keep_primary:
            return False
        changed = _assign(track, "artwork_url", c.artwork_url)
        changed |= _assign(track, "artwork_source", c.source)
        return changed

    # =========================================================================
    # PLAYLISTS & ALBUMS
    # =========================================================================

    def _upsert_keyed(
        self,
        index: dict[str, ModelT],
        source_id: str,
        create: Callable[[], ModelT],
        fields: dict[str, Any],
    ) -> ModelT:
        """Update-in-place or create-insert-register, keyed by source_id."""
        now = self._clock()
        entity = index.get(source_id)
        if entity is None:
            entity = create()
            for field, value in fields.items():
                setattr(entity, field, value)
            entity.last_synced_at = now  # type: ignore[attr-defined]
            self._store.insert(entity)
            index[source_id] = entity
            return entity

        for field, value in fields.items():
            _assign(entity, field, value)
        entity.last_synced_at = now  # type: ignore[attr-defined]
        return entity

    def upsert_playlist(
        self, canonical: CanonicalPlaylist, index: dict[str, PlaylistModel]
    ) -> PlaylistModel:
        """Reconcile a playlist header. Entries are replaced separately."""
        return self._upsert_keyed(
            index,
            canonical.source_id,
            # entries=[] marks the collection as loaded, so an autoflush later in the run never
            # leaves it unloaded on a now-persistent playlist
            lambda: PlaylistModel(
                source=canonical.source, source_id=canonical.source_id, entries=[]
            ),
            {
                "name": canonical.name,
                "description": canonical.description,
                "artwork_url": canonical.artwork_url,
                "owner_name": canonical.owner_name,
                "is_public": canonical.is_public,
            },
        )

    def upsert_album(self, canonical: CanonicalAlbum, index: dict[str, AlbumModel]) -> AlbumModel:
        """Reconcile a saved album."""
        return self._upsert_keyed(
            index,
            canonical.source_id,
            lambda: AlbumModel(source=canonical.source, source_id=canonical.source_id),
            {
                "name": canonical.name,
                "artist_name": canonical.artist_name,
                "artwork_url": canonical.artwork_url,
                "release_date": canonical.release_date,
                "track_count": canonical.track_count,
                "genre_names": list(canonical.genre_names),
            },
        )

    # Hey future me - NEVER touch playlist.entries synchronously here! Resolving the entries just
    # upserted new Tracks, and any query in between autoflushes. A playlist flushed that way whose
    # entries are not loaded would lazy-load on .clear() outside the greenlet (MissingGreenlet).
    # awaitable_attrs does that load (and its autoflush) on the async side.
    async def replace_playlist_entries(
        self,
        playlist: PlaylistModel,
        entries: list[tuple[TrackModel, datetime | None]],
    ) -> None:
        """Delete every entry of a playlist and insert the given ones at positions 0..n-1."""
        current = await playlist.awaitable_attrs.entries
        # delete-orphan cascade deletes flushed entries and expunges pending ones
        current.clear()

        for position, (track, added_at) in enumerate(entries):
            entry = PlaylistTrackModel(
                playlist=playlist, track=track, position=position, added_at=added_at
            )
            self._store.insert(entry)
        _assign(playlist, "track_count", len(entries))
