"""Tests for the SQLAlchemy library store and sync state repository."""

from datetime import UTC, datetime
from typing import Any

import pytest

from musicsync.domain.entities import Source
from musicsync.domain.exceptions import StorageUnavailableError
from musicsync.domain.value_objects import track_metadata_key
from musicsync.infrastructure.persistence import (
    Database,
    SourceTrackModel,
    SqlAlchemySyncStateRepository,
    TrackModel,
)


def make_track(
    title: str, artist: str = "Artist", album: str = "Album", **kwargs: Any
) -> TrackModel:
    return TrackModel(
        title=title,
        artist_name=artist,
        album_name=album,
        metadata_key=track_metadata_key(title, artist, album),
        **kwargs,
    )


class TestSqlAlchemyLibraryStore:
    """Tests for insert, fetch, save and album lookup."""

    async def test_insert_save_fetch(self, database: Database) -> None:
        async with database.store_scope() as store:
            track = make_track("Song")
            store.insert(track)
            store.insert(SourceTrackModel(source=Source.SPOTIFY, source_id="sp1", track=track))
            await store.save()

        async with database.store_scope() as store:
            tracks = await store.fetch(TrackModel)
            attachments = await store.fetch(
                SourceTrackModel, SourceTrackModel.source == Source.SPOTIFY
            )

        assert [t.title for t in tracks] == ["Song"]
        assert len(attachments) == 1
        assert attachments[0].track is not None
        assert attachments[0].track.id == tracks[0].id
        assert tracks[0].has_source(Source.SPOTIFY)
        assert not tracks[0].has_source(Source.LOCAL_LIBRARY)

    async def test_duplicate_identity_fails_save(self, database: Database) -> None:
        with pytest.raises(StorageUnavailableError):
            async with database.store_scope() as store:
                store.insert(make_track("Same"))
                store.insert(make_track("same "))
                await store.save()

        async with database.store_scope() as store:
            assert await store.fetch(TrackModel) == []

    async def test_earlier_checkpoint_survives_failed_save(self, database: Database) -> None:
        with pytest.raises(StorageUnavailableError):
            async with database.store_scope() as store:
                store.insert(make_track("Kept"))
                await store.save()
                store.insert(make_track("Kept"))
                await store.save()

        async with database.store_scope() as store:
            tracks = await store.fetch(TrackModel)
        assert [t.title for t in tracks] == ["Kept"]

    async def test_tracks_for_album_matches_names_and_orders(self, database: Database) -> None:
        async with database.store_scope() as store:
            store.insert(make_track("Third", album="Record", disc_number=2, track_number=1))
            store.insert(make_track("Second", album="Record", disc_number=1, track_number=2))
            store.insert(make_track("First", album="Record", disc_number=1, track_number=1))
            store.insert(make_track("Elsewhere", album="Other Record"))
            store.insert(make_track("Cover", artist="Someone Else", album="Record"))

        async with database.store_scope() as store:
            tracks = await store.tracks_for_album(" record ", "ARTIST")

        assert [t.title for t in tracks] == ["First", "Second", "Third"]

    async def test_deleting_track_removes_attachments(self, database: Database) -> None:
        async with database.store_scope() as store:
            track = make_track("Gone")
            store.insert(track)
            store.insert(SourceTrackModel(source=Source.SPOTIFY, source_id="sp1", track=track))

        async with database.store_scope() as store:
            (track,) = await store.fetch(TrackModel)
            await store.delete(track)
            await store.save()
            assert await store.fetch(SourceTrackModel) == []


class TestSqlAlchemySyncStateRepository:
    """Tests for persisted sync timestamps."""

    async def test_set_get_clear(self, database: Database) -> None:
        repository = SqlAlchemySyncStateRepository(database)
        first = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)
        second = datetime(2026, 1, 2, 9, 30, tzinfo=UTC)

        assert await repository.get_all() == {}

        await repository.set("source:spotify", first)
        await repository.set("full_sync", first)
        await repository.set("source:spotify", second)

        stored = await repository.get_all()
        assert stored == {"source:spotify": second, "full_sync": first}
        assert stored["source:spotify"].tzinfo is not None

        await repository.clear("source:spotify")
        await repository.clear("never-set")

        assert await repository.get_all() == {"full_sync": first}
