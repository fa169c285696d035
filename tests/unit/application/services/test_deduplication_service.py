"""Tests for ISRC deduplication."""

from datetime import UTC, date, datetime, timedelta
from typing import Any

from musicsync.application.services.deduplication_service import DeduplicationService
from musicsync.domain.entities import Source
from musicsync.domain.value_objects import ensure_utc, track_metadata_key
from musicsync.infrastructure.persistence import (
    Database,
    PlaylistModel,
    PlaylistTrackModel,
    SourceTrackModel,
    TrackModel,
)

BASE = datetime(2025, 6, 1, tzinfo=UTC)


def make_track(title: str, source: Source, source_id: str, **kwargs: Any) -> TrackModel:
    track = TrackModel(
        title=title,
        artist_name="Artist",
        album_name="Album",
        metadata_key=track_metadata_key(title, "Artist", "Album"),
        **kwargs,
    )
    track.source_tracks.append(SourceTrackModel(source=source, source_id=source_id))
    return track


async def dedup(database: Database) -> int:
    async with database.store_scope() as store:
        return await DeduplicationService(store).deduplicate()


class TestDeduplicationService:
    """Tests for merging tracks that share an ISRC."""

    async def test_cross_provider_duplicates_merge_into_primary(
        self, database: Database
    ) -> None:
        async with database.store_scope() as store:
            spotify = make_track(
                "Song - Remastered",
                Source.SPOTIFY,
                "sp1",
                isrc="USABC1234567",
                artwork_url="https://i.scdn.co/remote",
                artwork_source=Source.SPOTIFY,
                genre_names=["Pop"],
                added_at=BASE,
                composer_name="Writer",
                created_at=BASE,
            )
            local = make_track(
                "Song (Remastered)",
                Source.LOCAL_LIBRARY,
                "Artist/Album/song.flac",
                isrc="usabc1234567",
                genre_names=["Rock"],
                added_at=BASE + timedelta(days=30),
                created_at=BASE + timedelta(seconds=1),
            )
            store.insert(spotify)
            store.insert(local)
            playlist = PlaylistModel(source=Source.SPOTIFY, source_id="p1", name="Mix")
            playlist.entries.append(PlaylistTrackModel(track=spotify, position=0))
            store.insert(playlist)

        assert await dedup(database) == 1

        async with database.store_scope() as store:
            (track,) = await store.fetch(TrackModel)
            (playlist,) = await store.fetch(PlaylistModel)

        assert track.title == "Song (Remastered)"
        assert {st.source for st in track.source_tracks} == {
            Source.LOCAL_LIBRARY,
            Source.SPOTIFY,
        }
        assert track.artwork_url == "https://i.scdn.co/remote"
        assert track.artwork_source is Source.SPOTIFY
        assert track.genre_names == ["Pop", "Rock"]
        assert track.added_at is not None and ensure_utc(track.added_at) == BASE
        assert track.composer_name == "Writer"
        assert [entry.track.id for entry in playlist.entries] == [track.id]

    async def test_primary_artwork_survives(self, database: Database) -> None:
        async with database.store_scope() as store:
            store.insert(
                make_track(
                    "Remote Title",
                    Source.SPOTIFY,
                    "sp1",
                    isrc="USRC12345678",
                    created_at=BASE,
                )
            )
            store.insert(
                make_track(
                    "Local Title",
                    Source.LOCAL_LIBRARY,
                    "song.mp3",
                    isrc="USRC12345678",
                    artwork_url="file:///cover.jpg",
                    artwork_source=Source.LOCAL_LIBRARY,
                    created_at=BASE + timedelta(minutes=1),
                )
            )

        assert await dedup(database) == 1

        async with database.store_scope() as store:
            (track,) = await store.fetch(TrackModel)
        assert track.artwork_url == "file:///cover.jpg"
        assert track.artwork_source is Source.LOCAL_LIBRARY
        assert sorted(st.source_id for st in track.source_tracks) == ["song.mp3", "sp1"]

    async def test_dedup_converges(self, database: Database) -> None:
        async with database.store_scope() as store:
            for n in range(3):
                store.insert(
                    make_track(f"Take {n}", Source.SPOTIFY, f"sp{n}", isrc="GBXYZ0000001")
                )

        assert await dedup(database) == 2
        assert await dedup(database) == 0

        async with database.store_scope() as store:
            (track,) = await store.fetch(TrackModel)
            attachments = await store.fetch(SourceTrackModel)
        assert len(attachments) == 3
        assert all(st.track_id == track.id for st in attachments)

    async def test_oldest_track_survives_without_primary(self, database: Database) -> None:
        async with database.store_scope() as store:
            store.insert(
                make_track(
                    "Newer",
                    Source.SPOTIFY,
                    "sp2",
                    isrc="GBXYZ0000002",
                    created_at=BASE + timedelta(hours=1),
                    release_date=date(2001, 1, 1),
                )
            )
            store.insert(
                make_track("Older", Source.SPOTIFY, "sp1", isrc="GBXYZ0000002", created_at=BASE)
            )

        await dedup(database)

        async with database.store_scope() as store:
            (track,) = await store.fetch(TrackModel)
        assert track.title == "Older"
        assert track.release_date == date(2001, 1, 1)

    async def test_tracks_without_isrc_are_left_alone(self, database: Database) -> None:
        async with database.store_scope() as store:
            store.insert(make_track("One", Source.SPOTIFY, "sp1"))
            store.insert(make_track("Two", Source.SPOTIFY, "sp2", isrc="  "))

        assert await dedup(database) == 0

        async with database.store_scope() as store:
            assert len(await store.fetch(TrackModel)) == 2
