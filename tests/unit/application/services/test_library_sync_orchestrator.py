"""Tests for the sync orchestrator: staleness, failure rules, status, disconnect."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fakes import (
    FakeCredentials,
    FakeLocalLibrary,
    FakeSpotifyClient,
    InMemorySyncStateRepository,
)
from sqlalchemy import inspect as sa_inspect

from musicsync.application.services import FULL_SYNC_KEY, LibrarySyncOrchestrator, state_key
from musicsync.application.sources import LocalLibrarySyncSource, SpotifyLibrarySyncSource
from musicsync.domain.dtos import LocalAlbum, LocalPlaylist, LocalPlaylistEntry, LocalSong
from musicsync.domain.entities import Source, SourceSyncStatus, SyncState
from musicsync.domain.exceptions import ExternalServiceError, SyncError, ValidationError
from musicsync.infrastructure.persistence import (
    AlbumModel,
    Database,
    PlaylistModel,
    PlaylistTrackModel,
    SourceTrackModel,
    TrackModel,
)

T0 = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def local_song(song_id: str, title: str, isrc: str | None = None) -> LocalSong:
    return LocalSong(
        id=song_id, title=title, artist_name="Artist", album_title="Album", isrc=isrc
    )


def spotify_item(track_id: str, title: str, isrc: str | None = None) -> dict[str, Any]:
    return {
        "added_at": "2024-01-01T00:00:00Z",
        "track": {
            "type": "track",
            "id": track_id,
            "name": title,
            "artists": [{"name": "Artist"}],
            "album": {"name": "Album"},
            "duration_ms": 1000,
            "external_ids": {"isrc": isrc} if isrc else {},
        },
    }


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def orchestrator(
    database: Database,
    fake_library: FakeLocalLibrary,
    fake_spotify: FakeSpotifyClient,
    fake_credentials: FakeCredentials,
    state_repository: InMemorySyncStateRepository,
    clock: FrozenClock,
) -> LibrarySyncOrchestrator:
    return LibrarySyncOrchestrator(
        sources=[
            LocalLibrarySyncSource(fake_library, database.store_scope),
            SpotifyLibrarySyncSource(fake_spotify, fake_credentials, database.store_scope),
        ],
        store_scope=database.store_scope,
        state_repository=state_repository,
        staleness_threshold_seconds=300,
        clock=clock,
    )


async def track_count(database: Database) -> int:
    async with database.store_scope() as store:
        return len(await store.fetch(TrackModel))


SYNC_TIMESTAMPS = {"last_synced_at", "created_at"}


async def library_snapshot(database: Database) -> dict[str, list[str]]:
    """Every library row without its sync timestamps.

    Playlist entries are re-inserted on every playlist sync, so they are compared by
    (playlist, position, track, added_at) instead of by row id.
    """
    snapshot: dict[str, list[str]] = {}
    async with database.store_scope() as store:
        for model in (TrackModel, SourceTrackModel, PlaylistModel, AlbumModel):
            columns = [
                attr.key
                for attr in sa_inspect(model).column_attrs
                if attr.key not in SYNC_TIMESTAMPS
            ]
            rows = await store.fetch(model)
            snapshot[model.__tablename__] = sorted(
                repr([getattr(row, column) for column in columns]) for row in rows
            )
        entries = await store.fetch(PlaylistTrackModel)
        snapshot["playlist_tracks"] = sorted(
            repr((e.playlist.source_id, e.position, e.track_id, e.added_at)) for e in entries
        )
    return snapshot


def full_library(fake_library: FakeLocalLibrary, fake_spotify: FakeSpotifyClient) -> None:
    """Both providers with tracks, playlists holding a not-yet-saved song, and albums."""
    shared = local_song("shared.mp3", "Shared")
    fake_library.songs_list = [shared, local_song("local.mp3", "Local Only")]
    fake_library.playlist_list = [LocalPlaylist(id="mix.m3u", name="Mix")]
    fake_library.entries = {
        "mix.m3u": [
            LocalPlaylistEntry(song=local_song("new.mp3", "Local Playlist Only")),
            LocalPlaylistEntry(song=None),
            LocalPlaylistEntry(song=shared, added_at=T0 - timedelta(days=1)),
        ]
    }
    fake_library.album_list = [
        LocalAlbum(id="album:artist", title="Album", artist_name="Artist", track_count=3)
    ]

    fake_spotify.saved_tracks = [spotify_item("sp1", "Shared", "USRC10000001")]
    fake_spotify.playlists = [{"id": "p1", "name": "Road Trip", "owner": {"id": "me"}}]
    fake_spotify.playlist_items = {
        "p1": [
            spotify_item("sp9", "Spotify Playlist Only", "USRC10000009"),
            spotify_item("sp1", "Shared", "USRC10000001"),
        ]
    }
    fake_spotify.saved_albums = [
        {
            "added_at": "2024-01-01T00:00:00Z",
            "album": {
                "id": "al1",
                "name": "Album",
                "artists": [{"name": "Artist"}],
                "total_tracks": 2,
            },
        }
    ]


class TestSyncAll:
    """Tests for staleness gating and the per-provider pipeline."""

    async def test_first_sync_completes_every_provider(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        state_repository: InMemorySyncStateRepository,
    ) -> None:
        fake_library.songs_list = [local_song("a.mp3", "A")]
        fake_spotify.saved_tracks = [spotify_item("sp1", "B")]

        statuses = await orchestrator.sync_all()

        assert statuses[Source.LOCAL_LIBRARY] == SourceSyncStatus.completed(T0)
        assert statuses[Source.SPOTIFY] == SourceSyncStatus.completed(T0)
        assert orchestrator.last_synced_at == T0
        assert orchestrator.is_syncing is False
        assert state_repository.values == {
            state_key(Source.LOCAL_LIBRARY): T0,
            state_key(Source.SPOTIFY): T0,
            FULL_SYNC_KEY: T0,
        }

    async def test_recent_provider_is_skipped(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        clock: FrozenClock,
    ) -> None:
        await orchestrator.sync_all()
        completed = orchestrator.status(Source.LOCAL_LIBRARY)
        library_calls = list(fake_library.calls)
        spotify_calls = list(fake_spotify.calls)

        clock.advance(30)
        await orchestrator.sync_all(force=False)

        assert orchestrator.status(Source.LOCAL_LIBRARY) is completed
        assert fake_library.calls == library_calls
        assert fake_spotify.calls == spotify_calls
        assert orchestrator.last_synced_at == T0 + timedelta(seconds=30)

    async def test_stale_or_forced_provider_resyncs(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        clock: FrozenClock,
    ) -> None:
        await orchestrator.sync_all()

        clock.advance(10)
        await orchestrator.sync_all(force=True)
        assert orchestrator.status(Source.LOCAL_LIBRARY).last_synced_at == T0 + timedelta(
            seconds=10
        )

        clock.advance(300)
        await orchestrator.sync_all()
        assert orchestrator.status(Source.LOCAL_LIBRARY).last_synced_at == T0 + timedelta(
            seconds=310
        )

    async def test_disconnected_provider_is_skipped(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_credentials.token = None

        await orchestrator.sync_all()

        assert orchestrator.status(Source.SPOTIFY).state is SyncState.IDLE
        assert orchestrator.status(Source.LOCAL_LIBRARY).state is SyncState.COMPLETED
        assert fake_spotify.calls == []

    async def test_concurrent_requests_run_one_at_a_time(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
    ) -> None:
        fake_library.songs_list = [local_song(f"{n}.mp3", f"Song {n}") for n in range(5)]

        await asyncio.gather(orchestrator.sync_all(), orchestrator.sync_all())

        # The second run finds the provider fresh and skips it
        assert fake_library.calls.count("songs") == 3

    async def test_playlists_with_songs_not_in_library_complete(
        self,
        orchestrator: LibrarySyncOrchestrator,
        database: Database,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
    ) -> None:
        full_library(fake_library, fake_spotify)

        statuses = await orchestrator.sync_all()

        assert statuses[Source.LOCAL_LIBRARY] == SourceSyncStatus.completed(T0)
        assert statuses[Source.SPOTIFY] == SourceSyncStatus.completed(T0)
        async with database.store_scope() as store:
            playlists = {p.name: p for p in await store.fetch(PlaylistModel)}
        assert [e.track.title for e in playlists["Mix"].entries] == [
            "Local Playlist Only",
            "Shared",
        ]
        assert [e.track.title for e in playlists["Road Trip"].entries] == [
            "Spotify Playlist Only",
            "Shared",
        ]
        assert playlists["Mix"].track_count == 2
        assert await track_count(database) == 4


class TestFailureRules:
    """Tests for how phase failures map onto provider status."""

    async def test_playlist_failure_does_not_stop_other_providers(
        self,
        orchestrator: LibrarySyncOrchestrator,
        database: Database,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
    ) -> None:
        fake_library.songs_list = [local_song("a.mp3", "Song", isrc="USRC12345678")]
        fake_library.fail_on["playlists"] = SyncError("Library returned HTTP 500")
        fake_spotify.saved_tracks = [spotify_item("sp1", "Song (Remaster)", "USRC12345678")]

        await orchestrator.sync_all()

        local = orchestrator.status(Source.LOCAL_LIBRARY)
        assert local.state is SyncState.ERROR
        assert local.error_message == "Library returned HTTP 500"
        assert "albums" in fake_library.calls
        assert orchestrator.status(Source.SPOTIFY).state is SyncState.COMPLETED
        assert orchestrator.first_error_message == "Library returned HTTP 500"
        # dedup still ran after the failed provider
        assert orchestrator.last_merged_count == 1
        assert await track_count(database) == 1

    async def test_spotify_playlist_failure_is_not_fatal(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_spotify: FakeSpotifyClient,
    ) -> None:
        fake_spotify.fail_on["playlists"] = ExternalServiceError(500, "Internal Server Error")

        await orchestrator.sync_all()

        assert orchestrator.status(Source.SPOTIFY).state is SyncState.COMPLETED
        assert "saved_albums" in fake_spotify.calls

    async def test_track_failure_skips_later_phases(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        state_repository: InMemorySyncStateRepository,
    ) -> None:
        fake_library.fail_on["songs"] = SyncError("Catalog unavailable")

        await orchestrator.sync_all()

        assert fake_library.calls == ["songs"]
        assert orchestrator.status(Source.LOCAL_LIBRARY) == SourceSyncStatus.error(
            "Catalog unavailable"
        )
        assert state_key(Source.LOCAL_LIBRARY) not in state_repository.values
        assert orchestrator.status(Source.SPOTIFY).state is SyncState.COMPLETED

    async def test_album_failure_is_an_error(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_spotify: FakeSpotifyClient,
    ) -> None:
        fake_spotify.fail_on["saved_albums"] = ExternalServiceError(503)

        await orchestrator.sync_all()

        assert orchestrator.status(Source.SPOTIFY) == SourceSyncStatus.error(
            "Spotify error (503)."
        )

    async def test_unexpected_exception_is_recorded(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
    ) -> None:
        fake_library.fail_on["songs"] = RuntimeError("disk on fire")

        await orchestrator.sync_all()

        assert orchestrator.status(Source.LOCAL_LIBRARY).error_message == "disk on fire"

    async def test_failed_provider_is_retried_next_run(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
    ) -> None:
        fake_library.fail_on["songs"] = SyncError("Catalog unavailable")
        await orchestrator.sync_all()

        fake_library.fail_on.clear()
        await orchestrator.sync_all()

        assert orchestrator.status(Source.LOCAL_LIBRARY) == SourceSyncStatus.completed(T0)

    @pytest.mark.parametrize("dismiss", [False, True])
    async def test_error_after_recent_success_is_retried(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        clock: FrozenClock,
        dismiss: bool,
    ) -> None:
        await orchestrator.sync_all()

        clock.advance(30)
        fake_library.fail_on["songs"] = SyncError("Catalog unavailable")
        await orchestrator.sync_source(Source.LOCAL_LIBRARY)
        assert orchestrator.status(Source.LOCAL_LIBRARY).is_error
        if dismiss:
            orchestrator.dismiss_errors()

        fake_library.fail_on.clear()
        clock.advance(30)
        songs_calls = fake_library.calls.count("songs")
        spotify_calls = list(fake_spotify.calls)
        await orchestrator.sync_all(force=False)

        assert fake_library.calls.count("songs") == songs_calls + 1
        assert orchestrator.status(Source.LOCAL_LIBRARY) == SourceSyncStatus.completed(
            T0 + timedelta(seconds=60)
        )
        # Spotify completed 60s ago and is still fresh
        assert fake_spotify.calls == spotify_calls


class TestSyncSource:
    async def test_sync_source_ignores_staleness(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        clock: FrozenClock,
        state_repository: InMemorySyncStateRepository,
    ) -> None:
        await orchestrator.sync_all()
        clock.advance(5)

        status = await orchestrator.sync_source(Source.LOCAL_LIBRARY)

        assert status == SourceSyncStatus.completed(T0 + timedelta(seconds=5))
        assert fake_library.calls.count("songs") == 2
        assert state_repository.values[FULL_SYNC_KEY] == T0 + timedelta(seconds=5)

    async def test_unconfigured_source_is_rejected(
        self, database: Database, state_repository: InMemorySyncStateRepository
    ) -> None:
        orchestrator = LibrarySyncOrchestrator(
            sources=[LocalLibrarySyncSource(FakeLocalLibrary(), database.store_scope)],
            store_scope=database.store_scope,
            state_repository=state_repository,
        )

        with pytest.raises(ValidationError):
            await orchestrator.sync_source(Source.SPOTIFY)
        with pytest.raises(ValidationError):
            orchestrator.status(Source.SPOTIFY)


class TestStatusManagement:
    """Tests for restoring, dismissing and resetting statuses."""

    async def test_load_state_restores_timestamps(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        state_repository: InMemorySyncStateRepository,
    ) -> None:
        earlier = T0 - timedelta(seconds=60)
        state_repository.values = {
            state_key(Source.LOCAL_LIBRARY): earlier,
            FULL_SYNC_KEY: earlier,
        }

        await orchestrator.load_state()

        assert orchestrator.status(Source.LOCAL_LIBRARY) == SourceSyncStatus.completed(earlier)
        assert orchestrator.status(Source.SPOTIFY).state is SyncState.IDLE
        assert orchestrator.last_synced_at == earlier

        await orchestrator.sync_all()
        assert fake_library.calls == []

    async def test_dismiss_and_clear_errors(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
    ) -> None:
        fake_library.fail_on["songs"] = SyncError("Local broke")
        fake_spotify.fail_on["saved_tracks"] = SyncError("Spotify broke")
        await orchestrator.sync_all()
        assert orchestrator.first_error_message == "Local broke"

        orchestrator.clear_error(Source.LOCAL_LIBRARY)
        assert orchestrator.status(Source.LOCAL_LIBRARY).state is SyncState.IDLE
        assert orchestrator.first_error_message == "Spotify broke"

        orchestrator.dismiss_errors()
        assert orchestrator.first_error_message is None
        assert orchestrator.status(Source.SPOTIFY).state is SyncState.IDLE

    async def test_reset_status(self, orchestrator: LibrarySyncOrchestrator) -> None:
        await orchestrator.sync_all()

        orchestrator.reset_status(Source.SPOTIFY)

        assert orchestrator.status(Source.SPOTIFY) == SourceSyncStatus.idle()

    async def test_reset_provider_is_synced_by_next_run(
        self,
        orchestrator: LibrarySyncOrchestrator,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        clock: FrozenClock,
    ) -> None:
        await orchestrator.sync_all()
        local_completed = orchestrator.status(Source.LOCAL_LIBRARY)
        library_calls = list(fake_library.calls)

        clock.advance(30)
        orchestrator.reset_status(Source.SPOTIFY)
        await orchestrator.sync_all(force=False)

        assert orchestrator.status(Source.SPOTIFY) == SourceSyncStatus.completed(
            T0 + timedelta(seconds=30)
        )
        assert fake_spotify.calls.count("saved_tracks") == 2
        assert orchestrator.status(Source.LOCAL_LIBRARY) is local_completed
        assert fake_library.calls == library_calls


class TestDisconnect:
    async def test_disconnect_removes_provider_data(
        self,
        orchestrator: LibrarySyncOrchestrator,
        database: Database,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        state_repository: InMemorySyncStateRepository,
    ) -> None:
        fake_library.songs_list = [local_song("a.mp3", "Shared")]
        fake_spotify.saved_tracks = [spotify_item("sp1", "Shared"), spotify_item("sp2", "Only")]
        await orchestrator.sync_all()
        assert await track_count(database) == 2

        result = await orchestrator.disconnect(Source.SPOTIFY)

        assert result.source_tracks_deleted == 2
        assert result.tracks_deleted == 1
        assert await track_count(database) == 1
        assert orchestrator.status(Source.SPOTIFY) == SourceSyncStatus.idle()
        assert state_key(Source.SPOTIFY) not in state_repository.values
        assert state_key(Source.LOCAL_LIBRARY) in state_repository.values


class TestIdempotence:
    """Re-syncing a provider with no upstream change leaves the library untouched."""

    @pytest.mark.parametrize("source", [Source.LOCAL_LIBRARY, Source.SPOTIFY])
    async def test_resync_without_changes_mutates_nothing(
        self,
        orchestrator: LibrarySyncOrchestrator,
        database: Database,
        fake_library: FakeLocalLibrary,
        fake_spotify: FakeSpotifyClient,
        clock: FrozenClock,
        source: Source,
    ) -> None:
        full_library(fake_library, fake_spotify)
        await orchestrator.sync_all()
        before = await library_snapshot(database)
        assert len(before["tracks"]) == 4
        assert len(before["playlist_tracks"]) == 4
        assert len(before["albums"]) == 2

        for _ in range(2):
            clock.advance(10)
            status = await orchestrator.sync_source(source)
            assert status.state is SyncState.COMPLETED
            assert await library_snapshot(database) == before

        assert orchestrator.last_merged_count == 0
