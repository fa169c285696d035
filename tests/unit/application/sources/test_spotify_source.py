"""Tests for the Spotify sync adapter."""

from typing import Any
from unittest.mock import MagicMock

import pytest
from fakes import FakeCredentials, FakeSpotifyClient

from musicsync.application.sources import SpotifyLibrarySyncSource
from musicsync.application.sources.spotify_source import map_playlist, map_track
from musicsync.domain.entities import Source
from musicsync.domain.exceptions import AuthenticationError, InvalidResponseError
from musicsync.infrastructure.persistence import (
    AlbumModel,
    Database,
    PlaylistModel,
    SourceTrackModel,
    TrackModel,
)


def track_json(track_id: str, name: str, **overrides: Any) -> dict[str, Any]:
    track: dict[str, Any] = {
        "type": "track",
        "id": track_id,
        "name": name,
        "artists": [{"name": "Artist"}],
        "album": {
            "name": "Album",
            "artists": [{"name": "Album Artist"}],
            "images": [
                {"url": "https://i.scdn.co/640", "width": 640, "height": 640},
                {"url": "https://i.scdn.co/300", "width": 300, "height": 300},
                {"url": "https://i.scdn.co/64", "width": 64, "height": 64},
            ],
            "release_date": "2021-03",
        },
        "duration_ms": 215_000,
        "explicit": False,
        "external_ids": {"isrc": "usabc2100001"},
        "popularity": 70,
        "preview_url": None,
    }
    track.update(overrides)
    return track


def saved(track: Any, added_at: str = "2024-05-01T10:00:00Z") -> dict[str, Any]:
    return {"added_at": added_at, "track": track}


def make_source(
    client: FakeSpotifyClient, credentials: FakeCredentials, database: Database
) -> SpotifyLibrarySyncSource:
    return SpotifyLibrarySyncSource(client, credentials, database.store_scope)


class TestMappers:
    def test_map_track(self) -> None:
        canonical = map_track(track_json("sp1", " Song "), None)

        assert canonical is not None
        assert canonical.source is Source.SPOTIFY
        assert canonical.title == "Song"
        assert canonical.album_artist_name == "Album Artist"
        assert canonical.artwork_url == "https://i.scdn.co/300"
        assert canonical.release_date is not None and canonical.release_date.month == 3
        assert canonical.isrc == "usabc2100001"
        assert canonical.popularity == 70

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            {"type": "episode", "id": "ep1", "name": "Podcast"},
            {"type": "track", "id": None, "name": "Local file"},
        ],
    )
    def test_map_track_skips_unusable_items(self, raw: Any) -> None:
        assert map_track(raw) is None

    def test_map_playlist_owner_fallback(self) -> None:
        canonical = map_playlist({"id": "p1", "name": "", "owner": {"id": "user42"}})

        assert canonical is not None
        assert canonical.name == "Untitled Playlist"
        assert canonical.owner_name == "user42"
        assert canonical.is_public is None


class TestSpotifySyncTracks:
    """Tests for the saved-tracks phase."""

    async def test_follows_next_links(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_spotify.page_size = 2
        fake_spotify.saved_tracks = [
            saved(track_json(f"sp{n}", f"Song {n}")) for n in range(5)
        ] + [saved(None), saved({"type": "episode", "id": "ep1"})]

        summary = await make_source(fake_spotify, fake_credentials, database).sync_tracks()

        assert summary.processed == 5
        assert summary.total == 7
        assert fake_spotify.calls == ["saved_tracks"] + ["saved_tracks"] * 3

        async with database.store_scope() as store:
            attachments = await store.fetch(SourceTrackModel)
        assert len(attachments) == 5

    async def test_unchanged_total_skips_everything(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_spotify.saved_tracks = [saved(track_json(f"sp{n}", f"Song {n}")) for n in range(42)]
        source = make_source(fake_spotify, fake_credentials, database)
        await source.sync_tracks()

        fake_spotify.calls.clear()
        fake_spotify.page_size = 10
        fake_spotify.saved_tracks = [
            saved(track_json(f"new{n}", f"Renamed {n}")) for n in range(42)
        ]

        summary = await source.sync_tracks()

        assert summary.skipped_unchanged is True
        assert summary.total == 42
        assert summary.processed == 0
        assert fake_spotify.calls == ["saved_tracks"]

        async with database.store_scope() as store:
            tracks = await store.fetch(TrackModel)
        assert len(tracks) == 42
        assert not any(t.title.startswith("Renamed") for t in tracks)

    async def test_changed_total_resyncs(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_spotify.saved_tracks = [saved(track_json("sp1", "One"))]
        source = make_source(fake_spotify, fake_credentials, database)
        await source.sync_tracks()

        fake_spotify.saved_tracks.append(saved(track_json("sp2", "Two")))
        summary = await source.sync_tracks()

        assert summary.skipped_unchanged is False
        assert summary.tracks_created == 1

    async def test_playlist_only_attachments_count_towards_total(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_spotify.saved_tracks = [saved(track_json("sp1", "One"))]
        fake_spotify.playlists = [{"id": "p1", "name": "Mix"}]
        fake_spotify.playlist_items = {"p1": [saved(track_json("sp2", "Playlist Only"))]}
        source = make_source(fake_spotify, fake_credentials, database)
        await source.sync_tracks()
        await source.sync_playlists()

        # one new saved track: total 2 == 2 Spotify attachments (one of them playlist-only)
        fake_spotify.saved_tracks.append(saved(track_json("sp3", "Three")))
        summary = await source.sync_tracks()

        assert summary.skipped_unchanged is True
        async with database.store_scope() as store:
            attachments = await store.fetch(SourceTrackModel)
        assert sorted(a.source_id for a in attachments) == ["sp1", "sp2"]

    async def test_missing_token_fails_phase(
        self, database: Database, fake_spotify: FakeSpotifyClient
    ) -> None:
        source = make_source(fake_spotify, FakeCredentials(token=None), database)

        assert await source.is_connected() is False
        with pytest.raises(AuthenticationError):
            await source.sync_tracks()
        assert fake_spotify.calls == []

    async def test_malformed_page_is_invalid_response(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
        mocker: MagicMock,
    ) -> None:
        mocker.patch.object(
            fake_spotify, "get_saved_tracks", return_value={"items": None, "total": 3}
        )

        with pytest.raises(InvalidResponseError):
            await make_source(fake_spotify, fake_credentials, database).sync_tracks()


class TestSpotifySyncPlaylistsAndAlbums:
    """Tests for the playlist and album phases."""

    async def test_playlist_items_are_resolved_in_order(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        liked = track_json("sp1", "Liked")
        fake_spotify.saved_tracks = [saved(liked)]
        source = make_source(fake_spotify, fake_credentials, database)
        await source.sync_tracks()

        fake_spotify.page_size = 2
        fake_spotify.playlists = [
            {"id": "p1", "name": "Road Trip", "owner": {"display_name": "Me"}, "public": True}
        ]
        fake_spotify.playlist_items = {
            "p1": [
                saved(track_json("sp2", "Playlist Only")),
                saved({"type": "episode", "id": "ep1", "name": "Podcast"}),
                saved(liked),
            ]
        }

        await source.sync_playlists()

        assert fake_spotify.calls[-3:] == ["playlists", "playlist:p1", "playlist:p1"]
        async with database.store_scope() as store:
            (playlist,) = await store.fetch(PlaylistModel)
        assert playlist.owner_name == "Me"
        assert playlist.is_public is True
        assert [e.track.title for e in playlist.entries] == ["Playlist Only", "Liked"]

    async def test_saved_albums(
        self,
        database: Database,
        fake_spotify: FakeSpotifyClient,
        fake_credentials: FakeCredentials,
    ) -> None:
        fake_spotify.saved_albums = [
            {
                "album": {
                    "id": "al1",
                    "name": "Album",
                    "artists": [{"name": "Artist"}],
                    "total_tracks": 11,
                    "genres": ["indie"],
                }
            },
            {"album": None},
        ]

        await make_source(fake_spotify, fake_credentials, database).sync_albums()

        async with database.store_scope() as store:
            (album,) = await store.fetch(AlbumModel)
        assert album.source is Source.SPOTIFY
        assert album.track_count == 11
        assert album.genre_names == ["indie"]
