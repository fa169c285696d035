"""Sync adapter for the Spotify Web API (secondary provider)."""

import logging
from datetime import datetime
from typing import Any

from musicsync.application.services.library_reconciler import LibraryReconciler, TrackIndex
from musicsync.application.sources.library_source import BaseLibrarySyncSource, StoreScope
from musicsync.domain.dtos import (
    ArtworkCandidate,
    CanonicalAlbum,
    CanonicalPlaylist,
    CanonicalTrack,
)
from musicsync.domain.entities import Source, SyncSummary
from musicsync.domain.exceptions import InvalidResponseError
from musicsync.domain.ports import ICredentialProvider, ISpotifyClient
from musicsync.domain.value_objects import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    UNKNOWN_TRACK,
    best_artwork_url,
    clamp_duration_ms,
    clean_optional,
    clean_text,
    parse_iso8601,
    parse_release_date,
)
from musicsync.infrastructure.observability.logger_template import log_operation
from musicsync.infrastructure.persistence.models import SourceTrackModel, TrackModel

logger = logging.getLogger(__name__)


def _int_or_none(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _images(raw: Any) -> list[ArtworkCandidate]:
    if not isinstance(raw, list):
        return []
    return [
        ArtworkCandidate(
            url=image["url"],
            width=_int_or_none(image.get("width")),
            height=_int_or_none(image.get("height")),
        )
        for image in raw
        if isinstance(image, dict) and isinstance(image.get("url"), str) and image["url"]
    ]


def _first_artist_name(raw: Any) -> str | None:
    if isinstance(raw, list) and raw and isinstance(raw[0], dict):
        name = raw[0].get("name")
        return name if isinstance(name, str) else None
    return None


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


# Yo, Spotify JSON is "mostly" well formed. Playlists can contain podcast episodes (type=episode),
# removed tracks (track=null) and local files (id=null) - none of those can be attached to a
# SourceTrack, so the mappers return None and the caller skips the item.
def map_track(track: Any, added_at: datetime | None = None) -> CanonicalTrack | None:
    """Map a Spotify track object to a canonical track, or None for unusable items."""
    if not isinstance(track, dict):
        return None
    if track.get("type", "track") != "track":
        return None
    track_id = track.get("id")
    if not isinstance(track_id, str) or not track_id:
        return None

    album = track.get("album") if isinstance(track.get("album"), dict) else {}
    external_ids = track.get("external_ids")
    if not isinstance(external_ids, dict):
        external_ids = {}
    album_artist = _first_artist_name(album.get("artists"))

    return CanonicalTrack(
        source=Source.SPOTIFY,
        source_id=track_id,
        title=clean_text(_text(track.get("name")), UNKNOWN_TRACK),
        artist_name=clean_text(_first_artist_name(track.get("artists")), UNKNOWN_ARTIST),
        album_name=clean_text(_text(album.get("name")), UNKNOWN_ALBUM),
        duration_ms=clamp_duration_ms(_int_or_none(track.get("duration_ms"))),
        album_artist_name=clean_optional(album_artist),
        artwork_url=best_artwork_url(_images(album.get("images"))),
        release_date=parse_release_date(_text(album.get("release_date"))),
        is_explicit=bool(track.get("explicit")),
        isrc=clean_optional(_text(external_ids.get("isrc"))),
        disc_number=_int_or_none(track.get("disc_number")),
        track_number=_int_or_none(track.get("track_number")),
        added_at=added_at,
        popularity=_int_or_none(track.get("popularity")),
        preview_url=_text(track.get("preview_url")),
    )


def map_playlist(playlist: Any) -> CanonicalPlaylist | None:
    if not isinstance(playlist, dict):
        return None
    playlist_id = playlist.get("id")
    if not isinstance(playlist_id, str) or not playlist_id:
        return None
    owner = playlist.get("owner") if isinstance(playlist.get("owner"), dict) else {}
    public = playlist.get("public")
    return CanonicalPlaylist(
        source=Source.SPOTIFY,
        source_id=playlist_id,
        name=clean_text(_text(playlist.get("name")), "Untitled Playlist"),
        description=clean_optional(_text(playlist.get("description"))),
        artwork_url=best_artwork_url(_images(playlist.get("images"))),
        owner_name=clean_optional(_text(owner.get("display_name")) or _text(owner.get("id"))),
        is_public=public if isinstance(public, bool) else None,
    )


def map_album(album: Any) -> CanonicalAlbum | None:
    if not isinstance(album, dict):
        return None
    album_id = album.get("id")
    if not isinstance(album_id, str) or not album_id:
        return None
    genres = album.get("genres") if isinstance(album.get("genres"), list) else []
    return CanonicalAlbum(
        source=Source.SPOTIFY,
        source_id=album_id,
        name=clean_text(_text(album.get("name")), UNKNOWN_ALBUM),
        artist_name=clean_text(_first_artist_name(album.get("artists")), UNKNOWN_ARTIST),
        artwork_url=best_artwork_url(_images(album.get("images"))),
        release_date=parse_release_date(_text(album.get("release_date"))),
        track_count=max(0, _int_or_none(album.get("total_tracks")) or 0),
        genre_names=[g.strip() for g in genres if isinstance(g, str) and g.strip()],
    )


def _page_items(page: dict[str, Any]) -> list[Any]:
    items = page.get("items")
    if not isinstance(items, list):
        raise InvalidResponseError()
    return items


def _next_url(page: dict[str, Any]) -> str | None:
    url = page.get("next")
    return url if isinstance(url, str) and url else None


class SpotifyLibrarySyncSource(BaseLibrarySyncSource):
    """Pages the user's Spotify library into the library store."""

    source = Source.SPOTIFY
    # Playlist failures are logged, the run can still complete
    fatal_playlist_errors = False

    def __init__(
        self,
        client: ISpotifyClient,
        credentials: ICredentialProvider,
        store_scope: StoreScope,
        page_limit: int = 50,
        primary_source: Source = Source.LOCAL_LIBRARY,
        yield_every: int = 100,
    ) -> None:
        super().__init__(store_scope, primary_source=primary_source, yield_every=yield_every)
        self._client = client
        self._credentials = credentials
        self._page_limit = page_limit

    async def is_connected(self) -> bool:
        return self._credentials.is_connected

    # Hey future me - the early exit! Saved tracks is by far the biggest list (thousands of items,
    # 50 per request). If Spotify's reported total equals what we already hold for Spotify, we
    # assume nothing changed and stop after ONE request: no more pages, no mutations.
    # Known blind spots, both missed until the count differs again:
    # - remove one + add one between syncs keeps the count equal
    # - the count includes SourceTracks created for playlist-only songs (not saved tracks), so
    #   N playlist-only attachments plus N newly saved tracks also match the total
    # A forced sync does NOT bypass this.
    async def sync_tracks(self) -> SyncSummary:
        summary = SyncSummary(source=self.source)
        async with log_operation(logger, "sync.tracks", source=self.source.value):
            token = await self._credentials.get_access_token()
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                source_index = await self._source_track_index(store)
                track_index = TrackIndex(store)

                page = await self._client.get_saved_tracks(token, limit=self._page_limit)
                items = _page_items(page)
                total = _int_or_none(page.get("total"))
                summary.total = total

                existing = len(source_index)
                if existing > 0 and total == existing:
                    logger.info(
                        f"Spotify: saved tracks unchanged ({total}), skipping track sync"
                    )
                    summary.skipped_unchanged = True
                    return summary

                while True:
                    for item in items:
                        if not isinstance(item, dict):
                            continue
                        added_at = parse_iso8601(_text(item.get("added_at")))
                        canonical = map_track(item.get("track"), added_at)
                        if canonical is None:
                            continue
                        await reconciler.upsert_track(canonical, source_index, track_index)
                        summary.processed += 1
                        await self._checkpoint(summary.processed)
                    next_url = _next_url(page)
                    if next_url is None:
                        break
                    page = await self._client.get_next_page(next_url, token)
                    items = _page_items(page)

                await store.save()
        logger.info(
            f"Spotify: synced {summary.processed} saved tracks "
            f"({reconciler.counters.tracks_created} new tracks)"
        )
        return self._summary(summary, reconciler)

    async def sync_playlists(self) -> None:
        async with log_operation(logger, "sync.playlists", source=self.source.value):
            token = await self._credentials.get_access_token()
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                source_index = await self._source_track_index(store)
                track_index = TrackIndex(store)
                playlist_index = await self._playlist_index(store)

                page = await self._client.get_user_playlists(token, limit=self._page_limit)
                processed = 0
                while True:
                    for raw in _page_items(page):
                        canonical = map_playlist(raw)
                        if canonical is None:
                            continue
                        playlist = reconciler.upsert_playlist(canonical, playlist_index)
                        entries = await self._playlist_entries(
                            canonical.source_id, token, reconciler, source_index, track_index
                        )
                        await reconciler.replace_playlist_entries(playlist, entries)
                        processed += 1
                        await self._checkpoint(processed)
                    next_url = _next_url(page)
                    if next_url is None:
                        break
                    page = await self._client.get_next_page(next_url, token)

                await store.save()

    async def _playlist_entries(
        self,
        playlist_id: str,
        token: str,
        reconciler: LibraryReconciler,
        source_index: dict[str, SourceTrackModel],
        track_index: TrackIndex,
    ) -> list[tuple[TrackModel, datetime | None]]:
        """Resolve every track item of one playlist, in playlist order."""
        resolved: list[tuple[TrackModel, datetime | None]] = []
        # Playlist items endpoint allows up to 100 per page
        page = await self._client.get_playlist_tracks(playlist_id, token, limit=100)
        while True:
            for item in _page_items(page):
                if not isinstance(item, dict):
                    continue
                added_at = parse_iso8601(_text(item.get("added_at")))
                canonical = map_track(item.get("track"), added_at)
                if canonical is None:
                    continue
                track = await self._resolve_entry_track(
                    canonical, reconciler, source_index, track_index
                )
                if track is not None:
                    resolved.append((track, added_at))
            next_url = _next_url(page)
            if next_url is None:
                break
            page = await self._client.get_next_page(next_url, token)
        return resolved

    async def sync_albums(self) -> None:
        async with log_operation(logger, "sync.albums", source=self.source.value):
            token = await self._credentials.get_access_token()
            async with self._store_scope() as store:
                reconciler = self._reconciler(store)
                album_index = await self._album_index(store)

                page = await self._client.get_saved_albums(token, limit=self._page_limit)
                processed = 0
                while True:
                    for item in _page_items(page):
                        if not isinstance(item, dict):
                            continue
                        canonical = map_album(item.get("album"))
                        if canonical is None:
                            continue
                        reconciler.upsert_album(canonical, album_index)
                        processed += 1
                        await self._checkpoint(processed)
                    next_url = _next_url(page)
                    if next_url is None:
                        break
                    page = await self._client.get_next_page(next_url, token)

                await store.save()
