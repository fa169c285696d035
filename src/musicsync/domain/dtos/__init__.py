"""Data transfer objects between providers and the reconciler.

Two families live here:

* Native records (``LocalSong``, ``LocalPlaylist``, ``LocalAlbum``) as produced by a
  local-library source. Spotify's native shapes are plain JSON dicts and are mapped
  directly inside the Spotify source.
* Canonical values (``CanonicalTrack``, ``CanonicalPlaylist``, ``CanonicalAlbum``), the
  provider-agnostic shape every source maps into before reconciliation. Canonical values
  are already cleaned: trimmed, placeholders substituted, durations clamped, artwork picked.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Generic, TypeVar

from musicsync.domain.entities import Source

T = TypeVar("T")


@dataclass(frozen=True)
class ArtworkCandidate:
    """One artwork size offered by a provider."""

    url: str
    width: int | None = None
    height: int | None = None


@dataclass
class LibraryPage(Generic[T]):
    """One page of a paginated catalog read.

    ``next_cursor`` is opaque to callers; pass it back to fetch the following page.
    """

    items: list[T]
    total: int | None = None
    next_cursor: str | None = None

    @property
    def has_next(self) -> bool:
        return self.next_cursor is not None


# =============================================================================
# Native local-library records
# =============================================================================


@dataclass
class LocalSong:
    """Song as reported by the on-device catalog."""

    id: str
    title: str | None
    artist_name: str | None
    album_title: str | None = None
    album_artist_name: str | None = None
    duration_seconds: float | None = None
    artwork: list[ArtworkCandidate] = field(default_factory=list)
    genre_names: list[str] = field(default_factory=list)
    release_date: date | None = None
    content_rating: str | None = None  # "explicit" | "clean" | None
    isrc: str | None = None
    disc_number: int | None = None
    track_number: int | None = None
    composer_name: str | None = None
    library_added_date: datetime | None = None
    play_count: int | None = None
    last_played_date: datetime | None = None
    rating: int | None = None


@dataclass
class LocalPlaylist:
    """Playlist from the on-device catalog."""

    id: str
    name: str | None
    description: str | None = None
    curator_name: str | None = None
    artwork: list[ArtworkCandidate] = field(default_factory=list)
    is_public: bool | None = None


@dataclass
class LocalPlaylistEntry:
    """One playlist slot. ``song`` is None for non-song items (videos, missing files)."""

    song: LocalSong | None
    added_at: datetime | None = None


@dataclass
class LocalAlbum:
    """Album from the on-device catalog."""

    id: str
    title: str | None
    artist_name: str | None
    artwork: list[ArtworkCandidate] = field(default_factory=list)
    release_date: date | None = None
    track_count: int = 0
    genre_names: list[str] = field(default_factory=list)


# =============================================================================
# Canonical values
# =============================================================================


@dataclass
class CanonicalTrack:
    """Provider-agnostic song record, ready for reconciliation."""

    source: Source
    source_id: str
    title: str
    artist_name: str
    album_name: str
    duration_ms: int = 0
    album_artist_name: str | None = None
    artwork_url: str | None = None
    genre_names: list[str] = field(default_factory=list)
    release_date: date | None = None
    is_explicit: bool = False
    isrc: str | None = None
    disc_number: int | None = None
    track_number: int | None = None
    composer_name: str | None = None
    added_at: datetime | None = None
    # Provider-specific stats, stored on the SourceTrack only
    play_count: int | None = None
    last_played_at: datetime | None = None
    rating: int | None = None
    popularity: int | None = None
    preview_url: str | None = None


@dataclass
class CanonicalPlaylist:
    """Provider-agnostic playlist header."""

    source: Source
    source_id: str
    name: str
    description: str | None = None
    artwork_url: str | None = None
    owner_name: str | None = None
    is_public: bool | None = None


@dataclass
class CanonicalAlbum:
    """Provider-agnostic saved album."""

    source: Source
    source_id: str
    name: str
    artist_name: str
    artwork_url: str | None = None
    release_date: date | None = None
    track_count: int = 0
    genre_names: list[str] = field(default_factory=list)


__all__ = [
    "ArtworkCandidate",
    "CanonicalAlbum",
    "CanonicalPlaylist",
    "CanonicalTrack",
    "LibraryPage",
    "LocalAlbum",
    "LocalPlaylist",
    "LocalPlaylistEntry",
    "LocalSong",
]
