"""On-device music catalog read from a music directory with mutagen."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError

from musicsync.config.settings import LocalLibrarySettings
from musicsync.domain.dtos import (
    ArtworkCandidate,
    LibraryPage,
    LocalAlbum,
    LocalPlaylist,
    LocalPlaylistEntry,
    LocalSong,
)
from musicsync.domain.ports import ILocalLibrarySource
from musicsync.domain.value_objects import parse_release_date

logger = logging.getLogger(__name__)

COVER_FILE_NAMES = ("cover", "folder", "front", "album")
COVER_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

# Tag key -> field. Covers ID3 (MP3), Vorbis comments (FLAC/OGG/Opus) and MP4 atoms (M4A).
TAG_MAPPINGS: dict[str, str] = {
    # ID3
    "TIT2": "title",
    "TPE1": "artist",
    "TPE2": "album_artist",
    "TALB": "album",
    "TRCK": "track_number",
    "TPOS": "disc_number",
    "TDRC": "date",
    "TYER": "date",
    "TCON": "genre",
    "TCOM": "composer",
    "TSRC": "isrc",
    "TXXX:ITUNESADVISORY": "advisory",
    # Vorbis
    "title": "title",
    "artist": "artist",
    "albumartist": "album_artist",
    "album artist": "album_artist",
    "album": "album",
    "tracknumber": "track_number",
    "discnumber": "disc_number",
    "date": "date",
    "genre": "genre",
    "composer": "composer",
    "isrc": "isrc",
    "itunesadvisory": "advisory",
    # MP4
    "©nam": "title",
    "©ART": "artist",
    "aART": "album_artist",
    "©alb": "album",
    "©day": "date",
    "©gen": "genre",
    "©wrt": "composer",
    "trkn": "track_number",
    "disk": "disc_number",
    "rtng": "advisory",
    "----:com.apple.iTunes:ISRC": "isrc",
}

# iTunes advisory values: 1 and 4 are explicit, 2 is clean
EXPLICIT_ADVISORY = {"1", "4"}
CLEAN_ADVISORY = {"2"}


def _first_text(value: Any) -> Any:
    if hasattr(value, "text"):
        value = value.text
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return value


def _parse_number(value: Any) -> int | None:
    """Parse 3, "3", "3/12" or MP4's (3, 12) into 3."""
    if isinstance(value, tuple):
        value = value[0] if value else None
    if isinstance(value, str) and "/" in value:
        value = value.split("/")[0]
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def read_tags(path: Path) -> dict[str, Any]:
    """Read the tags we care about from one audio file.

    Always returns a dict; unreadable files yield only what the filesystem knows.
    """
    tags: dict[str, Any] = {}
    try:
        audio = MutagenFile(path)
    except (MutagenError, OSError) as e:
        logger.warning(f"Could not read tags from {path.name}: {e}")
        return tags
    if audio is None:
        logger.debug(f"MutagenFile returned None for {path.name}")
        return tags

    length = getattr(getattr(audio, "info", None), "length", None)
    if length:
        tags["duration_seconds"] = float(length)

    audio_tags = audio.tags
    if not audio_tags:
        return tags

    for tag_key, field_name in TAG_MAPPINGS.items():
        key = "genres" if field_name == "genre" else field_name
        if key in tags or tag_key not in audio_tags:
            continue
        raw = audio_tags[tag_key]
        if field_name == "genre":
            values = raw.text if hasattr(raw, "text") else raw
            if not isinstance(values, list):
                values = [values]
            tags["genres"] = [str(v).strip() for v in values if str(v).strip()]
            continue
        if field_name in ("track_number", "disc_number"):
            if isinstance(raw, list) and raw and isinstance(raw[0], tuple):
                tags[field_name] = _parse_number(raw[0])
            else:
                tags[field_name] = _parse_number(_first_text(raw))
            continue
        value = _first_text(raw)
        if value is not None:
            tags[field_name] = str(value).strip()

    # ID3 play counter / popularimeter: rating 0-255 -> 0-5 stars
    if hasattr(audio_tags, "getall"):
        for frame in audio_tags.getall("POPM"):
            tags.setdefault("play_count", getattr(frame, "count", None))
            rating = getattr(frame, "rating", None)
            if rating:
                tags.setdefault("rating", round(rating / 51))
        for frame in audio_tags.getall("PCNT"):
            tags.setdefault("play_count", getattr(frame, "count", None))

    return tags


@dataclass
class _Catalog:
    songs: list[LocalSong] = field(default_factory=list)
    songs_by_path: dict[Path, LocalSong] = field(default_factory=dict)
    playlists: list[tuple[LocalPlaylist, Path]] = field(default_factory=list)
    albums: list[LocalAlbum] = field(default_factory=list)


# Hey future me, this is the concrete ILocalLibrarySource. The sync engine never sees files or tags,
# only LocalSong/LocalPlaylist/LocalAlbum pages. Song ids are the path relative to music_path (POSIX
# style) so they stay stable across restarts and machines - rename a file and it's a new song.
# The scan is blocking file IO + tag parsing, so it runs in a worker thread via asyncio.to_thread.
# songs() without a cursor rescans; every later page, playlists() and albums() reuse that scan.
class FileSystemLibrarySource(ILocalLibrarySource):
    """Music-directory backed local library."""

    def __init__(
        self,
        settings: LocalLibrarySettings,
        tag_reader: Callable[[Path], dict[str, Any]] = read_tags,
    ) -> None:
        self.settings = settings
        self._root = Path(settings.music_path)
        self._tag_reader = tag_reader
        self._catalog: _Catalog | None = None
        self._audio_extensions = {ext.lower() for ext in settings.audio_extensions}
        self._playlist_extensions = {ext.lower() for ext in settings.playlist_extensions}

    async def is_authorized(self) -> bool:
        return self._root.is_dir()

    async def _get_catalog(self, refresh: bool = False) -> _Catalog:
        if self._catalog is None or refresh:
            self._catalog = await asyncio.to_thread(self._scan)
        return self._catalog

    def _page(self, items: list[Any], cursor: str | None) -> LibraryPage[Any]:
        offset = int(cursor) if cursor else 0
        end = offset + self.settings.page_size
        return LibraryPage(
            items=items[offset:end],
            total=len(items),
            next_cursor=str(end) if end < len(items) else None,
        )

    async def songs(self, cursor: str | None = None) -> LibraryPage[LocalSong]:
        catalog = await self._get_catalog(refresh=cursor is None)
        return self._page(catalog.songs, cursor)

    async def playlists(self, cursor: str | None = None) -> LibraryPage[LocalPlaylist]:
        catalog = await self._get_catalog()
        return self._page([playlist for playlist, _ in catalog.playlists], cursor)

    async def playlist_entries(self, playlist_id: str) -> list[LocalPlaylistEntry]:
        catalog = await self._get_catalog()
        for playlist, path in catalog.playlists:
            if playlist.id == playlist_id:
                return await asyncio.to_thread(self._read_playlist_entries, path, catalog)
        return []

    async def albums(self, cursor: str | None = None) -> LibraryPage[LocalAlbum]:
        catalog = await self._get_catalog()
        return self._page(catalog.albums, cursor)

    # -------------------------------------------------------------------------
    # Scanning (worker thread)
    # -------------------------------------------------------------------------

    def _scan(self) -> _Catalog:
        catalog = _Catalog()
        if not self._root.is_dir():
            logger.warning(f"Music directory {self._root} does not exist")
            return catalog

        files = sorted(p for p in self._root.rglob("*") if p.is_file())
        for path in files:
            suffix = path.suffix.lower()
            if suffix in self._audio_extensions:
                song = self._read_song(path)
                catalog.songs.append(song)
                catalog.songs_by_path[path.resolve()] = song
            elif suffix in self._playlist_extensions:
                catalog.playlists.append((self._read_playlist_header(path), path))

        catalog.albums = self._group_albums(catalog.songs)
        logger.info(
            f"Scanned {self._root}: {len(catalog.songs)} songs, "
            f"{len(catalog.playlists)} playlists, {len(catalog.albums)} albums"
        )
        return catalog

    def _relative_id(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    def _artwork_for(self, directory: Path) -> list[ArtworkCandidate]:
        candidates = []
        for name in COVER_FILE_NAMES:
            for ext in COVER_EXTENSIONS:
                cover = directory / f"{name}{ext}"
                if cover.is_file():
                    candidates.append(ArtworkCandidate(url=cover.resolve().as_uri()))
        return candidates

    def _read_song(self, path: Path) -> LocalSong:
        tags = self._tag_reader(path)
        advisory = str(tags.get("advisory") or "").strip()
        content_rating = None
        if advisory in EXPLICIT_ADVISORY:
            content_rating = "explicit"
        elif advisory in CLEAN_ADVISORY:
            content_rating = "clean"

        return LocalSong(
            id=self._relative_id(path),
            title=tags.get("title") or path.stem,
            artist_name=tags.get("artist"),
            album_title=tags.get("album"),
            album_artist_name=tags.get("album_artist"),
            duration_seconds=tags.get("duration_seconds"),
            artwork=self._artwork_for(path.parent),
            genre_names=list(tags.get("genres") or []),
            release_date=parse_release_date(tags.get("date")),
            content_rating=content_rating,
            isrc=tags.get("isrc"),
            disc_number=tags.get("disc_number"),
            track_number=tags.get("track_number"),
            composer_name=tags.get("composer"),
            library_added_date=datetime.fromtimestamp(path.stat().st_mtime, tz=UTC),
            play_count=tags.get("play_count"),
            last_played_date=None,
            rating=tags.get("rating"),
        )

    def _read_lines(self, path: Path) -> list[str]:
        # .m3u is traditionally latin-1, .m3u8 is UTF-8
        encoding = "utf-8" if path.suffix.lower() == ".m3u8" else "latin-1"
        return path.read_text(encoding=encoding, errors="replace").splitlines()

    def _read_playlist_header(self, path: Path) -> LocalPlaylist:
        name = path.stem
        for line in self._read_lines(path):
            if line.startswith("#PLAYLIST:"):
                name = line.removeprefix("#PLAYLIST:").strip() or name
                break
        return LocalPlaylist(
            id=self._relative_id(path),
            name=name,
            artwork=self._artwork_for(path.parent),
        )

    def _read_playlist_entries(self, path: Path, catalog: _Catalog) -> list[LocalPlaylistEntry]:
        entries: list[LocalPlaylistEntry] = []
        for raw_line in self._read_lines(path):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            target = Path(line)
            if not target.is_absolute():
                target = path.parent / target
            entries.append(LocalPlaylistEntry(song=catalog.songs_by_path.get(target.resolve())))
        return entries

    def _group_albums(self, songs: list[LocalSong]) -> list[LocalAlbum]:
        groups: dict[tuple[str, str], list[LocalSong]] = {}
        for song in songs:
            album_title = (song.album_title or "").strip()
            if not album_title:
                continue
            artist = (song.album_artist_name or song.artist_name or "").strip()
            groups.setdefault((album_title, artist), []).append(song)

        albums = []
        for (album_title, artist), members in groups.items():
            release_dates = [s.release_date for s in members if s.release_date is not None]
            artwork = next((s.artwork for s in members if s.artwork), [])
            albums.append(
                LocalAlbum(
                    id=f"{artist}/{album_title}".lower(),
                    title=album_title,
                    artist_name=artist or None,
                    artwork=artwork,
                    release_date=min(release_dates) if release_dates else None,
                    track_count=len(members),
                    genre_names=sorted({g for s in members for g in s.genre_names}),
                )
            )
        return albums
