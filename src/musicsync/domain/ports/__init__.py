"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any, TypeVar

from musicsync.domain.dtos import (
    LibraryPage,
    LocalAlbum,
    LocalPlaylist,
    LocalPlaylistEntry,
    LocalSong,
)

ModelT = TypeVar("ModelT")


# Hey future me, ILibraryStore is the ONLY way the sync engine touches storage! It is deliberately
# tiny: insert / delete / save / fetch. One store instance == one session == one run. insert() is
# synchronous because it only stages the entity (session.add); nothing hits the DB until save().
# fetch() takes SQLAlchemy criteria - the engine passes model columns, e.g.
# `store.fetch(SourceTrackModel, SourceTrackModel.source == "spotify")`.
class ILibraryStore(ABC):
    """Unit-of-work style storage contract for one sync run."""

    @abstractmethod
    def insert(self, entity: Any) -> None:
        """Stage a new entity for insertion."""
        pass

    @abstractmethod
    async def delete(self, entity: Any) -> None:
        """Stage an entity for deletion (cascades per the model)."""
        pass

    @abstractmethod
    async def save(self) -> None:
        """Commit staged changes.

        Raises:
            StorageUnavailableError: If the commit fails
        """
        pass

    @abstractmethod
    async def fetch(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Sequence[Any] = (),
    ) -> list[ModelT]:
        """Fetch all entities of a model matching the criteria."""
        pass

    @abstractmethod
    async def tracks_for_album(self, album_name: str, artist_name: str) -> list[Any]:
        """Tracks associated with an album by (album name, artist name)."""
        pass


class ILocalLibrarySource(ABC):
    """Paginated read access to the on-device music catalog.

    Cursors are opaque strings handed back via ``LibraryPage.next_cursor``;
    ``None`` requests the first page.
    """

    @abstractmethod
    async def is_authorized(self) -> bool:
        """Whether the app may read the catalog."""
        pass

    @abstractmethod
    async def songs(self, cursor: str | None = None) -> LibraryPage[LocalSong]:
        """Get one page of library songs."""
        pass

    @abstractmethod
    async def playlists(self, cursor: str | None = None) -> LibraryPage[LocalPlaylist]:
        """Get one page of library playlists."""
        pass

    @abstractmethod
    async def playlist_entries(self, playlist_id: str) -> list[LocalPlaylistEntry]:
        """Get every entry of a playlist in playlist order."""
        pass

    @abstractmethod
    async def albums(self, cursor: str | None = None) -> LibraryPage[LocalAlbum]:
        """Get one page of library albums."""
        pass


class ICredentialProvider(ABC):
    """Hands out a valid access token, refreshing transparently."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether credentials are present at all."""
        pass

    @abstractmethod
    async def get_access_token(self) -> str:
        """Get a valid access token.

        Raises:
            AuthenticationError: If no credentials exist or refresh failed
        """
        pass


# Hey future me, all Spotify methods return RAW JSON dicts. The Spotify source maps them to
# canonical values itself - the client stays a thin HTTP layer (auth header, rate limit, 429 retry,
# error translation). get_next_page follows the absolute `next` URL Spotify hands back.
class ISpotifyClient(ABC):
    """Port for the Spotify Web API read endpoints used by library sync."""

    @abstractmethod
    async def get_saved_tracks(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's saved tracks."""
        pass

    @abstractmethod
    async def get_user_playlists(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's playlists."""
        pass

    @abstractmethod
    async def get_playlist_tracks(
        self, playlist_id: str, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of a playlist's items."""
        pass

    @abstractmethod
    async def get_saved_albums(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's saved albums."""
        pass

    @abstractmethod
    async def get_next_page(self, url: str, access_token: str) -> dict[str, Any]:
        """Follow a ``next`` link from a previous page."""
        pass


class ISyncStateRepository(ABC):
    """Persists last-completion timestamps across restarts."""

    @abstractmethod
    async def get_all(self) -> dict[str, datetime]:
        """Get every stored timestamp keyed by state key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: datetime) -> None:
        """Store a timestamp."""
        pass

    @abstractmethod
    async def clear(self, key: str) -> None:
        """Forget a timestamp."""
        pass


__all__ = [
    "ICredentialProvider",
    "ILibraryStore",
    "ILocalLibrarySource",
    "ISpotifyClient",
    "ISyncStateRepository",
]
