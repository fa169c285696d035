"""External service integrations."""

from musicsync.infrastructure.integrations.local_file_library import FileSystemLibrarySource
from musicsync.infrastructure.integrations.spotify_client import SpotifyClient
from musicsync.infrastructure.integrations.spotify_token_provider import SpotifyTokenProvider

__all__ = [
    "FileSystemLibrarySource",
    "SpotifyClient",
    "SpotifyTokenProvider",
]
