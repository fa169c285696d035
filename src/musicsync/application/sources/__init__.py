"""Provider adapters feeding the reconciler."""

from musicsync.application.sources.library_source import (
    BaseLibrarySyncSource,
    LibrarySyncSource,
    StoreScope,
)
from musicsync.application.sources.local_library_source import LocalLibrarySyncSource
from musicsync.application.sources.spotify_source import SpotifyLibrarySyncSource

__all__ = [
    "BaseLibrarySyncSource",
    "LibrarySyncSource",
    "LocalLibrarySyncSource",
    "SpotifyLibrarySyncSource",
    "StoreScope",
]
