"""musicsync - one deduplicated library from a local catalog and Spotify."""

__version__ = "0.1.0"
