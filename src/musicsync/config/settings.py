"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./musicsync.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # PostgreSQL only - SQLite ignores pool sizing
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


# Hey future me - these defaults mirror what Spotify actually does. 50 is the max page size for
# /me/tracks, /me/playlists and /me/albums. 5 attempts on 429 with a 5s fallback when Spotify
# doesn't send Retry-After. Don't raise page_limit above 50, Spotify answers 400 for that.
class SpotifySettings(BaseModel):
    """Spotify Web API settings."""

    client_id: str = ""
    client_secret: str = ""
    # Seeds the token provider so a headless deployment can sync without a browser login
    refresh_token: str = ""
    redirect_uri: str = "http://localhost:8000/api/auth/callback"
    api_base_url: str = "https://api.spotify.com/v1"
    token_url: str = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    page_limit: int = Field(default=50, ge=1, le=50)
    request_timeout: float = 30.0
    max_rate_limit_retries: int = Field(default=5, ge=1)
    rate_limit_fallback_seconds: float = Field(default=5.0, ge=0.0)


class LocalLibrarySettings(BaseModel):
    """Settings for the on-device library source."""

    music_path: Path = Path("./music")
    page_size: int = Field(default=100, ge=1)
    first_page_timeout: float = Field(default=60.0, gt=0.0)
    audio_extensions: list[str] = Field(
        default_factory=lambda: [".mp3", ".flac", ".m4a", ".ogg", ".opus", ".wav"]
    )
    playlist_extensions: list[str] = Field(default_factory=lambda: [".m3u", ".m3u8"])


class SyncSettings(BaseModel):
    """Sync scheduling settings."""

    staleness_threshold_seconds: float = Field(default=300.0, ge=0.0)
    yield_every: int = Field(default=100, ge=1)
    primary_source: str = "local_library"


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object.

    Nested sections are set with a double underscore, e.g.
    ``MUSICSYNC_SPOTIFY__CLIENT_ID=...`` or ``MUSICSYNC_SYNC__STALENESS_THRESHOLD_SECONDS=60``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MUSICSYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "musicsync"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    local_library: LocalLibrarySettings = Field(default_factory=LocalLibrarySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
