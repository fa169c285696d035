"""Spotify Web API client for library reads."""

import logging
from typing import Any, cast

import httpx

from musicsync.config.settings import SpotifySettings
from musicsync.domain.exceptions import (
    ExternalServiceError,
    InvalidResponseError,
    RateLimitExceededError,
    SyncError,
    SyncTimeoutError,
)
from musicsync.domain.ports import ISpotifyClient
from musicsync.infrastructure.rate_limiter import RateLimiter, get_spotify_limiter

logger = logging.getLogger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str | None:
    """Extract ``error.message`` from a Spotify error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            return message if isinstance(message, str) and message else None
    return None


class SpotifyClient(ISpotifyClient):
    """HTTP client for the Spotify library endpoints (saved tracks, playlists, albums)."""

    # Hey future me, we DON'T create the HTTP client here - it gets lazily created in
    # _get_client() on the running loop. Tests inject their own client (MockTransport).
    def __init__(
        self,
        settings: SpotifySettings,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._rate_limiter = rate_limiter

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    def _get_rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = get_spotify_limiter(self.settings.rate_limit_fallback_seconds)
        return self._rate_limiter

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Hey future me - ALL Spotify calls go through here! It owns:
    # - the token bucket (one shared limiter)
    # - 429 handling: wait Retry-After (or the fallback) and retry, at most
    #   max_rate_limit_retries attempts in total, then RateLimitExceededError
    # - translating httpx failures and non-2xx answers into our SyncError family
    # Callers get decoded JSON or a typed exception, never an httpx error.
    async def _get_json(
        self,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        rate_limiter = self._get_rate_limiter()
        headers = {"Authorization": f"Bearer {access_token}"}
        max_attempts = self.settings.max_rate_limit_retries

        for attempt in range(1, max_attempts + 1):
            try:
                async with rate_limiter:
                    response = await client.get(url, params=params, headers=headers)
            except httpx.TimeoutException as e:
                raise SyncTimeoutError(timeout_seconds=self.settings.request_timeout) from e
            except httpx.HTTPError as e:
                raise SyncError(f"Could not reach Spotify: {e.__class__.__name__}") from e

            if response.status_code == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                if attempt >= max_attempts:
                    logger.error(
                        f"Spotify API rate limited (429) after {attempt} attempts. URL: {url}"
                    )
                    raise RateLimitExceededError(retry_after=retry_after)
                wait_time = await rate_limiter.handle_rate_limit_response(retry_after)
                logger.warning(
                    f"Spotify 429 Rate Limit (attempt {attempt}/{max_attempts}): "
                    f"waited {wait_time:.1f}s, retrying {url}"
                )
                continue

            if not response.is_success:
                message = _error_message(response)
                if response.status_code == 403:
                    logger.error(f"Spotify 403 response: {response.text[:500]}")
                raise ExternalServiceError(response.status_code, message)

            try:
                body = response.json()
            except ValueError as e:
                raise InvalidResponseError() from e
            if not isinstance(body, dict):
                raise InvalidResponseError()
            return cast(dict[str, Any], body)

        # Loop always returns or raises; max_rate_limit_retries is validated >= 1
        raise RateLimitExceededError()

    async def get_saved_tracks(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's Liked Songs.

        Returns:
            Paginated response with ``items`` (each ``added_at`` + ``track``),
            ``next`` and ``total``.
        """
        return await self._get_json(
            f"{self.settings.api_base_url}/me/tracks",
            access_token,
            params={"limit": min(limit, 50), "offset": offset},
        )

    async def get_user_playlists(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's playlists (owned and followed)."""
        return await self._get_json(
            f"{self.settings.api_base_url}/me/playlists",
            access_token,
            params={"limit": min(limit, 50), "offset": offset},
        )

    # additional_types=track asks Spotify to leave podcast episodes out where it can; the
    # source still skips any non-track item that slips through.
    async def get_playlist_tracks(
        self, playlist_id: str, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of a playlist's items."""
        return await self._get_json(
            f"{self.settings.api_base_url}/playlists/{playlist_id}/tracks",
            access_token,
            params={
                "limit": min(limit, 100),
                "offset": offset,
                "additional_types": "track",
            },
        )

    async def get_saved_albums(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get a page of the user's saved albums."""
        return await self._get_json(
            f"{self.settings.api_base_url}/me/albums",
            access_token,
            params={"limit": min(limit, 50), "offset": offset},
        )

    async def get_next_page(self, url: str, access_token: str) -> dict[str, Any]:
        """Follow an absolute ``next`` URL from a previous page."""
        return await self._get_json(url, access_token)

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
