"""In-memory Spotify credential provider with transparent refresh."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from musicsync.config.settings import SpotifySettings
from musicsync.domain.exceptions import AuthenticationError
from musicsync.domain.ports import ICredentialProvider

logger = logging.getLogger(__name__)

# Refresh when the access token has less than this left
REFRESH_MARGIN = timedelta(seconds=60)


class SpotifyTokenProvider(ICredentialProvider):
    """Holds Spotify OAuth tokens in memory and refreshes them on demand.

    The browser login and secure storage live elsewhere; whoever completes the
    login hands the tokens over via ``set_tokens()``. A refresh token can also be
    seeded from settings so a headless deployment can sync without a login.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._clock = clock or (lambda: datetime.now(UTC))
        self._access_token: str | None = None
        self._refresh_token: str | None = settings.refresh_token or None
        self._expires_at: datetime | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return bool(self._refresh_token or self._access_token)

    def set_tokens(
        self, access_token: str, refresh_token: str | None, expires_in: int
    ) -> None:
        """Store tokens from a completed login or refresh."""
        self._access_token = access_token
        if refresh_token:
            self._refresh_token = refresh_token
        self._expires_at = self._clock() + timedelta(seconds=expires_in)

    def clear(self) -> None:
        """Forget every token (disconnect)."""
        self._access_token = None
        self._refresh_token = None
        self._expires_at = None

    def _valid_access_token(self) -> str | None:
        if self._access_token and self._expires_at is not None:
            if self._expires_at > self._clock() + REFRESH_MARGIN:
                return self._access_token
        return None

    async def get_access_token(self) -> str:
        token = self._valid_access_token()
        if token is not None:
            return token

        # Hey future me - the lock makes concurrent callers share ONE refresh. Spotify may rotate
        # the refresh token, and two parallel refreshes would race to store different ones.
        async with self._lock:
            token = self._valid_access_token()
            if token is not None:
                return token
            if not self._refresh_token:
                logger.error("Spotify get_access_token: not authenticated, no refresh token")
                raise AuthenticationError()
            tokens = await self._refresh(self._refresh_token)
            self.set_tokens(
                tokens["access_token"],
                tokens.get("refresh_token"),
                int(tokens.get("expires_in", 3600)),
            )
            logger.info("Spotify token refreshed")
            return tokens["access_token"]

    async def _refresh(self, refresh_token: str) -> dict[str, Any]:
        client = self._client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.client_id,
        }
        auth = None
        if self.settings.client_secret:
            auth = httpx.BasicAuth(self.settings.client_id, self.settings.client_secret)
        try:
            response = await client.post(
                self.settings.token_url,
                data=data,
                auth=auth,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(
                "Could not refresh Spotify session.", error_code="network_error"
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        # Spotify answers 400 {"error": "invalid_grant"} when the refresh token was revoked
        if response.status_code == 400:
            try:
                error_body = response.json()
            except ValueError:
                error_body = {}
            error_code = error_body.get("error", "") if isinstance(error_body, dict) else ""
            if error_code == "invalid_grant":
                self.clear()
                raise AuthenticationError(
                    "Spotify session expired. Please reconnect Spotify.",
                    error_code="invalid_grant",
                )
        if not response.is_success:
            raise AuthenticationError(
                f"Could not refresh Spotify session ({response.status_code}).",
                error_code="refresh_failed",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AuthenticationError(
                "Could not refresh Spotify session.", error_code="invalid_response"
            ) from e
        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthenticationError(
                "Could not refresh Spotify session.", error_code="invalid_response"
            )
        return body
