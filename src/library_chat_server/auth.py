"""
OAuth2 client-credentials token for Springshare APIs (LibCal, LibAnswers).

The token is fetched lazily, reused until shortly before it expires, and
can be kept fresh by a background refresh loop for the server's lifetime.
"""

import asyncio
import logging
import time

import httpx

from .config import SpringshareConfig

logger = logging.getLogger(__name__)

# Refresh this many seconds before the advertised expiry
EXPIRY_MARGIN_SECONDS = 60.0


class AuthorizationError(Exception):
    """Raised when no access token can be obtained."""


class SpringshareAuthorizer:
    """Caches and refreshes a bearer token."""

    def __init__(self, config: SpringshareConfig, clock=time.monotonic):
        self.config = config
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    async def get_token(self) -> str:
        """Return a valid access token, fetching one if needed."""
        if self._is_fresh():
            return self._token
        async with self._lock:
            if not self._is_fresh():
                await self.refresh()
            return self._token

    async def refresh(self) -> str:
        """Fetch a new token unconditionally."""
        secret = self.config.get_client_secret()
        if not self.config.client_id or not secret:
            raise AuthorizationError("Springshare client credentials are not configured")

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.config.token_url,
                    data={
                        "client_id": self.config.client_id,
                        "client_secret": secret,
                        "grant_type": "client_credentials",
                    },
                    timeout=30.0,
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Token request to {self.config.token_url} failed: {e}")
                raise AuthorizationError(f"Token request failed: {e}") from e

        if not isinstance(data, dict):
            raise AuthorizationError("Token response is not a JSON object")

        token = data.get("access_token")
        if not token:
            raise AuthorizationError("Token response has no access_token")

        try:
            expires_in = float(data.get("expires_in") or 3600)
        except (TypeError, ValueError) as e:
            raise AuthorizationError(f"Token response has invalid expires_in: {e}") from e
        self._token = token
        self._expires_at = self._clock() + max(0.0, expires_in - EXPIRY_MARGIN_SECONDS)
        logger.debug(f"Springshare token refreshed, valid for {expires_in:.0f}s")
        return token

    async def run_refresh_loop(self) -> None:
        """Refresh on a fixed interval until cancelled."""
        interval = self.config.refresh_interval_seconds
        while True:
            try:
                await self.refresh()
            except AuthorizationError as e:
                logger.warning(f"Token refresh failed, will retry: {e}")
            await asyncio.sleep(interval)
