"""Bearer-token provider for the Meevo public API.

The token is cached process-wide and reused until five minutes before it
expires.  Refreshes are not locked: two requests that both see an expired
token will both fetch a new one, which is harmless because token issuance
has no other side effects on Meevo.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from linked_profiles.config import (
    AUTH_TIMEOUT_SECONDS,
    MEEVO_AUTH_URL,
    MEEVO_CLIENT_ID,
    MEEVO_CLIENT_SECRET,
)

logger = logging.getLogger(__name__)

# Refresh this many seconds before the upstream expiry
EXPIRY_MARGIN_SECONDS = 300


class AuthError(Exception):
    """Raised when a token cannot be obtained from the Meevo auth endpoint."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Token:
    value: str
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at - EXPIRY_MARGIN_SECONDS


class TokenProvider:
    """Fetches and caches OAuth client-credential tokens."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        auth_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._http = http
        self._auth_url = auth_url or MEEVO_AUTH_URL
        self._client_id = client_id or MEEVO_CLIENT_ID
        self._client_secret = client_secret or MEEVO_CLIENT_SECRET
        self._clock = clock
        self._token: Token | None = None

    @property
    def cached(self) -> Token | None:
        """The last token obtained, fresh or not."""
        return self._token

    def invalidate(self) -> None:
        self._token = None

    async def get_token(self) -> Token:
        """Return a fresh token, fetching a new one if needed."""
        token = self._token
        if token is not None and token.is_fresh(self._clock()):
            return token

        token = await self._fetch()
        self._token = token
        return token

    async def _fetch(self) -> Token:
        logger.debug("Requesting new Meevo access token")
        try:
            response = await self._http.post(
                self._auth_url,
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
                timeout=AUTH_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            raise AuthError(
                f"Meevo auth endpoint unreachable: {type(exc).__name__}"
            ) from exc

        if response.status_code >= 400:
            raise AuthError(
                f"Meevo auth failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            value = data["access_token"]
            expires_in = float(data.get("expires_in", 0))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise AuthError("Meevo auth returned an unexpected body") from exc

        logger.info("Obtained Meevo access token (expires in %ds)", int(expires_in))
        return Token(value=value, expires_at=self._clock() + expires_in)
