"""Tests for the Meevo token provider."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from linked_profiles.services.auth import (
    EXPIRY_MARGIN_SECONDS,
    AuthError,
    Token,
    TokenProvider,
)


class _Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _provider(post: AsyncMock, clock: _Clock | None = None) -> TokenProvider:
    http = MagicMock()
    http.post = post
    return TokenProvider(
        http,
        auth_url="https://auth.test/oauth2/token",
        client_id="cid",
        client_secret="secret",
        clock=clock or _Clock(),
    )


class TestTokenCaching:
    def test_fetches_token(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response(
            {"access_token": "tok-1", "expires_in": 3600},
        ))
        clock = _Clock()
        provider = _provider(post, clock)

        token = asyncio.run(provider.get_token())

        assert token.value == "tok-1"
        assert token.expires_at == clock.now + 3600
        assert post.call_args[1]["json"] == {"client_id": "cid", "client_secret": "secret"}

    def test_reuses_fresh_token(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response(
            {"access_token": "tok-1", "expires_in": 3600},
        ))
        provider = _provider(post)

        async def _twice():
            await provider.get_token()
            return await provider.get_token()

        assert asyncio.run(_twice()).value == "tok-1"
        assert post.call_count == 1

    def test_refreshes_inside_safety_margin(self, mock_meevo_response):
        post = AsyncMock(side_effect=[
            mock_meevo_response({"access_token": "tok-1", "expires_in": 3600}),
            mock_meevo_response({"access_token": "tok-2", "expires_in": 3600}),
        ])
        clock = _Clock()
        provider = _provider(post, clock)

        asyncio.run(provider.get_token())
        # Exactly at the five-minute margin
        clock.now += 3600 - EXPIRY_MARGIN_SECONDS
        token = asyncio.run(provider.get_token())

        assert token.value == "tok-2"
        assert post.call_count == 2

    def test_still_fresh_just_before_margin(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response(
            {"access_token": "tok-1", "expires_in": 3600},
        ))
        clock = _Clock()
        provider = _provider(post, clock)

        asyncio.run(provider.get_token())
        clock.now += 3600 - EXPIRY_MARGIN_SECONDS - 1
        asyncio.run(provider.get_token())

        assert post.call_count == 1

    def test_invalidate_forces_refetch(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response(
            {"access_token": "tok-1", "expires_in": 3600},
        ))
        provider = _provider(post)
        asyncio.run(provider.get_token())
        provider.invalidate()
        assert provider.cached is None
        asyncio.run(provider.get_token())
        assert post.call_count == 2


class TestTokenFreshness:
    def test_margin_applies(self):
        token = Token(value="t", expires_at=10_000.0)
        assert token.is_fresh(10_000.0 - EXPIRY_MARGIN_SECONDS - 1)
        assert not token.is_fresh(10_000.0 - EXPIRY_MARGIN_SECONDS)


class TestAuthFailures:
    def test_error_status_raises(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response({"error": "invalid_client"}, 401))
        provider = _provider(post)

        with pytest.raises(AuthError) as exc_info:
            asyncio.run(provider.get_token())
        assert exc_info.value.status_code == 401
        assert provider.cached is None

    def test_unreachable_endpoint_raises(self):
        post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        provider = _provider(post)

        with pytest.raises(AuthError) as exc_info:
            asyncio.run(provider.get_token())
        assert "unreachable" in str(exc_info.value)

    def test_missing_access_token_raises(self, mock_meevo_response):
        post = AsyncMock(return_value=mock_meevo_response({"expires_in": 3600}))
        provider = _provider(post)

        with pytest.raises(AuthError):
            asyncio.run(provider.get_token())

    def test_no_retry_on_failure(self):
        post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        provider = _provider(post)

        with pytest.raises(AuthError):
            asyncio.run(provider.get_token())
        assert post.call_count == 1
