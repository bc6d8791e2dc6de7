"""Async HTTP client for the Meevo public API (client directory, client
detail and the change-data-capture feed).

Read calls never raise on upstream trouble: a timeout, network error,
error status or malformed body is logged and turned into an empty page
(or ``None`` for a detail lookup).  Callers must read an empty page as
"no data from this page", not as proof that nothing exists.  Only
``AuthError`` from the token provider escapes, because without a token
nothing else can succeed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Iterable
from datetime import datetime
from typing import Any, TypeVar

import httpx

from linked_profiles.config import (
    CANDIDATE_TIMEOUT_SECONDS,
    CHANGE_FEED_TIMEOUT_SECONDS,
    DETAIL_TIMEOUT_SECONDS,
    MEEVO_API_URL,
    MEEVO_CHANGE_FEED_PATH,
    MEEVO_TENANT_ID,
    PAGE_TIMEOUT_SECONDS,
)
from linked_profiles.models import ClientRecord
from linked_profiles.services.auth import TokenProvider
from linked_profiles.services.metrics import MetricsClient, metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERVICE = "meevo"
DEFAULT_ITEMS_PER_PAGE = 100


class UpstreamTransportError(Exception):
    """A Meevo read failed (timeout, network, error status, bad body)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _unwrap(body: Any) -> Any:
    """Meevo wraps most payloads in ``{"data": ...}``; some detail calls don't."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _parse_record(item: Any) -> ClientRecord | None:
    """Build a record from one row, or ``None`` if the row is malformed."""
    if not isinstance(item, dict):
        return None
    try:
        return ClientRecord.from_api(item)
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
        logger.warning("Dropping malformed client row: %s: %s", type(exc).__name__, exc)
        return None


def _parse_records(payload: Any) -> list[ClientRecord]:
    if not isinstance(payload, list):
        return []
    records = []
    for item in payload:
        record = _parse_record(item)
        if record is not None:
            records.append(record)
    return records


async def gather_all(calls: Iterable[Awaitable[T]]) -> list[T]:
    """Await every call of a concurrent group, then re-raise the first
    error (in practice ``AuthError``) once nothing is left in flight."""
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class MeevoClient:
    """Thin async wrapper around the Meevo read endpoints used by the
    lookup service.  One instance (and one connection pool) per process.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        tokens: TokenProvider,
        *,
        base_url: str | None = None,
        tenant_id: str | None = None,
        change_feed_path: str | None = None,
        metrics_client: MetricsClient | None = None,
    ):
        self._http = http
        self._tokens = tokens
        self._base_url = (base_url or MEEVO_API_URL).rstrip("/")
        self._tenant_id = tenant_id or MEEVO_TENANT_ID
        self._change_feed_path = change_feed_path or MEEVO_CHANGE_FEED_PATH
        self._metrics = metrics_client or metrics

    # ── Internal helpers ─────────────────────────────────────────────

    async def _get(
        self,
        path: str,
        *,
        params: dict[str, Any],
        timeout: float,
        operation: str,
    ) -> Any:
        """GET *path* and return the unwrapped JSON payload.

        Raises ``UpstreamTransportError`` on any failure except auth.
        """
        token = await self._tokens.get_token()
        started = time.perf_counter()
        try:
            response = await self._http.get(
                f"{self._base_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token.value}"},
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self._metrics.record_failure(
                SERVICE, operation, type(exc).__name__, latency_ms=elapsed_ms,
            )
            raise UpstreamTransportError(
                f"{operation} failed: {type(exc).__name__}"
            ) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        if response.status_code >= 400:
            if response.status_code == 401:
                # Revoked early; the next call fetches a new token
                self._tokens.invalidate()
            self._metrics.record_failure(
                SERVICE, operation, f"{response.status_code // 100}xx",
                latency_ms=elapsed_ms,
            )
            raise UpstreamTransportError(
                f"{operation} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            self._metrics.record_failure(
                SERVICE, operation, "InvalidJSON", latency_ms=elapsed_ms,
            )
            raise UpstreamTransportError(f"{operation} returned invalid JSON") from exc

        self._metrics.record_success(SERVICE, operation, latency_ms=elapsed_ms)
        return _unwrap(body)

    # ── Public API methods ───────────────────────────────────────────

    async def list_clients_page(
        self,
        location_id: str,
        page_number: int,
        items_per_page: int = DEFAULT_ITEMS_PER_PAGE,
    ) -> list[ClientRecord]:
        """Return one page of the client directory (empty on failure).

        Listing rows carry name and primary phone but not ``guardian_id``.
        """
        try:
            payload = await self._get(
                "/clients",
                params={
                    "tenantid": self._tenant_id,
                    "locationid": location_id,
                    "PageNumber": page_number,
                    "ItemsPerPage": items_per_page,
                },
                timeout=PAGE_TIMEOUT_SECONDS,
                operation="GET /clients",
            )
        except UpstreamTransportError as exc:
            logger.warning("Directory page %d skipped: %s", page_number, exc)
            return []
        return _parse_records(payload)

    async def get_client_detail(
        self,
        client_id: str,
        location_id: str,
        *,
        timeout: float | None = None,
    ) -> ClientRecord | None:
        """Fetch the full client record.  ``None`` when missing or on failure."""
        try:
            payload = await self._get(
                f"/client/{client_id}",
                params={"TenantId": self._tenant_id, "LocationId": location_id},
                timeout=timeout or DETAIL_TIMEOUT_SECONDS,
                operation="GET /client",
            )
        except UpstreamTransportError as exc:
            logger.warning("Detail for client %s unavailable: %s", client_id, exc)
            return None
        return _parse_record(payload)

    async def get_candidate_detail(
        self, client_id: str, location_id: str,
    ) -> ClientRecord | None:
        """Detail lookup with the tighter timeout used during discovery scans."""
        return await self.get_client_detail(
            client_id, location_id, timeout=CANDIDATE_TIMEOUT_SECONDS,
        )

    async def list_changes(
        self,
        location_id: str,
        since: datetime,
        page_number: int,
        items_per_page: int = DEFAULT_ITEMS_PER_PAGE,
    ) -> list[ClientRecord]:
        """Return one page of client snapshots changed since *since*.

        Change-feed snapshots include ``guardian_id``, so no detail fetch
        is needed to confirm them.
        """
        try:
            payload = await self._get(
                self._change_feed_path,
                params={
                    "tenantid": self._tenant_id,
                    "locationid": location_id,
                    "StartDate": since.strftime("%Y-%m-%dT%H:%M:%S"),
                    "PageNumber": page_number,
                    "ItemsPerPage": items_per_page,
                },
                timeout=CHANGE_FEED_TIMEOUT_SECONDS,
                operation="GET /cdc/client",
            )
        except UpstreamTransportError as exc:
            logger.warning("Change-feed page %d skipped: %s", page_number, exc)
            return []
        return _parse_records(payload)
