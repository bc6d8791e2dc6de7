"""Shared test fixtures for the Linked Profiles test suite."""

from __future__ import annotations

import asyncio
import dataclasses
import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from linked_profiles.models import ClientRecord


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("MEEVO_CLIENT_ID", "test-meevo-client-id")
    os.environ.setdefault("MEEVO_CLIENT_SECRET", "test-meevo-client-secret")
    os.environ.setdefault("METRICS_ENABLED", "false")


class FakeMeevo:
    """In-memory stand-in for ``MeevoClient``.

    Listing pages hide ``guardian_id`` like the real directory does; detail
    and change-feed lookups return the full record.
    """

    def __init__(self) -> None:
        self.records: list = []
        self.changes: list = []
        self.failing_details: set[str] = set()
        self.failing_pages: set[int] = set()
        self.page_calls: list[int] = []
        self.change_calls: list[tuple[datetime, int]] = []
        self.detail_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add_client(
        self,
        client_id: str,
        first_name: str,
        last_name: str,
        *,
        phone: str | None = None,
        guardian_id: str | None = None,
        is_minor: bool = False,
        email: str | None = None,
    ):
        record = ClientRecord(
            client_id=client_id,
            first_name=first_name,
            last_name=last_name,
            primary_phone=phone,
            guardian_id=guardian_id,
            is_minor=is_minor,
            email=email,
        )
        self.records.append(record)
        return record

    def add_filler(self, count: int, *, prefix: str = "F", phone: bool = True) -> None:
        """Unrelated clients used to push records onto later pages."""
        for i in range(count):
            self.add_client(
                f"{prefix}{i}", "Filler", f"Person{i}",
                phone=f"602555{i:04d}" if phone else None,
            )

    # ── MeevoClient interface ─────────────────────────────────────────

    async def list_clients_page(self, location_id, page_number, items_per_page=100):
        self.page_calls.append(page_number)
        await asyncio.sleep(0)
        if page_number in self.failing_pages:
            return []
        start = (page_number - 1) * items_per_page
        page = self.records[start : start + items_per_page]
        return [dataclasses.replace(r, guardian_id=None) for r in page]

    async def get_client_detail(self, client_id, location_id, *, timeout=None):
        self.detail_calls.append(client_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if client_id in self.failing_details:
            return None
        return next((r for r in self.records if r.client_id == client_id), None)

    async def get_candidate_detail(self, client_id, location_id):
        return await self.get_client_detail(client_id, location_id)

    async def list_changes(self, location_id, since, page_number, items_per_page=100):
        self.change_calls.append((since, page_number))
        await asyncio.sleep(0)
        start = (page_number - 1) * items_per_page
        return self.changes[start : start + items_per_page]


@pytest.fixture
def fake_meevo() -> FakeMeevo:
    return FakeMeevo()


@pytest.fixture
def metrics_stub() -> MagicMock:
    """MetricsClient double so tests don't fill the global buffer."""
    return MagicMock()


@pytest.fixture
def mock_meevo_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
