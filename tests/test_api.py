"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from linked_profiles.server import app
from linked_profiles.services.auth import AuthError
from linked_profiles.services.lookup import LookupService

FOUND_PAYLOAD = {
    "success": True,
    "found": True,
    "caller": {
        "client_id": "C100", "first_name": "Maria", "last_name": "Lopez",
        "name": "Maria Lopez", "phone": "5551234567", "email": None,
    },
    "linked_profiles": [],
    "minors": [],
    "guests": [],
    "can_book_for": ["Maria (yourself)"],
    "total_linked": 0,
    "message": "No linked profiles found",
}


@pytest.fixture
def mock_service():
    """Attach a mock lookup service to app state (mirrors the lifespan)."""
    service = MagicMock()
    service.lookup = AsyncMock(return_value=FOUND_PAYLOAD)
    app.state.lookup_service = service
    yield service
    app.state.lookup_service = None


@pytest.fixture
def client(mock_service):
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "get-linked-profiles"
        assert "environment" in data
        assert "location" in data


class TestLookupEndpoint:
    @pytest.mark.parametrize("path", ["/get", "/lookup"])
    def test_returns_service_payload(self, client, mock_service, path):
        response = client.post(path, json={"phone": "+1 555 123 4567"})
        assert response.status_code == 200
        assert response.json() == FOUND_PAYLOAD
        mock_service.lookup.assert_awaited_once_with(
            phone="+1 555 123 4567", client_id=None, location_id=None,
        )

    def test_passes_client_id_and_location(self, client, mock_service):
        client.post("/get", json={"client_id": "C100", "location_id": "201664"})
        mock_service.lookup.assert_awaited_once_with(
            phone=None, client_id="C100", location_id="201664",
        )

    def test_numeric_phone_is_accepted(self, client, mock_service):
        response = client.post("/get", json={"phone": 5551234567})
        assert response.status_code == 200
        assert mock_service.lookup.call_args[1]["phone"] == "5551234567"

    def test_unknown_fields_are_ignored(self, client, mock_service):
        response = client.post("/get", json={"client_id": "C100", "call_id": "abc"})
        assert response.status_code == 200

    def test_auth_error_reported_in_body(self, client, mock_service):
        mock_service.lookup.side_effect = AuthError("Meevo auth failed with status 401")
        response = client.post("/get", json={"phone": "5551234567"})
        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "error": "Meevo auth failed with status 401",
        }

    def test_unexpected_error_is_not_leaked(self, client, mock_service):
        mock_service.lookup.side_effect = RuntimeError("database password is hunter2")
        response = client.post("/get", json={"phone": "5551234567"})
        data = response.json()
        assert data["success"] is False
        assert "hunter2" not in data["error"]
        assert "internal error" in data["error"].lower()

    def test_response_includes_request_id_header(self, client):
        response = client.post("/get", json={"phone": "5551234567"})
        assert "X-Request-ID" in response.headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.post(
            "/get",
            json={"phone": "5551234567"},
            headers={"X-Request-ID": "retell-call-123"},
        )
        assert response.headers["X-Request-ID"] == "retell-call-123"


class TestMissingInput:
    @pytest.fixture
    def upstream(self):
        upstream = MagicMock()
        app.state.lookup_service = LookupService(
            upstream, MagicMock(), MagicMock(), default_location_id="L1",
        )
        yield upstream
        app.state.lookup_service = None

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"location_id": "201664"},
            {"phone": "", "client_id": None},
            {"location_id": "x" * 500},
        ],
    )
    def test_missing_phone_and_client_id(self, upstream, body):
        response = TestClient(app).post("/lookup", json=body)

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Missing phone or client_id"}
        upstream.get_client_detail.assert_not_called()

    @pytest.mark.parametrize("path", ["/get", "/lookup"])
    def test_request_without_body(self, upstream, path):
        response = TestClient(app).post(path)

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Missing phone or client_id"}


class TestServiceNotReady:
    def test_returns_503_when_service_not_initialised(self):
        app.state.lookup_service = None
        response = TestClient(app).post("/get", json={"phone": "5551234567"})
        assert response.status_code == 503
        assert "starting up" in response.json()["detail"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "get-linked-profiles"
        assert data["health"] == "/health"
