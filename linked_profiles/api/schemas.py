"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from linked_profiles.config import ENVIRONMENT, LOCATION_NAME, SERVICE_NAME


class LookupRequest(BaseModel):
    """Lookup request from the voice agent.  Either identifier may be sent;
    the route reports a missing pair in the response body, not as a 422."""

    # Voice platforms sometimes send phone numbers as JSON numbers
    model_config = ConfigDict(coerce_numbers_to_str=True)

    phone: str | None = Field(None, description="Caller phone number, any format")
    client_id: str | None = Field(None, description="Meevo client id")
    location_id: str | None = Field(None, description="Meevo location id")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    environment: str = ENVIRONMENT
    location: str = LOCATION_NAME
    service: str = SERVICE_NAME
