"""FastAPI route definitions for the linked-profiles API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from linked_profiles.api.schemas import HealthResponse, LookupRequest
from linked_profiles.services.assembler import error_response
from linked_profiles.services.auth import AuthError
from linked_profiles.services.lookup import LookupService

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_lookup_service(request: Request) -> LookupService:
    """Retrieve the lookup service created by the FastAPI lifespan."""
    service = getattr(request.app.state, "lookup_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return service


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/get")
@router.post("/lookup")
async def get_linked_profiles(http_request: Request, body: LookupRequest | None = None):
    """Return the caller's account and every profile they can book for.

    Failures are reported in the body (``success: false``) with HTTP 200,
    which is what the voice platform's tool-call integration expects.
    """
    body = body or LookupRequest()
    service = _get_lookup_service(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.info(
        "[%s] lookup phone=%s client_id=%s location_id=%s",
        request_id,
        "yes" if body.phone else "no",
        body.client_id,
        body.location_id,
    )

    try:
        return await service.lookup(
            phone=body.phone,
            client_id=body.client_id,
            location_id=body.location_id,
        )
    except AuthError as exc:
        logger.error("[%s] Meevo authentication failed: %s", request_id, exc)
        return error_response(str(exc))
    except Exception:
        logger.exception("[%s] Error processing lookup", request_id)
        return error_response("An internal error occurred. Please try again.")
