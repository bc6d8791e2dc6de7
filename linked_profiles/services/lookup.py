"""Caller lookup: resolve the caller, fetch their record, discover the
profiles they can book for, and build the response payload.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from linked_profiles.config import MEEVO_LOCATION_ID
from linked_profiles.services import assembler
from linked_profiles.services.auth import TokenProvider
from linked_profiles.services.discovery import LinkedProfileDiscoverer, build_discoverer
from linked_profiles.services.meevo_client import MeevoClient
from linked_profiles.services.phone_resolver import PhoneResolver

logger = logging.getLogger(__name__)

MISSING_INPUT_ERROR = "Missing phone or client_id"
CALLER_DETAILS_ERROR = "Could not retrieve caller details"


class LookupService:
    def __init__(
        self,
        client: MeevoClient,
        resolver: PhoneResolver,
        discoverer: LinkedProfileDiscoverer,
        *,
        default_location_id: str | None = None,
    ):
        self._client = client
        self._resolver = resolver
        self._discoverer = discoverer
        self._default_location_id = default_location_id or MEEVO_LOCATION_ID

    async def lookup(
        self,
        *,
        phone: str | None = None,
        client_id: str | None = None,
        location_id: str | None = None,
    ) -> dict[str, Any]:
        """Return the lookup payload for a caller.

        ``client_id`` wins when both identifiers are given.  ``AuthError``
        propagates; every other upstream problem is absorbed further down.
        """
        if not phone and not client_id:
            return assembler.error_response(MISSING_INPUT_ERROR)

        location_id = location_id or self._default_location_id
        listing = None
        caller_id = client_id

        if not caller_id:
            listing = await self._resolver.resolve_by_phone(phone, location_id)
            if listing is None:
                return assembler.not_found_response()
            caller_id = listing.client_id

        caller = await self._client.get_client_detail(caller_id, location_id)
        if caller is None:
            logger.warning("Caller %s has no retrievable detail record", caller_id)
            return assembler.error_response(CALLER_DETAILS_ERROR)

        profiles = await self._discoverer.discover(caller_id, caller.last_name, location_id)
        return assembler.found_response(
            caller,
            profiles,
            fallback_phone=listing.primary_phone if listing else None,
        )


def create_lookup_service(
    http: httpx.AsyncClient,
    *,
    strategy: str | None = None,
) -> LookupService:
    """Wire the token provider, Meevo client, resolver and discoverer
    around one shared HTTP connection pool."""
    client = MeevoClient(http, TokenProvider(http))
    return LookupService(
        client,
        PhoneResolver(client),
        build_discoverer(client, strategy),
    )
