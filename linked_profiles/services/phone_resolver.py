"""Find a caller's client record by phone number.

Meevo cannot filter the directory by phone, so we page through it in
batches of pages fetched concurrently and compare normalized numbers.
"""

from __future__ import annotations

import logging

from linked_profiles.models import ClientRecord, normalize_phone
from linked_profiles.services.meevo_client import MeevoClient, gather_all

logger = logging.getLogger(__name__)

PAGES_PER_BATCH = 10
ITEMS_PER_PAGE = 100
# 20 batches x 10 pages x 100 items = 20,000 records scanned at most
MAX_BATCHES = 20


class PhoneResolver:
    def __init__(
        self,
        client: MeevoClient,
        *,
        pages_per_batch: int = PAGES_PER_BATCH,
        items_per_page: int = ITEMS_PER_PAGE,
        max_batches: int = MAX_BATCHES,
    ):
        self._client = client
        self._pages_per_batch = pages_per_batch
        self._items_per_page = items_per_page
        self._max_batches = max_batches

    async def resolve_by_phone(self, phone: str, location_id: str) -> ClientRecord | None:
        """Return the first directory record whose phone matches, or ``None``.

        Matches are taken in page order, then in the order Meevo lists
        records within a page.  The scan stops when a whole batch comes
        back empty or after ``max_batches`` batches.
        """
        target = normalize_phone(phone)
        if not target:
            logger.info("Phone %r has no digits; skipping directory scan", phone)
            return None

        for batch in range(self._max_batches):
            start_page = batch * self._pages_per_batch + 1
            pages = await gather_all(
                self._client.list_clients_page(location_id, page, self._items_per_page)
                for page in range(start_page, start_page + self._pages_per_batch)
            )

            for records in pages:
                for record in records:
                    if record.normalized_phone == target:
                        logger.info(
                            "Phone ...%s matched client %s (batch %d)",
                            target[-4:], record.client_id, batch + 1,
                        )
                        return record

            if all(not records for records in pages):
                logger.debug("Directory exhausted after %d batch(es)", batch + 1)
                break

        logger.info("No client found for phone ...%s", target[-4:])
        return None
