"""Linked-profile discovery: find every client whose ``guardian_id`` points
at the caller.

Meevo cannot filter the directory by guardian, so discovery is a scan.
A strategy is an ordered list of *candidate sources*; each source yields
groups of records to check, and a fixed confirmation step keeps a record
only when its ``guardian_id`` equals the caller's id exactly.  Listing
fields (missing phone, shared surname) are pre-filters that decide which
records are worth a detail fetch; they never confirm a link on their own.

Sources after the first are fallbacks: they only run while nothing has
been found yet.

Completeness is best-effort.  A page or detail fetch that fails is
skipped (counted in ``DiscoverySession.skipped``) and the scan carries
on, so a flaky upstream can produce a short list but never a failed
request.  Results are ordered by discovery, not sorted.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from linked_profiles import config
from linked_profiles.models import ClientRecord, DiscoverySession, LinkedProfile
from linked_profiles.services.meevo_client import MeevoClient, gather_all
from linked_profiles.services.metrics import MetricsClient, metrics

logger = logging.getLogger(__name__)

PAGES_PER_GROUP = 10
ITEMS_PER_PAGE = 100
DETAIL_BATCH_SIZE = 50
RECENCY_PAGE_RANGES: list[tuple[int, int]] = [(150, 200), (100, 150), (50, 100), (1, 50)]


# ── Candidate filters ────────────────────────────────────────────────

CandidateFilter = Callable[[ClientRecord, DiscoverySession], bool]


def without_phone(record: ClientRecord, session: DiscoverySession) -> bool:
    """Dependents are usually created without a phone of their own."""
    return not record.normalized_phone


def same_surname(record: ClientRecord, session: DiscoverySession) -> bool:
    if not session.guardian_last_name or not record.last_name:
        return False
    return record.last_name.strip().casefold() == session.guardian_last_name.strip().casefold()


def any_record(record: ClientRecord, session: DiscoverySession) -> bool:
    return True


CANDIDATE_FILTERS: dict[str, CandidateFilter] = {
    "no_phone": without_phone,
    "surname": same_surname,
    "any": any_record,
}


def get_candidate_filter(name: str) -> CandidateFilter:
    try:
        return CANDIDATE_FILTERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown candidate filter {name!r}; expected one of {sorted(CANDIDATE_FILTERS)}"
        ) from None


# ── Candidate sources ────────────────────────────────────────────────


@dataclass
class ScanGroup:
    """Records produced by one concurrent group of page fetches.

    ``confirmed`` groups already carry ``guardian_id`` (change feed);
    the others are listing rows that need a detail fetch first.
    """

    records: list[ClientRecord]
    confirmed: bool = False


class CandidateSource(ABC):
    name: str = "source"

    @abstractmethod
    def scan(
        self,
        client: MeevoClient,
        session: DiscoverySession,
        location_id: str,
    ) -> AsyncIterator[ScanGroup]:
        """Yield groups of records to check, one per batch of pages.

        Consumers confirm each group before asking for the next, so a
        source may look at ``session.results`` to decide whether to go on.
        """


def _unseen(pages: list[list[ClientRecord]], session: DiscoverySession) -> list[ClientRecord]:
    """Flatten *pages*, dropping records already seen (in the session or
    earlier in this group) while keeping first-seen order."""
    unique: dict[str, ClientRecord] = {}
    for records in pages:
        for record in records:
            if record.client_id in session.seen_ids or record.client_id in unique:
                continue
            unique[record.client_id] = record
    return list(unique.values())


class DirectoryScan(CandidateSource):
    """Scan directory pages range by range, in the given priority order.

    Within a range, pages are fetched ``pages_per_group`` at a time; an
    all-empty group means the directory ends inside this range and the
    scan moves on to the next one.  With ``early_stop`` the remaining
    ranges are skipped once a range has produced a linked profile (new
    dependents cluster near the end of the directory).
    """

    name = "directory"

    def __init__(
        self,
        page_ranges: Sequence[tuple[int, int]],
        candidate_filter: str = "no_phone",
        *,
        early_stop: bool = False,
        pages_per_group: int = PAGES_PER_GROUP,
        items_per_page: int = ITEMS_PER_PAGE,
    ):
        self.page_ranges = list(page_ranges)
        self.filter_name = candidate_filter
        self._filter = get_candidate_filter(candidate_filter)
        self.early_stop = early_stop
        self._pages_per_group = pages_per_group
        self._items_per_page = items_per_page

    async def scan(
        self,
        client: MeevoClient,
        session: DiscoverySession,
        location_id: str,
    ) -> AsyncIterator[ScanGroup]:
        for start, end in self.page_ranges:
            for group_start in range(start, end, self._pages_per_group):
                page_numbers = range(group_start, min(group_start + self._pages_per_group, end))
                pages = await gather_all(
                    client.list_clients_page(location_id, page, self._items_per_page)
                    for page in page_numbers
                )
                candidates = [
                    record for record in _unseen(pages, session)
                    if self._filter(record, session)
                ]
                empty = all(not records for records in pages)
                yield ScanGroup(candidates)
                if empty:
                    logger.debug(
                        "Pages %d-%d empty; leaving range %d-%d",
                        page_numbers[0], page_numbers[-1], start, end,
                    )
                    break

            if self.early_stop and session.results:
                logger.info(
                    "Found %d profile(s) in pages %d-%d; stopping early",
                    len(session.results), start, end,
                )
                return


class ChangeFeedScan(CandidateSource):
    """Scan the client change feed over a recent time window.

    The window starts at the beginning of the current year, or
    ``lookback_days`` before now when set.  Feed snapshots already carry
    ``guardian_id``, so this turns a detail fetch per candidate into one
    request per page.
    """

    name = "change_feed"

    def __init__(
        self,
        *,
        lookback_days: int | None = None,
        max_pages: int = 50,
        pages_per_group: int = PAGES_PER_GROUP,
        items_per_page: int = ITEMS_PER_PAGE,
        now: Callable[[], datetime] | None = None,
    ):
        self.lookback_days = lookback_days
        self.max_pages = max_pages
        self._pages_per_group = pages_per_group
        self._items_per_page = items_per_page
        self._now = now or (lambda: datetime.now(UTC))

    def window_start(self) -> datetime:
        now = self._now()
        if self.lookback_days is None:
            return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        return now - timedelta(days=self.lookback_days)

    async def scan(
        self,
        client: MeevoClient,
        session: DiscoverySession,
        location_id: str,
    ) -> AsyncIterator[ScanGroup]:
        since = self.window_start()
        last_page = self.max_pages + 1
        for group_start in range(1, last_page, self._pages_per_group):
            page_numbers = range(group_start, min(group_start + self._pages_per_group, last_page))
            pages = await gather_all(
                client.list_changes(location_id, since, page, self._items_per_page)
                for page in page_numbers
            )
            empty = all(not records for records in pages)
            yield ScanGroup(_feed_records(pages, session), confirmed=True)
            if empty:
                logger.debug("Change feed exhausted at page %d", page_numbers[0])
                break


def _feed_records(pages: list[list[ClientRecord]], session: DiscoverySession) -> list[ClientRecord]:
    """Unseen feed snapshots.  A client may appear several times in the
    feed; the snapshot naming the guardian wins over the others."""
    picked: dict[str, ClientRecord] = {}
    for records in pages:
        for record in records:
            if record.client_id in session.seen_ids:
                continue
            current = picked.get(record.client_id)
            if current is None or (
                current.guardian_id != session.guardian_id
                and record.guardian_id == session.guardian_id
            ):
                picked[record.client_id] = record
    return list(picked.values())


# ── Discoverer ───────────────────────────────────────────────────────


class LinkedProfileDiscoverer:
    """Runs candidate sources in order and confirms their candidates."""

    def __init__(
        self,
        client: MeevoClient,
        sources: Sequence[CandidateSource],
        *,
        detail_batch_size: int = DETAIL_BATCH_SIZE,
        strategy: str = "custom",
        metrics_client: MetricsClient | None = None,
    ):
        if not sources:
            raise ValueError("At least one candidate source is required")
        if detail_batch_size < 1:
            raise ValueError("detail_batch_size must be positive")
        self._client = client
        self.sources = list(sources)
        self._detail_batch_size = detail_batch_size
        self.strategy = strategy
        self._metrics = metrics_client or metrics

    async def discover(
        self,
        guardian_id: str,
        guardian_last_name: str | None,
        location_id: str,
    ) -> list[LinkedProfile]:
        """Return the linked profiles of *guardian_id*, first-discovered first."""
        session = await self.run(guardian_id, guardian_last_name, location_id)
        return list(session.results)

    async def run(
        self,
        guardian_id: str,
        guardian_last_name: str | None,
        location_id: str,
    ) -> DiscoverySession:
        session = DiscoverySession(
            guardian_id=guardian_id, guardian_last_name=guardian_last_name,
        )
        # The guardian is never its own dependent; don't spend a fetch on it
        session.seen_ids.add(guardian_id)

        for source in self.sources:
            if session.results:
                break
            logger.info(
                "Discovering profiles for guardian %s via %s", guardian_id, source.name,
            )
            async for group in source.scan(self._client, session, location_id):
                if group.confirmed:
                    self._confirm_snapshots(group.records, session)
                else:
                    await self._confirm_candidates(group.records, session, location_id)

        logger.info(
            "Guardian %s: %d linked profile(s), %d checked, %d skipped (%s)",
            guardian_id, len(session.results), session.candidates_checked,
            session.skipped, self.strategy,
        )
        self._metrics.record_discovery(
            self.strategy,
            found=len(session.results),
            checked=session.candidates_checked,
            skipped=session.skipped,
        )
        return session

    def _confirm_snapshots(self, records: list[ClientRecord], session: DiscoverySession) -> None:
        # Non-matching snapshots stay unseen so a fallback source may still check them
        for record in records:
            if record.guardian_id == session.guardian_id and session.confirm(record):
                logger.info("Found linked profile %s via change feed", record.client_id)

    async def _confirm_candidates(
        self,
        candidates: list[ClientRecord],
        session: DiscoverySession,
        location_id: str,
    ) -> None:
        for i in range(0, len(candidates), self._detail_batch_size):
            batch = [
                c for c in candidates[i : i + self._detail_batch_size]
                if c.client_id not in session.seen_ids
            ]
            details = await gather_all(
                self._client.get_candidate_detail(c.client_id, location_id)
                for c in batch
            )
            for candidate, detail in zip(batch, details):
                if detail is None:
                    # Counted once, even if the row reappears on a later page
                    session.seen_ids.add(candidate.client_id)
                    session.skipped += 1
                    continue
                if session.confirm(detail):
                    logger.info("Found linked profile %s", detail.client_id)
                session.seen_ids.add(candidate.client_id)


# ── Strategies ───────────────────────────────────────────────────────

STRATEGIES = ("full_scan", "recency", "change_feed", "surname", "hybrid")


def build_sources(
    strategy: str,
    *,
    candidate_filter: str | None = None,
    page_ranges: Sequence[tuple[int, int]] | None = None,
    max_pages: int | None = None,
    fallback_max_pages: int | None = None,
    lookback_days: int | None = None,
    change_feed_max_pages: int | None = None,
) -> list[CandidateSource]:
    """Translate a strategy name into its ordered candidate sources.

    ``candidate_filter`` overrides the directory filter of ``full_scan``
    and ``recency``; the surname strategies always filter by surname.
    """
    max_pages = max_pages or config.DISCOVERY_MAX_PAGES
    fallback_max_pages = fallback_max_pages or config.DISCOVERY_FALLBACK_MAX_PAGES

    def change_feed() -> ChangeFeedScan:
        return ChangeFeedScan(
            lookback_days=lookback_days,
            max_pages=change_feed_max_pages or config.CHANGE_FEED_MAX_PAGES,
        )

    def surname_fallback() -> DirectoryScan:
        return DirectoryScan([(1, fallback_max_pages + 1)], "surname")

    if strategy == "full_scan":
        return [DirectoryScan([(1, max_pages + 1)], candidate_filter or "any")]
    if strategy == "recency":
        return [
            DirectoryScan(
                page_ranges or RECENCY_PAGE_RANGES,
                candidate_filter or "no_phone",
                early_stop=True,
            )
        ]
    if strategy == "change_feed":
        return [change_feed()]
    if strategy == "surname":
        return [surname_fallback()]
    if strategy == "hybrid":
        return [change_feed(), surname_fallback()]
    raise ValueError(f"Unknown discovery strategy {strategy!r}; expected one of {STRATEGIES}")


def build_discoverer(
    client: MeevoClient,
    strategy: str | None = None,
    *,
    candidate_filter: str | None = None,
) -> LinkedProfileDiscoverer:
    """Create a discoverer from the configured strategy settings."""
    strategy = strategy or config.DISCOVERY_STRATEGY
    sources = build_sources(
        strategy,
        candidate_filter=candidate_filter or config.DISCOVERY_CANDIDATE_FILTER,
        page_ranges=config.DISCOVERY_PAGE_RANGES,
        lookback_days=config.CHANGE_FEED_LOOKBACK_DAYS,
    )
    return LinkedProfileDiscoverer(
        client,
        sources,
        detail_batch_size=config.DISCOVERY_DETAIL_BATCH_SIZE,
        strategy=strategy,
    )
