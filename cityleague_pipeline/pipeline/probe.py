"""
ProbeStage: discover the target day's City League events on the listing.

Flow:
  1. Render up to ``probe.max_pages`` listing pages (offset step
     ``probe.page_step``; the first page has no offset parameter).
  2. Keep cards whose ``M/D`` date equals the target label (leading zeros
     and the weekday suffix are ignored).
  3. Classify titles: the league marker must be present, then the division
     keyword decides the category.  Titles with the marker but no keyword
     are dropped.
  4. Skip cards whose ``detail_url`` is already stored (checked against the
     store, so the guard holds across runs) or already queued in this run.
  5. Assign ``event-{date}-{category}-{seq:02d}`` ids, ``seq`` continuing
     from the stored count for (date, category), and commit all new events
     in a single batch.

Re-running the Probe for the same day therefore writes nothing new.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from cityleague_pipeline.acquisition.listing import (
    ListingEntry,
    ListingSource,
    listing_page_url,
    parse_listing_page,
)
from cityleague_pipeline.config import AppConfig, ProbeConfig
from cityleague_pipeline.db.repositories.event_repo import EventRepository
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.models.event import TournamentEvent, make_event_id
from cityleague_pipeline.pipeline.base import PipelineStage
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.retry import with_retry
from cityleague_pipeline.utils.time_utils import (
    date_key_to_label,
    normalize_month_day,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Outcome of one Probe run.

    Attributes:
        target_date_key:   ``YYYYMMDD`` probed.
        target_date_label: ``M/D`` matched against the listing.
        total_events:      Cards matching the date, before classification and dedup.
        pages_processed:   Listing pages rendered.
        saved:             New events written.
        saved_ids:         Ids of the new events.
        events:            The raw date-matching cards.
    """

    target_date_key: str
    target_date_label: str
    total_events: int = 0
    pages_processed: int = 0
    saved: int = 0
    saved_ids: list[str] = field(default_factory=list)
    events: list[ListingEntry] = field(default_factory=list)


def classify_title(title: str, probe: ProbeConfig) -> Optional[Category]:
    """League marker + division keyword → category.

    Returns:
        ``None`` if the league marker is absent, ``Category.UNKNOWN`` if it is
        present without a division keyword, else the division.  Keywords are
        checked in open → senior → junior order.
    """
    if not title or probe.league_marker not in title:
        return None
    for category in Category.known():
        keyword = probe.category_keywords.get(category.code)
        if keyword and keyword in title:
            return category
    return Category.UNKNOWN


class ProbeStage(PipelineStage):
    """Discover and persist the target day's events.

    Args:
        config:  Application config.
        store:   Document store.
        source:  Listing page source (Playwright-backed in production).
        logs:    Run log sink.
        sleep:   Backoff sleep, injected in tests.
    """

    stage_name = "probe"

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        source: ListingSource,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, store, logs, sleep)
        self.source = source
        self.events = EventRepository(store, self.logs, config.retry, sleep)

    def _execute(self, date_key: str, date_label: Optional[str] = None) -> ProbeResult:
        label = normalize_month_day(date_label) if date_label else date_key_to_label(date_key)
        result = ProbeResult(target_date_key=date_key, target_date_label=label)

        result.events, result.pages_processed = self._scan_listing(label)
        result.total_events = len(result.events)
        self.logs.info(
            f"probe: matched {result.total_events} card(s) for {label} "
            f"over {result.pages_processed} page(s)"
        )

        classified: list[tuple[ListingEntry, Category]] = []
        for entry in result.events:
            category = classify_title(entry.title, self.config.probe)
            if category is None or not category.is_known:
                logger.debug("Dropping unclassified card: %s", entry.title)
                continue
            classified.append((entry, category))

        new_events = self._build_new_events(date_key, classified)
        result.saved = self.events.insert_many(new_events)
        result.saved_ids = [ev.id for ev in new_events]
        self.logs.info(f"probe: saved {result.saved} new event(s) for {date_key}")
        return result

    # ── Steps ─────────────────────────────────────────────────────────────────

    def _scan_listing(self, target_label: str) -> tuple[list[ListingEntry], int]:
        """Render listing pages and collect cards dated ``target_label``."""
        probe = self.config.probe
        matches: list[ListingEntry] = []
        pages = 0
        for page_no in range(probe.max_pages):
            offset = page_no * probe.page_step
            url = listing_page_url(self.config.source.listing_url, offset)
            self.logs.info(f"probe: page {page_no + 1} offset={offset}")
            page = with_retry(
                lambda url=url: self.source.fetch(url),
                probe.page_fetch_retries,
                self.logs,
                f"probe: fetch page {page_no + 1}",
                base_wait_ms=self.config.retry.base_wait_ms,
                max_wait_ms=self.config.retry.max_wait_ms,
                sleep=self.sleep,
            )
            pages += 1
            for entry in parse_listing_page(page):
                if normalize_month_day(entry.date_label) == target_label:
                    matches.append(entry)
        return matches, pages

    def _build_new_events(
        self,
        date_key: str,
        classified: list[tuple[ListingEntry, Category]],
    ) -> list[TournamentEvent]:
        """Dedup by detail URL and assign sequential ids per category."""
        if not classified:
            return []

        next_seq = {
            category: self.events.count_for_date_category(date_key, category)
            for category in Category.known()
        }
        now = utcnow()
        queued: set[str] = set()
        new_events: list[TournamentEvent] = []

        for entry, category in classified:
            if not entry.detail_url:
                self.logs.info(f"probe: skip card without detail link title={entry.title}")
                continue
            if entry.detail_url in queued or self.events.exists_by_detail_url(entry.detail_url):
                self.logs.info(f"probe: skip existing {entry.detail_url}")
                continue

            next_seq[category] += 1
            event = TournamentEvent(
                id=make_event_id(date_key, category, next_seq[category]),
                date_key=date_key,
                date_label=normalize_month_day(entry.date_label),
                title=entry.title,
                location=entry.location,
                detail_url=entry.detail_url,
                category=category,
                league_type=self.config.probe.league_type,
                discovered_at=now,
                updated_at=now,
            )
            queued.add(entry.detail_url)
            new_events.append(event)
            self.logs.info(f"probe: registered {event.id} title={event.title}")

        return new_events
