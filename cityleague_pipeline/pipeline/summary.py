"""
Event and ranking totals for one date, recomputed from stored documents.

The result (``SummaryCounts``) is the data behind the run notification:
events and rankings by category, plus how many rankings carry a deck
(``deckable``) and how many of those already have a stored image.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from cityleague_pipeline.config import RetryConfig
from cityleague_pipeline.db.repositories.event_repo import EventRepository
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.store import MAX_IN_VALUES, DocumentStore
from cityleague_pipeline.models.meta import SummaryCounts
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)


def _empty_breakdown() -> dict[str, int]:
    return {c.code: 0 for c in (*Category.known(), Category.UNKNOWN)}


def collect_summary_counts(
    store: DocumentStore,
    date_key: str,
    league_type: str = "city",
    logs: Optional[RunLog] = None,
    retry: Optional[RetryConfig] = None,
    chunk_size: int = MAX_IN_VALUES,
    sleep: Callable[[float], None] = time.sleep,
) -> SummaryCounts:
    """Count the league's events and their rankings for ``date_key``.

    Args:
        store:       Document store.
        date_key:    ``YYYYMMDD``.
        league_type: Only events of this league are counted.
        logs:        Run log sink for store retries.
        retry:       Store retry parameters.
        chunk_size:  Event ids per rankings query (≤ 10).

    Returns:
        ``SummaryCounts``; both breakdowns include ``unknown`` and ``total``.
    """
    events_repo = EventRepository(store, logs, retry, sleep)
    rankings_repo = RankingRepository(store, logs, retry, sleep)

    events = [ev for ev in events_repo.list_for_date(date_key) if ev.league_type == league_type]
    events_by_category = _empty_breakdown()
    for ev in events:
        events_by_category[ev.category.code] = events_by_category.get(ev.category.code, 0) + 1
    events_total = len(events)
    events_by_category["total"] = events_total

    rows = rankings_repo.list_for_events([ev.id for ev in events], chunk_size=chunk_size)
    rankings_by_category = _empty_breakdown()
    deckable = 0
    image_stored = 0
    for row in rows:
        rankings_by_category[row.category.code] = rankings_by_category.get(row.category.code, 0) + 1
        if row.is_deckable:
            deckable += 1
            if row.image_stored:
                image_stored += 1
    rankings_by_category["total"] = len(rows)

    counts = SummaryCounts(
        date_key=date_key,
        events_total=events_total,
        events_by_category=events_by_category,
        rankings_total=len(rows),
        rankings_by_category=rankings_by_category,
        deckable_rankings=deckable,
        image_stored=image_stored,
    )
    logger.info(
        "Summary %s | events=%d rankings=%d deckable=%d image_stored=%d",
        date_key, events_total, len(rows), deckable, image_stored,
    )
    return counts
