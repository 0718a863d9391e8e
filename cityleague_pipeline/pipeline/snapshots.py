"""
SnapshotStage: fold a day's ranking rows into per-category DailySnapshots.

For each category (open, senior, junior):
  - Skip when the snapshot exists and ``force`` is false.
  - Read the rows of the day's events for the category (event ids queried in
    chunks of at most ``snapshot.in_chunk_size``).
  - Build entries: canonical deck URL from the deck id, deck-list image via
    ``DeckImageResolver``, curated deck name carried over from the row.
  - Sort by (rank, event id, sequence within rank), group by trimmed
    organizer (blank → ``"unknown"``), and give rank 1-3 entries a
    ``group_id`` from a per-(event, rank) occurrence counter.
  - Zero rows → nothing written.  Otherwise the snapshot document is
    replaced wholesale.

Because the sort key is total and the counter runs in sorted order, a rebuild
from unchanged rows yields identical ``group_id`` values.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from cityleague_pipeline.acquisition.deck import OFFICIAL_ORIGIN, DeckImageResolver, deck_confirm_url
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.repositories.event_repo import EventRepository
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.repositories.snapshot_repo import SnapshotRepository
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.models.ranking import RankingRow
from cityleague_pipeline.models.snapshot import (
    DailySnapshot,
    OrganizerGroup,
    SnapshotEntry,
    make_group_id,
    make_snapshot_id,
)
from cityleague_pipeline.pipeline.base import PipelineStage
from cityleague_pipeline.taxonomy.categories import Category, SnapshotStatus
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.time_utils import date_key_to_label, utcnow

logger = logging.getLogger(__name__)

UNKNOWN_ORGANIZER = "unknown"


@dataclass
class SnapshotOutcome:
    category: Category
    snapshot_id: str
    status: SnapshotStatus
    count: int = 0


@dataclass
class SnapshotRunResult:
    date_key: str
    date_label: str
    event_count: int = 0
    outcomes: list[SnapshotOutcome] = field(default_factory=list)

    @property
    def written(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SnapshotStatus.WRITTEN)


def build_snapshot(
    date_key: str,
    category: Category,
    rows: Iterable[RankingRow],
    resolve_image: Callable[[Optional[str]], Optional[str]],
    generated_at: datetime,
    schema_version: int = 4,
    group_ranks: Iterable[int] = (1, 2, 3),
    origin: str = OFFICIAL_ORIGIN,
) -> DailySnapshot:
    """Assemble a snapshot document from ranking rows.  Pure apart from ``resolve_image``."""
    podium = set(group_ranks)
    ordered = sorted(rows, key=lambda r: (r.rank, r.event_id, r.sequence_within_rank))

    occurrences: dict[tuple[str, int], int] = defaultdict(int)
    entries: list[SnapshotEntry] = []
    for row in ordered:
        deck_url = deck_confirm_url(row.deck_id, origin) if row.deck_id else None
        image_source = deck_url or row.deck_url
        image_url = resolve_image(image_source) if image_source else None

        key = (row.event_id, row.rank)
        occurrence = occurrences[key]
        occurrences[key] += 1
        group_id = (
            make_group_id(date_key, row.event_id, row.rank, occurrence)
            if row.rank in podium
            else None
        )

        entries.append(
            SnapshotEntry(
                rank=row.rank,
                deck_id=row.deck_id,
                deck_url=deck_url,
                deck_name=row.deck_name or "",
                deck_list_image_url=image_url,
                player_label=row.player_label or None,
                points=row.points or None,
                organizer=row.organizer or None,
                event_id=row.event_id,
                group_id=group_id,
            )
        )

    by_organizer: dict[str, list[SnapshotEntry]] = {}
    for entry in entries:
        name = (entry.organizer or "").strip() or UNKNOWN_ORGANIZER
        by_organizer.setdefault(name, []).append(entry)
    groups = [
        OrganizerGroup(organizer=name, rankings=sorted(members, key=lambda e: e.rank))
        for name, members in by_organizer.items()
    ]

    return DailySnapshot(
        id=make_snapshot_id(date_key, category),
        date_key=date_key,
        date_label=date_key_to_label(date_key),
        category=category,
        rankings=entries,
        groups=groups,
        generated_at=generated_at,
        schema_version=schema_version,
    )


class SnapshotStage(PipelineStage):
    """Rebuild the day's DailySnapshots.

    Args:
        config:   Application config.
        store:    Document store.
        resolver: Deck image resolver (owned by the caller).
        logs:     Run log sink.
        sleep:    Backoff sleep, injected in tests.
    """

    stage_name = "snapshots"

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        resolver: DeckImageResolver,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, store, logs, sleep)
        self.resolver = resolver
        self.events = EventRepository(store, self.logs, config.retry, sleep)
        self.rankings = RankingRepository(store, self.logs, config.retry, sleep)
        self.snapshots = SnapshotRepository(store, self.logs, config.retry, sleep)

    def _execute(
        self,
        date_key: str,
        force: bool = False,
        categories: Optional[list[Category]] = None,
    ) -> SnapshotRunResult:
        snap_cfg = self.config.snapshot
        cats = categories or [Category(code) for code in snap_cfg.categories]
        label = date_key_to_label(date_key)

        event_ids = [ev.id for ev in self.events.list_for_date(date_key)]
        self.logs.info(f"snapshots: events={len(event_ids)} target={label}")
        result = SnapshotRunResult(date_key=date_key, date_label=label, event_count=len(event_ids))

        for category in cats:
            result.outcomes.append(self._build_category(date_key, category, event_ids, force))
        return result

    def _build_category(
        self,
        date_key: str,
        category: Category,
        event_ids: list[str],
        force: bool,
    ) -> SnapshotOutcome:
        snap_cfg = self.config.snapshot
        snapshot_id = make_snapshot_id(date_key, category)

        if not force and self.snapshots.exists(snapshot_id):
            self.logs.info(f"snapshots: skip existing {snapshot_id}")
            return SnapshotOutcome(category, snapshot_id, SnapshotStatus.SKIPPED_EXISTING)

        rows = self.rankings.list_for_events(
            event_ids, category=category, chunk_size=snap_cfg.in_chunk_size
        )
        if not rows:
            self.logs.info(f"snapshots: skip {snapshot_id} rankings=0")
            return SnapshotOutcome(category, snapshot_id, SnapshotStatus.SKIPPED_EMPTY)

        snapshot = build_snapshot(
            date_key,
            category,
            rows,
            self.resolver.resolve,
            generated_at=utcnow(),
            schema_version=snap_cfg.schema_version,
            group_ranks=snap_cfg.group_ranks,
            origin=self.config.source.official_origin,
        )
        self.snapshots.replace(snapshot)
        self.logs.info(f"snapshots: saved {snapshot_id} rankings={len(snapshot.rankings)}")
        return SnapshotOutcome(
            category, snapshot_id, SnapshotStatus.WRITTEN, len(snapshot.rankings)
        )
