"""
RankingsStage: collect prize placements for the target day's events.

Targets are stored events of the day that have a detail URL, belong to the
configured league and have not been collected yet (all of them under
``force``).  Events are processed one at a time:

  1. Acquire rows through the ladder (force-rescue when ``force``).
  2. Convert rows to ``RankingRow``: rows without a player id or with a rank
     outside the allow-list are skipped; ``sequence_within_rank`` counts
     same-rank rows from 0 in acquisition order; ids are
     ``rank-{eventKey}-{rank}-{seq:02d}``.
  3. Merge-write all rows in one batch, then flip the event's
     ``rankings_collected`` flag with a partial update.

Acquisition failures end up as "0 rows" for that event and never abort the
loop; a detail URL without a holding id does abort it.  Store failures
that survive the store retry abort the stage.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from cityleague_pipeline.acquisition.base import AcquisitionResult
from cityleague_pipeline.acquisition.deck import canonicalize_deck_url, extract_deck_id
from cityleague_pipeline.acquisition.ladder import AcquisitionLadder
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.repositories.event_repo import EventRepository
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.models.ranking import RankingRow, make_ranking_id
from cityleague_pipeline.pipeline.base import PipelineStage
from cityleague_pipeline.taxonomy.categories import VALID_RANKS
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class EventRankingOutcome:
    event_id: str
    title: str
    organizer: Optional[str]
    tier: Optional[str]
    saved: int


@dataclass
class RankingsResult:
    target_date_key: str
    total_events: int = 0
    total_rankings: int = 0
    processed: list[EventRankingOutcome] = field(default_factory=list)


def build_ranking_rows(
    event: TournamentEvent,
    result: AcquisitionResult,
    updated_at: datetime,
    logs: Optional[RunLog] = None,
    origin: str = "https://www.pokemon-card.com",
) -> list[RankingRow]:
    """Assign ids and per-rank sequences to acquired rows, in acquisition order.

    Example: acquired ranks ``[1, 2, 3, 3, 5, 9]`` get sequences
    ``[0, 0, 0, 1, 0, 0]``.
    """
    logs = logs if logs is not None else RunLog(logger=logger)
    seq_by_rank: dict[int, int] = {}
    rows: list[RankingRow] = []

    for idx, acquired in enumerate(result.rows):
        if not acquired.player_id:
            logs.info(f"rankings: skip no player_id idx={idx} event={event.id}")
            continue
        rank = acquired.rank
        if rank is None or rank not in VALID_RANKS:
            logs.info(f"rankings: skip invalid rank idx={idx} rank={rank} event={event.id}")
            continue

        seq = seq_by_rank.get(rank, 0)
        seq_by_rank[rank] = seq + 1

        deck_url = canonicalize_deck_url(acquired.deck_view_url, origin)
        rows.append(
            RankingRow(
                id=make_ranking_id(event.id, rank, seq),
                event_id=event.id,
                organizer=result.organizer or None,
                category=event.category,
                rank=rank,
                sequence_within_rank=seq,
                player_label=acquired.player_label or "",
                points=acquired.points or 0,
                deck_url=deck_url,
                deck_id=extract_deck_id(deck_url, origin) if deck_url else None,
                image_stored=False,
                updated_at=updated_at,
            )
        )
    return rows


class RankingsStage(PipelineStage):
    """Acquire and persist rankings for one day's events.

    Args:
        config: Application config.
        store:  Document store.
        ladder: Acquisition ladder (owned by the caller, who closes it).
        logs:   Run log sink.
        sleep:  Backoff sleep, injected in tests.
    """

    stage_name = "rankings"

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        ladder: AcquisitionLadder,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, store, logs, sleep)
        self.ladder = ladder
        self.events = EventRepository(store, self.logs, config.retry, sleep)
        self.rankings = RankingRepository(store, self.logs, config.retry, sleep)

    def select_targets(self, date_key: str, force: bool) -> list[TournamentEvent]:
        league = self.config.probe.league_type
        return [
            ev
            for ev in self.events.list_for_date(date_key)
            if ev.detail_url
            and ev.league_type == league
            and ev.category.is_known
            and (force or not ev.rankings_collected)
        ]

    def _execute(self, date_key: str, force: bool = False) -> RankingsResult:
        targets = self.select_targets(date_key, force)
        self.logs.info(f"rankings: {len(targets)} target event(s) for {date_key} force={force}")

        result = RankingsResult(target_date_key=date_key)
        for event in targets:
            outcome = self._collect_event(event, force)
            result.processed.append(outcome)
            result.total_rankings += outcome.saved
        result.total_events = len(result.processed)
        return result

    def _collect_event(self, event: TournamentEvent, force: bool) -> EventRankingOutcome:
        acquired = self.ladder.acquire_with_rescue(event, event.category, force=force)
        self.logs.info(f"rankings: will save count={len(acquired.rows)} event={event.id}")

        now = utcnow()
        rows = build_ranking_rows(
            event, acquired, now, self.logs, self.config.source.official_origin
        )
        saved = self.rankings.upsert_rows(rows)
        self.events.mark_rankings_collected(event.id, now)

        if saved == 0:
            self.logs.info(
                f"rankings: 0 saved event={event.id} url={event.detail_url} "
                f"category={event.category.code}"
            )
        else:
            self.logs.info(
                f"rankings: saved {saved} event={event.id} category={event.category.code}"
            )
        return EventRankingOutcome(
            event_id=event.id,
            title=event.title,
            organizer=acquired.organizer,
            tier=acquired.tier,
            saved=saved,
        )
