"""
Acquisition ladder: try ranking tiers in order until one returns rows.

Rules:
  - The next tier runs only when the current one returned zero rows; the
    first non-empty tier wins and tiers are never merged.
  - A tier that raises counts as empty (logged), except
    ``MalformedSourceInputError`` which propagates.
  - Force-rescue: when requested and the event's own category is still
    empty, the full ladder runs for each other category; non-empty results
    are concatenated and de-duplicated by player id.

Usage::

    ladder = AcquisitionLadder.from_config(config, logs, session)
    try:
        result = ladder.acquire_with_rescue(event, event.category, force=False)
    finally:
        ladder.close()
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from cityleague_pipeline.acquisition.base import (
    AcquisitionResult,
    AcquisitionStrategy,
    AcquiredRow,
    dedupe_by_player_id,
)
from cityleague_pipeline.acquisition.browser import (
    BrowserApiStrategy,
    BrowserSession,
    RenderedLinksStrategy,
)
from cityleague_pipeline.acquisition.players_api import PlayersApiStrategy
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.errors import MalformedSourceInputError
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)

RESCUE_TIER = "rescue"


class AcquisitionLadder:
    """Ordered list of strategies with escalation and force-rescue.

    Args:
        strategies: Tiers in escalation order.
        logs:       Run log sink.
    """

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        logs: Optional[RunLog] = None,
    ) -> None:
        if not strategies:
            raise ValueError("AcquisitionLadder needs at least one strategy.")
        self.strategies = list(strategies)
        self.logs = logs if logs is not None else RunLog(logger=logger)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        logs: RunLog,
        session: BrowserSession,
        http_client: Optional[httpx.Client] = None,
    ) -> "AcquisitionLadder":
        """The standard api → browser → html ladder."""
        return cls(
            [
                PlayersApiStrategy(config, logs, client=http_client),
                BrowserApiStrategy(config, session, logs),
                RenderedLinksStrategy(config, session, logs),
            ],
            logs,
        )

    def acquire(self, event: TournamentEvent, category: Category) -> AcquisitionResult:
        """Run the tiers for one (event, category); first non-empty result wins."""
        for strategy in self.strategies:
            tier = strategy.tier_name
            try:
                result = strategy.try_acquire(event, category)
            except MalformedSourceInputError:
                raise
            except Exception as exc:
                self.logs.warning(
                    f"rankings: tier {tier} failed event={event.id} "
                    f"category={category.code}: {exc}"
                )
                continue

            if result.rows:
                result.tier = result.tier or tier
                self.logs.info(
                    f"rankings: tier {tier} returned {len(result.rows)} rows event={event.id}"
                )
                return result
            self.logs.info(
                f"rankings: tier {tier} empty event={event.id} category={category.code}"
            )
        return AcquisitionResult()

    def acquire_with_rescue(
        self,
        event: TournamentEvent,
        category: Category,
        force: bool = False,
    ) -> AcquisitionResult:
        """``acquire``, then under ``force`` try the other categories if empty."""
        result = self.acquire(event, category)
        if result.rows or not force:
            return result

        alternatives = category.others()
        self.logs.info(
            f"rankings: try alt categories event={event.id} "
            f"alt={','.join(c.code for c in alternatives)}"
        )
        merged: list[AcquiredRow] = []
        organizer: Optional[str] = None
        for alt in alternatives:
            alt_result = self.acquire(event, alt)
            if alt_result.rows:
                merged.extend(alt_result.rows)
                organizer = organizer or alt_result.organizer

        rows = dedupe_by_player_id(merged)
        self.logs.info(
            f"rankings: rescue merged={len(merged)} kept={len(rows)} event={event.id}"
        )
        return AcquisitionResult(organizer=organizer, rows=rows, tier=RESCUE_TIER)

    def close(self) -> None:
        for strategy in self.strategies:
            try:
                strategy.close()
            except Exception as exc:
                logger.warning("Failed to close %s tier: %s", strategy.tier_name, exc)
