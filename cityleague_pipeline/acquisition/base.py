"""
Shared types for ranking acquisition tiers.

Every tier implements ``AcquisitionStrategy.try_acquire(event, category)``
and returns an ``AcquisitionResult``: the organizer (when the source exposes
one) plus rows normalized to ``AcquiredRow``.  An empty result means "this
tier found nothing"; the ladder then escalates.

Tiers raise freely on transport problems; the ladder absorbs those as empty.
``MalformedSourceInputError`` is the exception: a detail URL without an
event holding id cannot succeed on any tier, so it propagates.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.errors import MalformedSourceInputError
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)

_HOLDING_ID_RE = re.compile(r"/event/detail/(\d+)")


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AcquiredRow:
    """One placement as read from the source, before id assignment.

    Attributes:
        rank:          Placement, or ``None`` if the source gave none.
        player_label:  Player display name ("" for link-only tiers).
        points:        Championship points.
        player_id:     Source player identifier; rows without one are not persisted.
        area:          Player area/prefecture when available.
        deck_id:       Deck identifier.
        deck_view_url: Deck URL as exposed by the source.
    """

    rank: Optional[int]
    player_label: str = ""
    points: int = 0
    player_id: Optional[str] = None
    area: Optional[str] = None
    deck_id: Optional[str] = None
    deck_view_url: Optional[str] = None


@dataclass
class AcquisitionResult:
    organizer: Optional[str] = None
    rows: list[AcquiredRow] = field(default_factory=list)
    tier: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.rows


# ── Strategy interface ────────────────────────────────────────────────────────

class AcquisitionStrategy(ABC):
    """One rung of the acquisition ladder.

    Subclasses set ``tier_name`` and implement ``try_acquire``.  Strategies
    holding resources (HTTP clients, browser pages) release them in
    ``close()``.
    """

    tier_name: str  # Override in subclass

    def __init__(self, config: AppConfig, logs: Optional[RunLog] = None) -> None:
        self.config = config
        self.logs = logs if logs is not None else RunLog(logger=logger)

    @abstractmethod
    def try_acquire(self, event: TournamentEvent, category: Category) -> AcquisitionResult:
        """Fetch placements for ``event`` under ``category``.

        Raises:
            MalformedSourceInputError: If the event's detail URL is unusable.
        """
        ...

    def close(self) -> None:
        """Release any held resources.  Default: nothing to release."""

    def page_offsets(self, category: Category) -> list[int]:
        """Result-page offsets to request: a second page only for multi-page categories."""
        acq = self.config.acquisition
        if category.code in acq.multi_page_categories:
            return [0, acq.per_page]
        return [0]


# ── Helpers ───────────────────────────────────────────────────────────────────

def extract_event_holding_id(detail_url: str) -> str:
    """``.../event/detail/12345/...`` → ``"12345"``.

    Raises:
        MalformedSourceInputError: If the URL carries no numeric event id.
    """
    m = _HOLDING_ID_RE.search(detail_url or "")
    if not m:
        raise MalformedSourceInputError(f"cannot extract event_holding_id from {detail_url!r}")
    return m.group(1)


def results_query_params(
    holding_id: str,
    category: Category,
    per_page: int,
    offset: int,
) -> dict[str, str]:
    return {
        "event_holding_id": holding_id,
        "event_result_category": category.code,
        "per_page": str(per_page),
        "offset": str(offset),
    }


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_results_payload(
    payload: Any,
    allowed_ranks: Iterable[int],
    limit: int,
    deck_view_url_template: str,
) -> tuple[Optional[str], list[AcquiredRow]]:
    """Normalize one page of the structured results search response.

    Keeps rows whose rank is in ``allowed_ranks``, at most ``limit`` of them,
    in source order.

    Args:
        payload:  Decoded JSON body (``{"event": {"shopName": ...}, "results": [...]}``).
        allowed_ranks: Rank allow-list.
        limit:    Rows kept per page.
        deck_view_url_template: Format string with a ``{deck_id}`` field.

    Returns:
        ``(organizer, rows)``.  A payload of the wrong shape yields ``(None, [])``.
    """
    if not isinstance(payload, dict):
        return None, []

    event_info = payload.get("event")
    organizer = _as_text(event_info.get("shopName")) if isinstance(event_info, dict) else None

    results = payload.get("results")
    if not isinstance(results, list):
        return organizer, []

    allowed = set(allowed_ranks)
    rows: list[AcquiredRow] = []
    for item in results:
        if not isinstance(item, dict):
            continue
        rank = _as_int(item.get("rank"))
        if rank not in allowed:
            continue
        deck_id = _as_text(item.get("deck_id"))
        rows.append(
            AcquiredRow(
                rank=rank,
                player_label=_as_text(item.get("name")) or "",
                points=_as_int(item.get("point")) or 0,
                player_id=_as_text(item.get("player_id")),
                area=_as_text(item.get("area")),
                deck_id=deck_id,
                deck_view_url=deck_view_url_template.format(deck_id=deck_id) if deck_id else None,
            )
        )
        if len(rows) >= limit:
            break
    return organizer, rows


def dedupe_by_player_id(rows: Iterable[AcquiredRow]) -> list[AcquiredRow]:
    """Keep the first row per player id; rows without one are dropped."""
    seen: set[str] = set()
    out: list[AcquiredRow] = []
    for row in rows:
        if not row.player_id or row.player_id in seen:
            continue
        seen.add(row.player_id)
        out.append(row)
    return out
