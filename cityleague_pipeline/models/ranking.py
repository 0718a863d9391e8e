"""
Ranking row model: one prize placement within one event.

Row ids are deterministic: ``rank-{event_key}-{rank}-{seq:02d}`` where ``seq``
counts rows of the same rank within the event in acquisition order.  A rerun
that acquires the same rows in the same order therefore overwrites instead of
duplicating.

``image_stored`` and ``deck_name`` belong to downstream processes; the
Collector never writes ``deck_name``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from cityleague_pipeline.models.event import event_key
from cityleague_pipeline.taxonomy.categories import VALID_RANKS, Category


def make_ranking_id(event_id: str, rank: int, seq: int) -> str:
    """``make_ranking_id("event-20250307-open-01", 3, 1)`` → ``"rank-20250307-open-01-3-01"``."""
    return f"rank-{event_key(event_id)}-{rank}-{seq:02d}"


class RankingRow(BaseModel):
    """A persisted placement.

    Attributes:
        id: Deterministic row id (see module docstring).
        event_id: Parent ``TournamentEvent.id``.
        organizer: Hosting shop name when the source exposes one.
        category: Division of the parent event.
        rank: Placement; one of ``VALID_RANKS``.
        sequence_within_rank: 0-based index among same-rank rows of the event.
        player_label: Player display name (may be empty for link-only tiers).
        points: Championship points awarded.
        deck_url: Canonical official deck URL, or ``None``.
        deck_id: Deck identifier, or ``None``.
        image_stored: Set by the external image archiver.
        deck_name: Set by curators; absent on fresh rows.
        updated_at: Last write time.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    event_id: str
    organizer: Optional[str] = None
    category: Category
    rank: int
    sequence_within_rank: int
    player_label: str = ""
    points: int = 0
    deck_url: Optional[str] = None
    deck_id: Optional[str] = None
    image_stored: bool = False
    deck_name: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator("rank")
    @classmethod
    def validate_rank(cls, v: int) -> int:
        if v not in VALID_RANKS:
            raise ValueError(f"rank must be one of {sorted(VALID_RANKS)}, got {v}.")
        return v

    @field_validator("sequence_within_rank")
    @classmethod
    def validate_sequence(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"sequence_within_rank must be >= 0, got {v}.")
        return v

    @property
    def is_deckable(self) -> bool:
        return bool(self.deck_url) or bool(self.deck_id)
