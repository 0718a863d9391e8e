"""
Daily snapshot models, the only artifact consumer-facing services read.

One ``DailySnapshot`` exists per (date, category) with id
``{date_key}-{category}``.  It is rebuilt wholesale from the stored ranking
rows on every generation, never patched (except for curator deck names).

Podium entries (rank 1–3) carry ``group_id = {date_key}_{event_id}_{rank}_{nn:02d}``
where ``nn`` counts occurrences of that (event, rank) in sorted order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from cityleague_pipeline.taxonomy.categories import Category


def make_snapshot_id(date_key: str, category: Category) -> str:
    return f"{date_key}-{category.code}"


def make_group_id(date_key: str, event_id: str, rank: int, occurrence: int) -> str:
    return f"{date_key}_{event_id}_{rank}_{occurrence:02d}"


class SnapshotEntry(BaseModel):
    """One ranking as presented in a snapshot."""

    model_config = ConfigDict(frozen=True)

    rank: int
    deck_id: Optional[str] = None
    deck_url: Optional[str] = None
    deck_name: str = ""
    deck_list_image_url: Optional[str] = None
    player_label: Optional[str] = None
    points: Optional[int] = None
    organizer: Optional[str] = None
    event_id: Optional[str] = None
    group_id: Optional[str] = None


class OrganizerGroup(BaseModel):
    """Entries sharing a trimmed organizer name (``"unknown"`` when blank)."""

    model_config = ConfigDict(frozen=True)

    organizer: str
    rankings: list[SnapshotEntry]


class DailySnapshot(BaseModel):
    """Aggregate of all rankings for one date and division.

    Attributes:
        id: ``{date_key}-{category}``.
        date_key: ``YYYYMMDD``.
        date_label: ``M/D``.
        category: Division.
        rankings: All entries, ascending by rank.
        groups: Entries grouped by organizer, each ascending by rank.
        generated_at: Build time.
        schema_version: Document layout version shared with readers.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    date_key: str
    date_label: str
    category: Category
    rankings: list[SnapshotEntry]
    groups: list[OrganizerGroup]
    generated_at: datetime
    schema_version: int
