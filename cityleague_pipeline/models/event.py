"""
Tournament event model: the unit the Probe discovers and the Collector walks.

``TournamentEvent`` is created once per results-listing entry and is never
re-created: its dedup key is ``detail_url``.  The only later mutation is the
one-way ``rankings_collected`` flag (plus its timestamp), written as a
partial update by the Ranking Collector.

Document id shape: ``event-{date_key}-{category}-{seq:02d}`` where ``seq``
continues from the number of events already stored for (date, category).
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from cityleague_pipeline.taxonomy.categories import Category

EVENT_ID_PREFIX = "event-"

_DATE_KEY_RE = re.compile(r"^\d{8}$")


def make_event_id(date_key: str, category: Category, seq: int) -> str:
    """``make_event_id("20250307", Category.OPEN, 3)`` → ``"event-20250307-open-03"``."""
    return f"{EVENT_ID_PREFIX}{date_key}-{category.code}-{seq:02d}"


def event_key(event_id: str) -> str:
    """Event id without the ``event-`` prefix; used inside ranking row ids."""
    if event_id.startswith(EVENT_ID_PREFIX):
        return event_id[len(EVENT_ID_PREFIX):]
    return event_id


class TournamentEvent(BaseModel):
    """One City League event on a given day.

    Attributes:
        id: Store document id (see module docstring).
        date_key: ``YYYYMMDD``.
        date_label: ``M/D`` as shown on the listing.
        title: Listing title; carries the league marker and division keyword.
        location: Venue line from the listing.
        detail_url: Absolute event detail URL; dedup key.
        category: Division; never ``UNKNOWN`` for persisted events.
        league_type: League tag, ``"city"``.
        rankings_collected: Set once rankings have been stored.
        rankings_collected_at: When ``rankings_collected`` flipped.
        discovered_at: When the Probe first stored the event.
        updated_at: Last write time.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    date_key: str
    date_label: str
    title: str
    location: str = ""
    detail_url: str
    category: Category
    league_type: str = "city"
    rankings_collected: bool = False
    rankings_collected_at: Optional[datetime] = None
    discovered_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("date_key")
    @classmethod
    def validate_date_key(cls, v: str) -> str:
        if not _DATE_KEY_RE.match(v):
            raise ValueError(f"date_key must be YYYYMMDD, got '{v}'.")
        return v

    @field_validator("detail_url")
    @classmethod
    def validate_detail_url(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("detail_url must not be empty.")
        return v.strip()

    @property
    def key(self) -> str:
        return event_key(self.id)
