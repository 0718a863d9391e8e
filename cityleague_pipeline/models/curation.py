"""
Deck-name curation models.

Curators name the podium decks of a snapshot by ``group_id``.  A batch
update is partial-success: invalid items are reported as ``CurationError``
entries next to the ids that were updated, never aborting the batch.

Work summaries track curation progress per day and per month.  The
deck-name dictionary holds the names curators pick from.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Per-item error codes
INVALID_GROUP_ID = "invalid-group-id"
DUPLICATE_GROUP_ID = "duplicate-group-id"
INVALID_DECK_NAME = "invalid-deck-name"
DECK_NAME_TOO_LONG = "too-long"
GROUP_NOT_FOUND = "group-not-found"


class DeckNameUpdate(BaseModel):
    """One requested assignment; values are trimmed before validation."""

    model_config = ConfigDict(frozen=True)

    group_id: str = ""
    deck_name: str = ""


class CurationError(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    code: str
    message: str


class BatchUpdateResult(BaseModel):
    """Outcome of ``DeckNameCurator.batch_update``."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    updated_count: int = 0
    updated_ids: list[str] = Field(default_factory=list)
    errors: list[CurationError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class PodiumTarget(BaseModel):
    """A rank 1–3 entry awaiting (or carrying) a curated deck name."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    rank: int
    deck_list_image_url: Optional[str] = None
    deck_name: Optional[str] = None


class WorkDaySummary(BaseModel):
    """Curation progress for one snapshot (id = snapshot id)."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: str            # YYYY-MM-DD
    league: str
    total_targets: int
    completed_targets: int
    all_complete: bool
    updated_at: Optional[datetime] = None


class WorkMonthSummary(BaseModel):
    """Roll-up of ``WorkDaySummary`` documents for one month and league.

    id = ``{YYYY-MM}-{league}``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    month: str           # YYYY-MM
    league: str
    total_days: int
    completed_days: int
    all_complete: bool
    updated_at: Optional[datetime] = None


class DeckNameEntry(BaseModel):
    """One name in the curators' deck-name dictionary (id = the name)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
