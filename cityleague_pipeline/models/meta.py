"""
Run metadata: execution records and notification counts.

``ExecutionRecord`` is the audit document for one orchestrated run.  It is
written at run start, at every phase boundary and at the terminal state,
keyed by a human-sortable timestamp id (``YYYYMMDD-HHMMSS-mmm`` at UTC+9) so
"most recent run" is a single descending-sort read.  Records are never
deleted.

``ExecutionRecord`` is NOT frozen; ``status``, ``phase``, ``logs`` and the
terminal fields are updated as the run progresses.

``SummaryCounts`` is the notification data contract: event and ranking
totals for one date, recomputed from stored documents.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cityleague_pipeline.taxonomy.categories import ExecutionStatus, RunPhase


class ExecutionRecord(BaseModel):
    """Audit record for one auto-run.

    Attributes:
        id: Timestamp-derived id.
        status: ``running`` until the run reaches ``finished`` or ``error``.
        phase: Last phase entered.
        started_at: Run start.
        ended_at: Terminal time; ``None`` while running.
        duration_human: Elapsed time, e.g. ``"1m 23.500s"``.
        logs: Accumulated run log lines.
        ok: ``True`` on finish, ``False`` on error, ``None`` while running.
        error: Error message when ``status == "error"``.
        target_date_key: ``YYYYMMDD`` the run targeted (once determined).
        target_date_label: ``M/D`` of the target day.
        force_rankings: Whether re-acquisition was forced.
        updated_at: Last write time.
    """

    model_config = ConfigDict(frozen=False)

    id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    phase: RunPhase = RunPhase.START
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_human: Optional[str] = None
    logs: list[str] = Field(default_factory=list)
    ok: Optional[bool] = None
    error: Optional[str] = None
    target_date_key: Optional[str] = None
    target_date_label: Optional[str] = None
    force_rankings: bool = False
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.FINISHED, ExecutionStatus.ERROR)


class SummaryCounts(BaseModel):
    """Event and ranking totals for one date.

    ``events_by_category`` and ``rankings_by_category`` are keyed by
    ``open``/``senior``/``junior``/``unknown`` plus ``total``.
    """

    model_config = ConfigDict(frozen=True)

    date_key: str
    events_total: int = 0
    events_by_category: dict[str, int] = Field(default_factory=dict)
    rankings_total: int = 0
    rankings_by_category: dict[str, int] = Field(default_factory=dict)
    deckable_rankings: int = 0
    image_stored: int = 0
