"""
Repository for curation progress summaries (per day and per month).
"""

from __future__ import annotations

import logging
from typing import Optional

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_WORK_DAYS, COLLECTION_WORK_MONTHS
from cityleague_pipeline.models.curation import WorkDaySummary, WorkMonthSummary

logger = logging.getLogger(__name__)


class WorkSummaryRepository(BaseRepository):
    """Read/write access to ``work_days`` and ``work_months``."""

    collection = COLLECTION_WORK_DAYS

    def save_day(self, summary: WorkDaySummary) -> None:
        body = self._dump(summary)
        self._call(
            f"work_days: write {summary.id}",
            lambda: self.store.set(COLLECTION_WORK_DAYS, summary.id, body, merge=True),
        )

    def get_day(self, summary_id: str) -> Optional[WorkDaySummary]:
        data = self._call(
            f"work_days: get {summary_id}",
            lambda: self.store.get(COLLECTION_WORK_DAYS, summary_id),
        )
        return WorkDaySummary.model_validate({**data, "id": summary_id}) if data else None

    def list_days(
        self,
        first_date: str,
        last_date: str,
        league: str,
        newest_first: bool = False,
    ) -> list[WorkDaySummary]:
        """Day summaries with ``first_date <= date <= last_date`` (ISO dates) for one league."""
        docs = self._call(
            f"work_days: range {first_date}..{last_date}",
            lambda: self.store.query(
                COLLECTION_WORK_DAYS,
                [("date", ">=", first_date), ("date", "<=", last_date), ("league", "==", league)],
                order_by="date",
                descending=newest_first,
            ),
        )
        return [self._to_model(WorkDaySummary, d) for d in docs]

    def save_month(self, summary: WorkMonthSummary) -> None:
        body = self._dump(summary)
        self._call(
            f"work_months: write {summary.id}",
            lambda: self.store.set(COLLECTION_WORK_MONTHS, summary.id, body, merge=True),
        )

    def get_month(self, summary_id: str) -> Optional[WorkMonthSummary]:
        data = self._call(
            f"work_months: get {summary_id}",
            lambda: self.store.get(COLLECTION_WORK_MONTHS, summary_id),
        )
        return WorkMonthSummary.model_validate({**data, "id": summary_id}) if data else None

    def list_months(self, limit: int = 18) -> list[WorkMonthSummary]:
        """Most recently updated month summaries first."""
        docs = self._call(
            "work_months: recent",
            lambda: self.store.query(
                COLLECTION_WORK_MONTHS, order_by="updated_at", descending=True, limit=limit
            ),
        )
        return [self._to_model(WorkMonthSummary, d) for d in docs]
