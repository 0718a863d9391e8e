"""
Repository for tournament events: dedup lookups, per-day listing and the
one-way ``rankings_collected`` flag.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_EVENTS
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.taxonomy.categories import Category

logger = logging.getLogger(__name__)


class EventRepository(BaseRepository):
    """Read/write access to the ``events`` collection."""

    collection = COLLECTION_EVENTS

    def get(self, event_id: str) -> Optional[TournamentEvent]:
        data = self._call(
            f"events: get {event_id}",
            lambda: self.store.get(self.collection, event_id),
        )
        if data is None:
            return None
        return TournamentEvent.model_validate({**data, "id": event_id})

    def exists_by_detail_url(self, detail_url: str) -> bool:
        """Return ``True`` if any stored event has exactly this detail URL."""
        docs = self._call(
            "events: detail_url dedup check",
            lambda: self.store.query(
                self.collection, [("detail_url", "==", detail_url)], limit=1
            ),
        )
        return bool(docs)

    def count_for_date_category(self, date_key: str, category: Category) -> int:
        """Number of stored events for (date, category); seeds id sequences."""
        return self._call(
            f"events: count {date_key} {category.code}",
            lambda: self.store.count(
                self.collection,
                [("date_key", "==", date_key), ("category", "==", category.code)],
            ),
        )

    def list_for_date(self, date_key: str) -> list[TournamentEvent]:
        """All stored events for a date, ordered by id."""
        docs = self._call(
            f"events: list {date_key}",
            lambda: self.store.query(self.collection, [("date_key", "==", date_key)]),
        )
        return [self._to_model(TournamentEvent, d) for d in docs]

    def insert_many(self, events: list[TournamentEvent]) -> int:
        """Write new events in a single batch commit.

        Args:
            events: Events with their final ids already assigned.

        Returns:
            Number of documents written (0 when ``events`` is empty).
        """
        if not events:
            return 0

        def _commit() -> int:
            batch = self.store.batch()
            for ev in events:
                batch.set(self.collection, ev.id, self._dump(ev))
            return batch.commit()

        written = self._call(f"events: commit {len(events)} new", _commit)
        logger.info("Inserted %d event(s).", written)
        return written

    def mark_rankings_collected(self, event_id: str, at: datetime) -> None:
        """Flip ``rankings_collected`` with a partial update; other fields untouched."""
        stamp = at.isoformat()
        self._call(
            f"events: mark collected {event_id}",
            lambda: self.store.update(
                self.collection,
                event_id,
                {
                    "rankings_collected": True,
                    "rankings_collected_at": stamp,
                    "updated_at": stamp,
                },
            ),
        )
