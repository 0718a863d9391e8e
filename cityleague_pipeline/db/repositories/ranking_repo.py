"""
Repository for ranking rows.

Rows are written with merge semantics keyed by their deterministic id, so a
rerun overwrites its own rows and leaves fields owned by other writers
(``deck_name``) alone.
"""

from __future__ import annotations

import logging
from typing import Optional

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_RANKINGS
from cityleague_pipeline.db.store import MAX_IN_VALUES
from cityleague_pipeline.models.ranking import RankingRow
from cityleague_pipeline.taxonomy.categories import Category

logger = logging.getLogger(__name__)

# Fields the collector never writes.
_CURATOR_FIELDS = {"deck_name"}


class RankingRepository(BaseRepository):
    """Read/write access to the ``rankings`` collection."""

    collection = COLLECTION_RANKINGS

    def upsert_rows(self, rows: list[RankingRow]) -> int:
        """Merge-write all rows in one batch.

        Returns:
            Number of rows written.
        """
        if not rows:
            return 0

        def _commit() -> int:
            batch = self.store.batch()
            for row in rows:
                batch.set(
                    self.collection,
                    row.id,
                    self._dump(row, exclude=_CURATOR_FIELDS),
                    merge=True,
                )
            return batch.commit()

        return self._call(f"rankings: commit {rows[0].event_id} ({len(rows)} rows)", _commit)

    def get(self, ranking_id: str) -> Optional[RankingRow]:
        data = self._call(
            f"rankings: get {ranking_id}",
            lambda: self.store.get(self.collection, ranking_id),
        )
        if data is None:
            return None
        return RankingRow.model_validate({**data, "id": ranking_id})

    def list_for_event(self, event_id: str) -> list[RankingRow]:
        docs = self._call(
            f"rankings: list {event_id}",
            lambda: self.store.query(self.collection, [("event_id", "==", event_id)]),
        )
        return [self._to_model(RankingRow, d) for d in docs]

    def list_for_events(
        self,
        event_ids: list[str],
        category: Optional[Category] = None,
        chunk_size: int = MAX_IN_VALUES,
    ) -> list[RankingRow]:
        """Rows belonging to any of ``event_ids``, optionally one category.

        Event ids are queried in chunks of at most ``chunk_size`` (≤ 10), each
        chunk under its own retry.
        """
        where = [("category", "==", category.code)] if category is not None else []
        size = max(1, min(chunk_size, MAX_IN_VALUES))
        rows: list[RankingRow] = []
        for start in range(0, len(event_ids), size):
            chunk = event_ids[start:start + size]
            docs = self._call(
                f"rankings: chunk {start // size + 1} ({len(chunk)} events)",
                lambda chunk=chunk: self.store.query(
                    self.collection, [("event_id", "in", chunk), *where]
                ),
            )
            rows.extend(self._to_model(RankingRow, d) for d in docs)
        return rows

    def set_deck_name(self, ranking_id: str, deck_name: str, updated_at: str) -> bool:
        """Partial update of a curated deck name.  Returns ``False`` if the row is absent."""

        def _apply(current):
            if current is None:
                return None, False
            return {"deck_name": deck_name, "updated_at": updated_at}, True

        return self._call(
            f"rankings: deck name {ranking_id}",
            lambda: self.store.transaction(self.collection, ranking_id, _apply),
        )
