"""
Repository for daily snapshots: id-keyed whole-document replacement.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_SNAPSHOTS
from cityleague_pipeline.models.snapshot import DailySnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotRepository(BaseRepository):
    """Read/write access to the ``daily_snapshots`` collection."""

    collection = COLLECTION_SNAPSHOTS

    def exists(self, snapshot_id: str) -> bool:
        return self._call(
            f"snapshots: exists {snapshot_id}",
            lambda: self.store.exists(self.collection, snapshot_id),
        )

    def get(self, snapshot_id: str) -> Optional[DailySnapshot]:
        data = self._call(
            f"snapshots: get {snapshot_id}",
            lambda: self.store.get(self.collection, snapshot_id),
        )
        if data is None:
            return None
        return DailySnapshot.model_validate({**data, "id": snapshot_id})

    def replace(self, snapshot: DailySnapshot) -> None:
        """Overwrite the snapshot document entirely."""
        body = self._dump(snapshot)
        self._call(
            f"snapshots: write {snapshot.id}",
            lambda: self.store.set(self.collection, snapshot.id, body, merge=False),
        )

    def modify(
        self,
        snapshot_id: str,
        fn: Callable[[Optional[dict[str, Any]]], tuple[Optional[dict[str, Any]], T]],
    ) -> T:
        """Read-modify-write the raw snapshot body in one transaction."""
        return self._call(
            f"snapshots: transaction {snapshot_id}",
            lambda: self.store.transaction(self.collection, snapshot_id, fn),
        )
