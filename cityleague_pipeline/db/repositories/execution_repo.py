"""
Repository for ExecutionRecord documents.

Record ids sort chronologically, so the latest run is one descending query
on the id with ``limit=1``.
"""

from __future__ import annotations

import logging
from typing import Optional

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_EXECUTIONS
from cityleague_pipeline.db.store import DOCUMENT_ID
from cityleague_pipeline.models.meta import ExecutionRecord

logger = logging.getLogger(__name__)


class ExecutionRepository(BaseRepository):
    """Read/write access to the ``executions`` collection."""

    collection = COLLECTION_EXECUTIONS

    def save(self, record: ExecutionRecord) -> None:
        """Merge the record's current state into its document."""
        body = self._dump(record)
        self._call(
            f"executions: write {record.id} status={record.status.value}",
            lambda: self.store.set(self.collection, record.id, body, merge=True),
        )

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        data = self._call(
            f"executions: get {execution_id}",
            lambda: self.store.get(self.collection, execution_id),
        )
        if data is None:
            return None
        return ExecutionRecord.model_validate({**data, "id": execution_id})

    def latest(self) -> Optional[ExecutionRecord]:
        docs = self._call(
            "executions: latest",
            lambda: self.store.query(
                self.collection, order_by=DOCUMENT_ID, descending=True, limit=1
            ),
        )
        if not docs:
            return None
        return self._to_model(ExecutionRecord, docs[0])
