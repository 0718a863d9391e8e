"""
Batch deletion of pipeline output, for resetting an environment.

``CollectionPurger.purge()`` empties each collection in turn: it reads up
to ``batch_size`` ids, deletes them in one ``WriteBatch``, pauses briefly
and repeats until the collection is empty.  With ``dry_run=True`` nothing is
deleted; each collection's document count is reported instead.

Not part of any scheduled flow.  The CLI asks for confirmation first.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from cityleague_pipeline.config import DatabaseConfig, RetryConfig
from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import PURGE_COLLECTIONS
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    dry_run: bool
    deleted: dict[str, int] = field(default_factory=dict)
    found: dict[str, int] = field(default_factory=dict)
    logs: list[str] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


class CollectionPurger(BaseRepository):
    """Deletes whole collections under the store retry policy."""

    def __init__(
        self,
        store: DocumentStore,
        database: Optional[DatabaseConfig] = None,
        logs: Optional[RunLog] = None,
        retry: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(store, logs, retry, sleep)
        database = database or DatabaseConfig()
        self.batch_size = database.purge_batch_size
        self.pause_s = database.purge_pause_ms / 1000

    def purge(
        self,
        collections: Sequence[str] = PURGE_COLLECTIONS,
        dry_run: bool = False,
    ) -> PurgeResult:
        result = PurgeResult(dry_run=dry_run, logs=self.logs.lines)
        for collection in collections:
            if dry_run:
                n = self._call(f"purge: count {collection}", lambda: self.store.count(collection))
                result.found[collection] = n
                self.logs.info(f"[dry-run] {collection}: {n} document(s)")
            else:
                result.deleted[collection] = self._delete_all(collection)
        if not dry_run:
            logger.info("Purge complete: %d document(s) deleted", result.total_deleted)
        return result

    def _delete_all(self, collection: str) -> int:
        total = 0
        while True:
            docs = self._call(
                f"purge: read {collection}",
                lambda: self.store.query(collection, limit=self.batch_size),
            )
            if not docs:
                break
            batch = self.store.batch()
            for doc in docs:
                batch.delete(collection, doc.id)
            self._call(f"purge: delete {collection}", batch.commit)
            total += len(docs)
            self.logs.info(f"{collection}: deleted batch ({len(docs)}) cumulative={total}")
            self.sleep(self.pause_s)
        return total
