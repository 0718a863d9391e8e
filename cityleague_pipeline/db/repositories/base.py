"""
Base repository providing the retried store access shared by all repositories.

All repositories inherit from ``BaseRepository`` and receive a
``DocumentStore`` at construction time.  The store is assumed to be opened
and managed by the caller.

Design:
  - Repositories speak Pydantic models, not raw dicts.
  - Every store call goes through ``with_store_retry`` so transient lock
    contention is retried with backoff and logged to the run's sink, while
    permanent failures surface immediately.
  - Models are serialised with ``model_dump(mode="json")``; reads validate
    the stored body back into the model with the document id injected.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel

from cityleague_pipeline.config import RetryConfig
from cityleague_pipeline.db.store import Document, DocumentStore
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.retry import with_store_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class BaseRepository:
    """Shared retry plumbing for repository classes.

    Attributes:
        store: The injected ``DocumentStore``.
        logs:  Run log sink receiving retry lines.
        retry: Backoff parameters.
        sleep: Sleep function (injected in tests).
    """

    collection: str  # Override in subclass

    def __init__(
        self,
        store: DocumentStore,
        logs: Optional[RunLog] = None,
        retry: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.logs = logs if logs is not None else RunLog(logger=logger)
        self.retry = retry or RetryConfig()
        self.sleep = sleep

    def _call(self, label: str, fn: Callable[[], T]) -> T:
        """Run one store operation under the store retry policy."""
        return with_store_retry(
            fn,
            self.logs,
            label,
            max_retry=self.retry.store_max_retry,
            base_wait_ms=self.retry.base_wait_ms,
            max_wait_ms=self.retry.max_wait_ms,
            sleep=self.sleep,
        )

    @staticmethod
    def _to_model(model_cls: type[M], doc: Document) -> M:
        return model_cls.model_validate({**doc.data, "id": doc.id})

    @staticmethod
    def _dump(model: BaseModel, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        data = model.model_dump(mode="json", exclude=exclude)
        data.pop("id", None)
        return data
