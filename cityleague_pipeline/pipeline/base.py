"""
Abstract base class for all pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` and an open ``DocumentStore`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` logs start and completion (with elapsed time) to the run log
     and calls ``_execute()``.
  4. ``_execute()`` is the stage-specific implementation (overridden by subclasses).

This design ensures:
  - The store is injected explicitly; stages never open their own.
  - Error handling is centralized: stages log and re-raise, and only the
    orchestrator decides what a failure means for the run.
  - Config is always available to every stage.

Usage::

    class MyStage(PipelineStage):
        stage_name = "probe"

        def _execute(self, date_key: str) -> ProbeResult:
            ...

    stage = MyStage(config=app_config, store=store, logs=run_log)
    result = stage.run(date_key="20250307")
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.time_utils import format_duration_human

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Subclasses must:
      1. Set ``stage_name`` class variable.
      2. Implement ``_execute(**kwargs)``.

    Attributes:
        stage_name: Short identifier used in log lines.
        config: The application configuration for this run.
        store: Document store shared by the run.
        logs: Run log sink (persisted into the ExecutionRecord).
        sleep: Backoff sleep, injected in tests.
    """

    stage_name: str  # Override in subclass

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.logs = logs if logs is not None else RunLog(logger=logger)
        self.sleep = sleep

    def run(self, **kwargs) -> Any:
        """Execute this pipeline stage.

        Args:
            **kwargs: Stage-specific keyword arguments passed to ``_execute()``.

        Returns:
            Whatever ``_execute()`` returns.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                logging it.
        """
        started = time.monotonic()
        logger.info("Stage [%s] starting | %s", self.stage_name, kwargs)

        try:
            result = self._execute(**kwargs)
        except Exception as exc:
            logger.error(
                "Stage [%s] FAILED after %s: %s",
                self.stage_name,
                format_duration_human(time.monotonic() - started),
                exc,
            )
            raise

        logger.info(
            "Stage [%s] completed in %s",
            self.stage_name,
            format_duration_human(time.monotonic() - started),
        )
        return result

    @abstractmethod
    def _execute(self, **kwargs) -> Any:
        """Stage-specific implementation."""
        ...
