"""
Fire-and-forget entry point for auto-runs.

``RunTrigger.trigger()`` checks the scraper kill-switch, picks the run's
execution id and starts the orchestrator on a daemon thread, returning an
acknowledgement immediately.  The background run opens its own store
connection and owns its error handling; its outcome is visible only through
the ExecutionRecord, which ``RunTrigger.latest()`` reads back.

Overlapping triggers are not serialised.  Deterministic document ids keep
concurrent runs for the same day from duplicating data.

Usage::

    trigger = RunTrigger(load_config())
    ack = trigger.trigger(date_override="20250307")
    ...
    record = trigger.latest()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.connection import get_connection
from cityleague_pipeline.db.repositories.execution_repo import ExecutionRepository
from cityleague_pipeline.db.schema import apply_schema
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.errors import ScraperDisabledError
from cityleague_pipeline.models.meta import ExecutionRecord
from cityleague_pipeline.pipeline.orchestrator import AutoRunOrchestrator
from cityleague_pipeline.utils.time_utils import compact_timestamp

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[AppConfig, DocumentStore], AutoRunOrchestrator]


@dataclass(frozen=True)
class TriggerAck:
    """Immediate response to a trigger request."""

    accepted: bool
    execution_id: str
    mode: str = "background"


class RunTrigger:
    """Start auto-runs in the background and report the latest one.

    Args:
        config:               Application config.
        db_path:              Overrides ``config.database.db_path``.
        orchestrator_factory: Builds the orchestrator for a store (tests
                              inject fakes here).
    """

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        orchestrator_factory: Optional[OrchestratorFactory] = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self._factory: OrchestratorFactory = orchestrator_factory or AutoRunOrchestrator
        self._threads: list[threading.Thread] = []

    def trigger(
        self,
        date_override: Optional[str] = None,
        force_rankings: bool = False,
    ) -> TriggerAck:
        """Start one auto-run and return without waiting for it.

        Raises:
            ScraperDisabledError: If ``scraper_enabled`` is false.
        """
        if not self.config.scraper_enabled:
            raise ScraperDisabledError("Scraper is disabled (scraper_enabled = false).")

        execution_id = compact_timestamp(offset_hours=self.config.orchestrator.utc_offset_hours)
        thread = threading.Thread(
            target=self._run,
            args=(execution_id, date_override, force_rankings),
            name=f"auto-run-{execution_id}",
            daemon=True,
        )
        thread.start()
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        logger.info(
            "Triggered auto-run %s (date_override=%s force_rankings=%s)",
            execution_id, date_override, force_rankings,
        )
        return TriggerAck(accepted=True, execution_id=execution_id)

    def latest(self) -> Optional[ExecutionRecord]:
        """Most recent ExecutionRecord, or ``None`` before the first run."""
        with self._connect() as conn:
            apply_schema(conn)
            return ExecutionRepository(DocumentStore(conn), retry=self.config.retry).latest()

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        with self._connect() as conn:
            apply_schema(conn)
            return ExecutionRepository(DocumentStore(conn), retry=self.config.retry).get(execution_id)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for runs started by this trigger (CLI and tests)."""
        for thread in list(self._threads):
            thread.join(timeout)

    # ── Background body ───────────────────────────────────────────────────────

    def _connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        )

    def _run(
        self,
        execution_id: str,
        date_override: Optional[str],
        force_rankings: bool,
    ) -> None:
        try:
            with self._connect() as conn:
                apply_schema(conn)
                orchestrator = self._factory(self.config, DocumentStore(conn))
                record = orchestrator.run(
                    date_override=date_override,
                    force_rankings=force_rankings,
                    execution_id=execution_id,
                )
            logger.info("Background auto-run %s ended: %s", execution_id, record.status.value)
        except Exception as exc:
            logger.error("Background auto-run %s crashed: %s", execution_id, exc, exc_info=True)
