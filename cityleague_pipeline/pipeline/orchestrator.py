"""
Auto-run orchestration for the City League pipeline.

The ``AutoRunOrchestrator`` runs one day's pipeline as a fixed sequence:

  Start → DetermineTargetDate → Probe
        → (no events: NotifyEmpty → Finish)
        → Collect → BuildSnapshots → SummarizeCounts → Notify → Finish

  Step 1: Target date.  A valid ``YYYYMMDD`` override wins; otherwise (no
          override, or an invalid one) the previous calendar day at the
          site's UTC offset.
  Step 2: Probe.        Discover and persist the day's events.
  Step 3: Collect.      Acquire rankings for uncollected events (all of them
                        with ``force_rankings``).
  Step 4: Snapshots.    Rebuild the day's snapshots (``snapshot_force``).
  Step 5: Summary.      Recount events/rankings and send the notification.

Run record
----------
An ``ExecutionRecord`` keyed by a ``YYYYMMDD-HHMMSS-mmm`` timestamp id (site
offset) is written at start, at every phase boundary and at the terminal
state.  Its ``logs`` list is the run log sink every stage appends to.
Record writes are best-effort: a failed write is logged and never changes
the run's outcome.

Failure handling
----------------
Any exception ends the run in ``status="error"`` with the message and the
logs so far.  The run is not retried automatically; ``run()`` never raises.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from cityleague_pipeline.acquisition.browser import BrowserSession
from cityleague_pipeline.acquisition.deck import DeckImageResolver
from cityleague_pipeline.acquisition.ladder import AcquisitionLadder
from cityleague_pipeline.acquisition.listing import ListingSource, PlaywrightListingSource
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.repositories.execution_repo import ExecutionRepository
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.models.meta import ExecutionRecord
from cityleague_pipeline.notifier import (
    SlackNotifier,
    format_empty_day_message,
    format_summary_message,
)
from cityleague_pipeline.pipeline.probe import ProbeStage
from cityleague_pipeline.pipeline.rankings import RankingsStage
from cityleague_pipeline.pipeline.snapshots import SnapshotStage
from cityleague_pipeline.pipeline.summary import collect_summary_counts
from cityleague_pipeline.taxonomy.categories import ExecutionStatus, RunPhase
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.time_utils import (
    compact_timestamp,
    format_duration_human,
    resolve_target_date,
    site_tz,
    utcnow,
)

logger = logging.getLogger(__name__)


# ── Run components ────────────────────────────────────────────────────────────

@dataclass
class RunComponents:
    """Acquisition collaborators for one run, released by ``close()``."""

    listing: ListingSource
    ladder: AcquisitionLadder
    resolver: DeckImageResolver
    _closers: tuple[Callable[[], None], ...] = ()

    def close(self) -> None:
        for closer in self._closers:
            try:
                closer()
            except Exception as exc:
                logger.warning("Failed to release run component: %s", exc)


def default_components(config: AppConfig, logs: RunLog) -> RunComponents:
    """Browser-backed listing and ladder plus an httpx image resolver."""
    session = BrowserSession.from_config(config)
    resolver = DeckImageResolver.from_config(config)
    ladder = AcquisitionLadder.from_config(config, logs, session)
    return RunComponents(
        listing=PlaywrightListingSource(session),
        ladder=ladder,
        resolver=resolver,
        _closers=(ladder.close, resolver.close, session.close),
    )


ComponentsFactory = Callable[[AppConfig, RunLog], RunComponents]


# ── Orchestrator ──────────────────────────────────────────────────────────────

class AutoRunOrchestrator:
    """Runs the full daily pipeline and keeps its ExecutionRecord current.

    Args:
        config:     AppConfig for this run.
        store:      Open document store.
        notifier:   Notification sink.  Defaults to Slack from ``config.notify``.
        components: Factory for acquisition collaborators (injected in tests).
        clock:      Returns the current aware UTC datetime.
        sleep:      Backoff sleep passed to the stages.
    """

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        notifier: Optional[SlackNotifier] = None,
        components: ComponentsFactory = default_components,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.notifier = notifier or SlackNotifier.from_config(config.notify)
        self.components = components
        self.clock = clock
        self.sleep = sleep
        self._records = ExecutionRepository(store, RunLog(logger=logger), config.retry, sleep)

    def run(
        self,
        date_override: Optional[str] = None,
        force_rankings: bool = False,
        execution_id: Optional[str] = None,
    ) -> ExecutionRecord:
        """Execute the pipeline once.

        Args:
            date_override:  Optional ``YYYYMMDD`` target day.
            force_rankings: Re-acquire rankings for already collected events
                            and enable force-rescue.
            execution_id:   Record id; derived from the start time when omitted.

        Returns:
            The terminal ``ExecutionRecord`` (``finished`` or ``error``).
        """
        offset = self.config.orchestrator.utc_offset_hours
        started_at = self.clock()
        t0 = time.monotonic()
        record = ExecutionRecord(
            id=execution_id or compact_timestamp(started_at, offset),
            started_at=started_at,
            force_rankings=force_rankings,
            updated_at=started_at,
        )
        logs = RunLog(record.logs, logger)
        logs.info(f"auto-run {record.id}: start force_rankings={force_rankings}")
        self._persist(record)

        components: Optional[RunComponents] = None
        try:
            # ── Step 1: Target date ───────────────────────────────────────────
            self._enter(record, RunPhase.DETERMINE_TARGET_DATE, logs)
            date_key, date_label, used_override = resolve_target_date(
                date_override, now=started_at, offset_hours=offset
            )
            if date_override and not used_override:
                logs.warning(
                    f"invalid date override {date_override!r}; using previous day {date_key}"
                )
            logs.info(
                f"target date: ymd={date_key} md={date_label}"
                + (" (override)" if used_override else "")
            )
            record.target_date_key = date_key
            record.target_date_label = date_label

            components = self.components(self.config, logs)

            # ── Step 2: Probe ─────────────────────────────────────────────────
            self._enter(record, RunPhase.PROBE, logs)
            probe = ProbeStage(
                self.config, self.store, components.listing, logs, self.sleep
            ).run(date_key=date_key, date_label=date_label)

            if probe.total_events == 0:
                self._enter(record, RunPhase.NOTIFY_EMPTY, logs)
                self.notifier.send(format_empty_day_message(date_label, self._local_now()))
                logs.info("no events for the target day; skipping collection")
                return self._finish(record, t0, logs)

            # ── Step 3: Collect ───────────────────────────────────────────────
            self._enter(record, RunPhase.COLLECT, logs)
            RankingsStage(
                self.config, self.store, components.ladder, logs, self.sleep
            ).run(date_key=date_key, force=force_rankings)

            # ── Step 4: Snapshots ─────────────────────────────────────────────
            self._enter(record, RunPhase.BUILD_SNAPSHOTS, logs)
            SnapshotStage(
                self.config, self.store, components.resolver, logs, self.sleep
            ).run(date_key=date_key, force=self.config.orchestrator.snapshot_force)

            # ── Step 5: Summary + notify ──────────────────────────────────────
            self._enter(record, RunPhase.SUMMARIZE_COUNTS, logs)
            counts = collect_summary_counts(
                self.store,
                date_key,
                league_type=self.config.probe.league_type,
                logs=logs,
                retry=self.config.retry,
                chunk_size=self.config.snapshot.in_chunk_size,
                sleep=self.sleep,
            )

            self._enter(record, RunPhase.NOTIFY, logs)
            self.notifier.send(format_summary_message(date_label, counts, self._local_now()))
            return self._finish(record, t0, logs)

        except Exception as exc:
            logger.exception("auto-run %s failed in phase %s", record.id, record.phase.value)
            return self._fail(record, t0, logs, exc)

        finally:
            if components is not None:
                components.close()

    # ── Private helpers ───────────────────────────────────────────────────────

    def _local_now(self) -> datetime:
        return self.clock().astimezone(site_tz(self.config.orchestrator.utc_offset_hours))

    def _enter(self, record: ExecutionRecord, phase: RunPhase, logs: RunLog) -> None:
        record.phase = phase
        record.updated_at = self.clock()
        logs.info(f"phase: {phase.value}")
        self._persist(record)

    def _finish(self, record: ExecutionRecord, t0: float, logs: RunLog) -> ExecutionRecord:
        record.phase = RunPhase.FINISH
        record.status = ExecutionStatus.FINISHED
        record.ok = True
        record.ended_at = self.clock()
        record.updated_at = record.ended_at
        record.duration_human = format_duration_human(time.monotonic() - t0)
        logs.info(f"auto-run {record.id}: finished in {record.duration_human}")
        self._persist(record)
        return record

    def _fail(
        self,
        record: ExecutionRecord,
        t0: float,
        logs: RunLog,
        exc: Exception,
    ) -> ExecutionRecord:
        logs.warning(f"auto-run {record.id}: error during {record.phase.value}: {exc}")
        record.phase = RunPhase.ERROR
        record.status = ExecutionStatus.ERROR
        record.ok = False
        record.error = str(exc) or exc.__class__.__name__
        record.ended_at = self.clock()
        record.updated_at = record.ended_at
        record.duration_human = format_duration_human(time.monotonic() - t0)
        self._persist(record)
        return record

    def _persist(self, record: ExecutionRecord) -> None:
        """Write the record.  Failures are logged, never raised."""
        try:
            self._records.save(record)
        except Exception as exc:
            logger.error("Failed to persist ExecutionRecord %s: %s", record.id, exc)
