"""
Closed vocabularies for the pipeline.

  - ``Category``: tournament division an event (and its rows) belongs to.
  - ``ExecutionStatus``: lifecycle status of one orchestrated run.
  - ``RunPhase``: orchestrator state machine positions.
  - ``SnapshotStatus``: per-category outcome of a snapshot build.
  - ``SummaryScope``: daily or monthly curation summary recompute.

Usage example::

    from cityleague_pipeline.taxonomy.categories import Category

    cat = Category("open")
    cat.code        # "open"
    cat.others()    # (Category.SENIOR, Category.JUNIOR)

This module has NO imports from any other ``cityleague_pipeline`` package.
"""

from enum import StrEnum

VALID_RANKS = frozenset({1, 2, 3, 5, 9})


class Category(StrEnum):
    """Division of a City League event."""

    OPEN = "open"
    """Open division; the only one with a second results page."""

    SENIOR = "senior"

    JUNIOR = "junior"

    UNKNOWN = "unknown"
    """Title carried the league marker but no division keyword; never persisted."""

    @property
    def code(self) -> str:
        return self.value

    @property
    def is_known(self) -> bool:
        return self is not Category.UNKNOWN

    @classmethod
    def known(cls) -> tuple["Category", ...]:
        """Known divisions in snapshot order."""
        return (cls.OPEN, cls.SENIOR, cls.JUNIOR)

    def others(self) -> tuple["Category", ...]:
        """The known divisions other than this one, in snapshot order."""
        return tuple(c for c in Category.known() if c is not self)


class ExecutionStatus(StrEnum):
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"


class RunPhase(StrEnum):
    """Orchestrator state machine.

    Start → DetermineTargetDate → Probe → (NotifyEmpty → Finish)
          → Collect → BuildSnapshots → SummarizeCounts → Notify → Finish
    Any phase may transition to Error.
    """

    START = "start"
    DETERMINE_TARGET_DATE = "determine_target_date"
    PROBE = "probe"
    NOTIFY_EMPTY = "notify_empty"
    COLLECT = "collect"
    BUILD_SNAPSHOTS = "build_snapshots"
    SUMMARIZE_COUNTS = "summarize_counts"
    NOTIFY = "notify"
    FINISH = "finish"
    ERROR = "error"


class SnapshotStatus(StrEnum):
    WRITTEN = "written"
    SKIPPED_EXISTING = "skipped_existing"
    SKIPPED_EMPTY = "skipped_empty"


class SummaryScope(StrEnum):
    """Which curation summary ``recompute-summaries`` rebuilds."""

    DAILY = "daily"
    MONTHLY = "monthly"
