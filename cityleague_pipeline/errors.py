"""
Exception hierarchy for the City League pipeline.

  PipelineError
  ├── StoreError
  │   ├── TransientStoreError: unavailable / deadline / timeout class; retried
  │   └── PermanentStoreError: surfaced immediately
  │       └── DocumentNotFoundError
  ├── AcquisitionError
  │   └── MalformedSourceInputError: the only acquisition error that escapes the ladder
  ├── InvalidTargetDateError
  ├── ScraperDisabledError
  ├── SnapshotNotFoundError
  ├── InvalidDeckNameError
  ├── DuplicateDeckNameError
  └── DeckNameNotFoundError

This module has NO imports from any other ``cityleague_pipeline`` package.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


# ── Store ─────────────────────────────────────────────────────────────────────

class StoreError(PipelineError):
    """Failure talking to the document store."""

    code: str = "unknown"


class TransientStoreError(StoreError):
    """Lock contention or an unavailable store; safe to retry."""

    code = "unavailable"


class PermanentStoreError(StoreError):
    """A store failure that retrying will not fix."""

    code = "failed-precondition"


class DocumentNotFoundError(PermanentStoreError):
    """A partial update targeted a document that does not exist."""

    code = "not-found"


# ── Acquisition ───────────────────────────────────────────────────────────────

class AcquisitionError(PipelineError):
    """A ranking acquisition tier failed."""


class MalformedSourceInputError(AcquisitionError):
    """Input is structurally unusable, e.g. a detail URL with no event id."""


# ── Orchestration / boundaries ────────────────────────────────────────────────

class InvalidTargetDateError(PipelineError, ValueError):
    """A target date key or month is malformed or not on the calendar."""


class ScraperDisabledError(PipelineError):
    """The scraper kill-switch is off; runs are refused."""


class SnapshotNotFoundError(PipelineError):
    """Curation targeted a snapshot document that does not exist."""


class InvalidDeckNameError(PipelineError, ValueError):
    """A dictionary name is blank or longer than the curation limit."""

    code = "invalid-name"


class DuplicateDeckNameError(PipelineError):
    """The deck-name dictionary already holds this name."""

    code = "duplicate-name"


class DeckNameNotFoundError(PipelineError):
    """A dictionary update named a deck name that is not registered."""

    code = "not-found"
