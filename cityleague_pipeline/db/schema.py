"""
SQLite schema DDL for the document store.

Every persisted entity is a JSON document in one table, addressed by
``(collection, doc_id)``.  Collections:

  events             TournamentEvent
  rankings           RankingRow
  daily_snapshots    DailySnapshot
  executions         ExecutionRecord
  work_days          WorkDaySummary
  work_months        WorkMonthSummary
  deck_names         DeckNameEntry (id = the name)

Expression indexes cover the fields the pipeline filters on.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

COLLECTION_EVENTS = "events"
COLLECTION_RANKINGS = "rankings"
COLLECTION_SNAPSHOTS = "daily_snapshots"
COLLECTION_EXECUTIONS = "executions"
COLLECTION_WORK_DAYS = "work_days"
COLLECTION_WORK_MONTHS = "work_months"
COLLECTION_DECK_NAMES = "deck_names"

ALL_COLLECTIONS: tuple[str, ...] = (
    COLLECTION_EVENTS,
    COLLECTION_RANKINGS,
    COLLECTION_SNAPSHOTS,
    COLLECTION_EXECUTIONS,
    COLLECTION_WORK_DAYS,
    COLLECTION_WORK_MONTHS,
    COLLECTION_DECK_NAMES,
)

# Pipeline output cleared by purge-data, in deletion order.  Curation
# summaries and the deck-name dictionary are kept.
PURGE_COLLECTIONS: tuple[str, ...] = (
    COLLECTION_SNAPSHOTS,
    COLLECTION_EXECUTIONS,
    COLLECTION_RANKINGS,
    COLLECTION_EVENTS,
)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS documents (
    collection      TEXT    NOT NULL,
    doc_id          TEXT    NOT NULL,
    body            TEXT    NOT NULL CHECK (json_valid(body)),
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    modified_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (collection, doc_id)
);
"""

_DDL_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_documents_date_key
    ON documents (collection, json_extract(body, '$.date_key'));
CREATE INDEX IF NOT EXISTS idx_documents_detail_url
    ON documents (collection, json_extract(body, '$.detail_url'));
CREATE INDEX IF NOT EXISTS idx_documents_event_id
    ON documents (collection, json_extract(body, '$.event_id'));
"""

_ALL_DDL: list[str] = [_DDL_DOCUMENTS, _DDL_INDEXES]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent; safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            if statement.strip():
                conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: documents table + %d collections.", len(ALL_COLLECTIONS))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]
