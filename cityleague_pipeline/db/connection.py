"""
SQLite connections for the document store.

``open_connection`` configures a bare connection (tests keep ``":memory:"``
ones open for a whole test).  ``get_connection`` wraps it for one unit of
work: commit on success, rollback on error, always close.

A background auto-run and a ``latest-run`` reader may hit the same file at
once, so file databases run in WAL mode with a busy timeout, and connections
are not pinned to the thread that opened them.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def open_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open *db_path* (creating parent directories) with ``sqlite3.Row`` rows."""
    on_disk = db_path != MEMORY
    if on_disk:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    if wal_mode and on_disk:
        mode = conn.execute("PRAGMA journal_mode = WAL;").fetchone()[0]
        logger.debug("Opened %s (journal_mode=%s)", db_path, mode)
    return conn


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Iterator[sqlite3.Connection]:
    """One unit of work against *db_path*.

    Usage::

        with get_connection(config.database.db_path) as conn:
            apply_schema(conn)
            store = DocumentStore(conn)
    """
    conn = open_connection(db_path, wal_mode=wal_mode, busy_timeout_ms=busy_timeout_ms)
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        conn.close()
