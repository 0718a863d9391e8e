"""
Document store over SQLite, the only persistence primitive the pipeline uses.

Every component receives a ``DocumentStore`` explicitly; there is no
process-wide handle.  Primitives:

  get / exists: by id
  query / count: equality and range filters, ordering, limit
  query_in: ``field IN (...)`` split into chunks of ≤ 10
  set(merge=...) / update: explicit full or partial writes
  delete: by id
  batch(): multi-document writes and deletes committed atomically
  transaction(): single-document read-modify-write

Writes only touch the fields the caller names: ``set(..., merge=True)`` and
``update()`` merge top-level fields into the stored body, so two components
writing different fields of one document never clobber each other.

SQLite lock contention (``database is locked`` / ``busy``) surfaces as
``TransientStoreError`` so ``with_store_retry`` retries it; every other
SQLite failure is a ``PermanentStoreError``.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generator, Iterable, Optional, Sequence, TypeVar

from cityleague_pipeline.errors import (
    DocumentNotFoundError,
    PermanentStoreError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_ID = "__id__"
MAX_IN_VALUES = 10

Filter = tuple[str, str, Any]

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_RANGE_OPS = {"<": "<", "<=": "<=", ">": ">", ">=": ">=", "!=": "!="}

_UPSERT_SQL = """
INSERT INTO documents (collection, doc_id, body)
VALUES (?, ?, ?)
ON CONFLICT (collection, doc_id) DO UPDATE SET
    body        = excluded.body,
    modified_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_DELETE_SQL = "DELETE FROM documents WHERE collection = ? AND doc_id = ?;"


@dataclass(frozen=True)
class Document:
    """A stored document: its id and decoded JSON body."""

    id: str
    data: dict[str, Any]


# ── Error translation ─────────────────────────────────────────────────────────

@contextmanager
def _translate_errors(op: str) -> Generator[None, None, None]:
    try:
        yield
    except sqlite3.OperationalError as exc:
        msg = str(exc).lower()
        if "locked" in msg or "busy" in msg:
            raise TransientStoreError(f"UNAVAILABLE: {op}: {exc}") from exc
        raise PermanentStoreError(f"{op}: {exc}") from exc
    except sqlite3.Error as exc:
        raise PermanentStoreError(f"{op}: {exc}") from exc


def _encode(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _field_expr(name: str) -> str:
    if name == DOCUMENT_ID:
        return "doc_id"
    if not _FIELD_RE.match(name):
        raise PermanentStoreError(f"Invalid field name in query: {name!r}")
    return f"json_extract(body, '$.{name}')"


def _where_clause(where: Sequence[Filter]) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for name, op, value in where:
        expr = _field_expr(name)
        if op == "==":
            if value is None:
                clauses.append(f"{expr} IS NULL")
            else:
                clauses.append(f"{expr} = ?")
                params.append(_param(value))
        elif op == "in":
            values = list(value)
            if len(values) > MAX_IN_VALUES:
                raise PermanentStoreError(
                    f"'in' filter accepts at most {MAX_IN_VALUES} values, got {len(values)}."
                )
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{expr} IN ({', '.join('?' for _ in values)})")
            params.extend(_param(v) for v in values)
        elif op in _RANGE_OPS:
            clauses.append(f"{expr} {_RANGE_OPS[op]} ?")
            params.append(_param(value))
        else:
            raise PermanentStoreError(f"Unsupported query operator: {op!r}")
    return (" AND ".join(clauses) if clauses else "1"), params


# ── Store ─────────────────────────────────────────────────────────────────────

class DocumentStore:
    """JSON documents grouped by collection, stored in one SQLite table.

    Args:
        conn: An open connection with the schema applied.  Calls are
              serialised with an internal lock so one store may be shared
              with a background run thread.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.RLock()

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Return the document body, or ``None`` if absent."""
        with self._lock, _translate_errors(f"get {collection}/{doc_id}"):
            row = self.conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_id = ?;",
                (collection, doc_id),
            ).fetchone()
        return json.loads(row["body"]) if row is not None else None

    def exists(self, collection: str, doc_id: str) -> bool:
        with self._lock, _translate_errors(f"exists {collection}/{doc_id}"):
            row = self.conn.execute(
                "SELECT 1 FROM documents WHERE collection = ? AND doc_id = ?;",
                (collection, doc_id),
            ).fetchone()
        return row is not None

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Filter a collection.

        Args:
            collection: Collection name.
            where:      ``(field, op, value)`` triples ANDed together.  ``op`` is
                        one of ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``, ``in``.
                        Use ``DOCUMENT_ID`` as the field to filter on the id.
            order_by:   Field (or ``DOCUMENT_ID``) to sort on.  Ties, and
                        unordered queries, fall back to ascending id.
            descending: Reverse ``order_by``.
            limit:      Maximum documents returned.

        Returns:
            Matching documents.
        """
        clause, params = _where_clause(where)
        sql = f"SELECT doc_id, body FROM documents WHERE collection = ? AND {clause}"
        if order_by is not None:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {_field_expr(order_by)} {direction}, doc_id {direction}"
        else:
            sql += " ORDER BY doc_id ASC"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        with self._lock, _translate_errors(f"query {collection}"):
            rows = self.conn.execute(sql + ";", [collection, *params]).fetchall()
        return [Document(id=r["doc_id"], data=json.loads(r["body"])) for r in rows]

    def count(self, collection: str, where: Sequence[Filter] = ()) -> int:
        clause, params = _where_clause(where)
        sql = f"SELECT COUNT(*) AS n FROM documents WHERE collection = ? AND {clause};"
        with self._lock, _translate_errors(f"count {collection}"):
            row = self.conn.execute(sql, [collection, *params]).fetchone()
        return int(row["n"])

    def query_in(
        self,
        collection: str,
        field_name: str,
        values: Iterable[Any],
        where: Sequence[Filter] = (),
        chunk_size: int = MAX_IN_VALUES,
    ) -> list[Document]:
        """``field IN values`` split into chunks of at most ``chunk_size``.

        Results are concatenated in chunk order.
        """
        size = max(1, min(chunk_size, MAX_IN_VALUES))
        vals = list(values)
        docs: list[Document] = []
        for start in range(0, len(vals), size):
            chunk = vals[start:start + size]
            docs.extend(self.query(collection, [(field_name, "in", chunk), *where]))
        return docs

    # ── Writes ────────────────────────────────────────────────────────────────

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Write a document.  ``merge=True`` keeps fields not named in ``data``."""
        with self._lock, _translate_errors(f"set {collection}/{doc_id}"):
            with self.conn:
                self._write(collection, doc_id, data, merge=merge)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Partially update an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        with self._lock, _translate_errors(f"update {collection}/{doc_id}"):
            with self.conn:
                self._update(collection, doc_id, fields)

    def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document.  Returns False when it did not exist."""
        with self._lock, _translate_errors(f"delete {collection}/{doc_id}"):
            with self.conn:
                cur = self.conn.execute(_DELETE_SQL, (collection, doc_id))
        return cur.rowcount > 0

    def batch(self) -> "WriteBatch":
        return WriteBatch(self)

    def transaction(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Optional[dict[str, Any]]], tuple[Optional[dict[str, Any]], T]],
    ) -> T:
        """Read-modify-write one document under an immediate write lock.

        ``fn`` receives the current body (or ``None``) and returns
        ``(fields_to_update, result)``.  ``fields_to_update`` is merged into
        the document when not empty.  Exceptions from ``fn`` roll back and
        propagate unchanged.

        Returns:
            The ``result`` half of ``fn``'s return value.
        """
        with self._lock:
            with _translate_errors(f"transaction {collection}/{doc_id}"):
                if self.conn.in_transaction:
                    self.conn.commit()
                self.conn.execute("BEGIN IMMEDIATE;")
            try:
                with _translate_errors(f"transaction {collection}/{doc_id}"):
                    current = self._read(collection, doc_id)
                fields, result = fn(current)
                with _translate_errors(f"transaction {collection}/{doc_id}"):
                    if fields:
                        self._write(collection, doc_id, fields, merge=True)
                    self.conn.commit()
            except BaseException:
                self.conn.rollback()
                raise
        return result

    # ── Internals (caller holds the lock and an open transaction) ─────────────

    def _read(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        row = self.conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND doc_id = ?;",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row["body"]) if row is not None else None

    def _write(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> None:
        body = dict(data)
        if merge:
            existing = self._read(collection, doc_id)
            if existing is not None:
                existing.update(body)
                body = existing
        self.conn.execute(_UPSERT_SQL, (collection, doc_id, _encode(body)))

    def _update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        existing = self._read(collection, doc_id)
        if existing is None:
            raise DocumentNotFoundError(f"No document {collection}/{doc_id} to update.")
        existing.update(fields)
        self.conn.execute(_UPSERT_SQL, (collection, doc_id, _encode(existing)))


@dataclass
class _PendingWrite:
    kind: str
    collection: str
    doc_id: str
    data: dict[str, Any]
    merge: bool = False


@dataclass
class WriteBatch:
    """Multi-document writes applied in one SQLite transaction.

    A batch commits at most once.  Nothing is written if any operation fails.
    """

    store: DocumentStore
    _ops: list[_PendingWrite] = field(default_factory=list)
    _committed: bool = False

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> "WriteBatch":
        self._ops.append(_PendingWrite("set", collection, doc_id, dict(data), merge))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> "WriteBatch":
        self._ops.append(_PendingWrite("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(_PendingWrite("delete", collection, doc_id, {}))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> int:
        """Apply all pending writes atomically.

        Returns:
            Number of documents written.

        Raises:
            PermanentStoreError: If the batch was already committed.
        """
        if self._committed:
            raise PermanentStoreError("WriteBatch already committed.")
        if not self._ops:
            self._committed = True
            return 0
        store = self.store
        with store._lock, _translate_errors(f"batch commit ({len(self._ops)} writes)"):
            with store.conn:
                for op in self._ops:
                    if op.kind == "set":
                        store._write(op.collection, op.doc_id, op.data, merge=op.merge)
                    elif op.kind == "delete":
                        store.conn.execute(_DELETE_SQL, (op.collection, op.doc_id))
                    else:
                        store._update(op.collection, op.doc_id, op.data)
        self._committed = True
        logger.debug("Batch committed: %d writes", len(self._ops))
        return len(self._ops)
