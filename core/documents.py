"""
core/documents.py -- SQLAlchemy-backed document store.

Both the auth layer and the engagement tracker persist through this one
class. Documents are plain JSON-serialisable dicts grouped into named
collections; every document has a string "_id" that is unique within its
collection.

Uses SQLAlchemy Core (not ORM) over a single `documents` table. The JSON
`body` column is queried with SQLAlchemy's JSON index operators, which
compile to JSON_EXTRACT on SQLite and to ->> on PostgreSQL, so filters run
in the database rather than in Python.

Filters are Mongo-style dicts:
    {"login": "alice"}                                  -- equality
    {"ip": "1.2.3.4", "timestamp": {"$gte": cutoff}}    -- comparison
Supported operators: $gt, $gte, $lt, $lte, $ne. "_id" maps to the doc_id
column. Filter values must be str, int, float or bool.

Every SQLAlchemyError is logged and re-raised as core.errors.PersistenceError,
so callers deal with one failure type regardless of the backing database.

Usage:
    store = DocumentStore()                                # SQLite default
    store = DocumentStore("postgresql://user:pw@host/db")  # PostgreSQL
    doc_id = store.insert("users", {"login": "alice"})
    store.find_one("users", {"login": "alice"})
    store.update_or_insert("tally", {"_id": "global"}, {"support": 1})
    store.count("visits", {"ip": "1.2.3.4"})
    store.close()

Layer rule: no imports from api/, auth/, or engagement/.
"""

from __future__ import annotations

import logging
import operator
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.errors import PersistenceError

logger = logging.getLogger("pulsecount.documents")

# Collection names. Kept here so the auth and engagement layers can share
# the store without importing each other.
USERS = "users"
VISITS = "visits"
TALLY = "tally"
LIVE_VISITORS = "live_visitors"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_documents = Table(
    "documents",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("collection", String(64), nullable=False, index=True),
    Column("doc_id", String(64), nullable=False),
    Column("body", JSON, nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("collection", "doc_id", name="uq_collection_doc"),
)

_OPERATORS = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$ne": operator.ne,
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _field(name: str, value: Any):
    """Return the SQL expression for a document field, typed after `value`."""
    if name == "_id":
        return _documents.c.doc_id
    element = _documents.c.body[name]
    # bool before int: bool is a subclass of int.
    if isinstance(value, bool):
        return element.as_boolean()
    if isinstance(value, int):
        return element.as_integer()
    if isinstance(value, float):
        return element.as_float()
    if isinstance(value, str):
        return element.as_string()
    raise ValueError(f"Unsupported filter value for {name!r}: {value!r}")


def _where(collection: str, filter: dict | None):
    clauses = [_documents.c.collection == collection]
    for name, spec in (filter or {}).items():
        if isinstance(spec, dict):
            for op, value in spec.items():
                if op not in _OPERATORS:
                    raise ValueError(f"Unknown filter operator: {op!r}")
                clauses.append(_OPERATORS[op](_field(name, value), value))
        else:
            clauses.append(_field(name, spec) == spec)
    return and_(*clauses)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """Collection-of-documents persistence over one SQL table."""

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _transaction(self, op: str) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Document store %s failed: %s", op, exc)
            raise PersistenceError() from exc

    def find_one(self, collection: str, filter: dict | None = None) -> dict | None:
        """Return the oldest document matching `filter`, or None."""
        where = _where(collection, filter)
        with self._transaction("find_one") as conn:
            row = conn.execute(select(_documents).where(where).order_by(_documents.c.seq).limit(1)).fetchone()
        return _row_to_document(row) if row is not None else None

    def insert(self, collection: str, document: dict) -> str:
        """Insert a document and return its _id.

        A caller-supplied "_id" is used as-is; a duplicate raises
        PersistenceError. Otherwise a random hex id is assigned.
        """
        body = dict(document)
        doc_id = str(body.pop("_id", None) or uuid.uuid4().hex)
        with self._transaction("insert") as conn:
            conn.execute(
                _documents.insert().values(collection=collection, doc_id=doc_id, body=body, created_at=_now_iso())
            )
        return doc_id

    def update_or_insert(self, collection: str, filter: dict, document: dict) -> str:
        """Replace the first document matching `filter`, or insert a new one.

        On insert the document is merged over the filter's equality fields,
        so update_or_insert("tally", {"_id": "global"}, {...}) creates the
        document with _id "global". Returns the affected document's _id.
        """
        where = _where(collection, filter)
        body = {k: v for k, v in document.items() if k != "_id"}
        with self._transaction("update_or_insert") as conn:
            row = conn.execute(
                select(_documents.c.seq, _documents.c.doc_id).where(where).order_by(_documents.c.seq).limit(1)
            ).fetchone()
            if row is not None:
                conn.execute(_documents.update().where(_documents.c.seq == row.seq).values(body=body))
                return row.doc_id

            seed = {k: v for k, v in filter.items() if not isinstance(v, dict)}
            seed.update(document)
            doc_id = str(seed.pop("_id", None) or uuid.uuid4().hex)
            conn.execute(
                _documents.insert().values(collection=collection, doc_id=doc_id, body=seed, created_at=_now_iso())
            )
            return doc_id

    def count(self, collection: str, filter: dict | None = None) -> int:
        where = _where(collection, filter)
        with self._transaction("count") as conn:
            result = conn.execute(select(func.count()).select_from(_documents).where(where)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._transaction("ping") as conn:
                conn.execute(select(1))
        except PersistenceError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_document(row) -> dict:
    document = dict(row.body)
    document["_id"] = row.doc_id
    return document
