"""
storage/documents.py -- SQLAlchemy Core document store.

Repositories depend only on this narrow document API: get by id, find by one
field equality, insert returning a generated id, update by id, delete by id,
and count + ordered scan with equality filters. No joins, no multi-document
transactions -- the same contract a hosted document database offers, so a
Firestore- or Mongo-backed implementation could replace this one without
touching the repositories.

Pattern: Repository + Data Mapper.
Every collection lives in one `documents` table keyed by (collection, id) with
the record body in a JSON column. Equality filters compile to JSON path
expressions, which SQLAlchemy renders for both SQLite (JSON1) and PostgreSQL.

Uniqueness:
  Collections may declare unique fields (users.email, buses.licensePlate).
  Each declared value is written to `unique_keys` in the same transaction as
  the document; UNIQUE(collection, field, value) turns a concurrent duplicate
  into an IntegrityError, re-raised here as DuplicateKeyError. Repositories
  still pre-check with find_one() for a fast, field-tagged error; this index
  is the backstop for the race between the check and the write.

Ids are time-prefixed hex strings, so ordering by id is creation order and a
last-seen id is a valid pagination cursor.

Security: all queries use bound parameters. Field names used in JSON paths
come from repository code, never from request input.

Errors: SQLAlchemyError propagates unchanged. Classifying it is the
repository's job (storage/repository.py).

Usage:
    store = DocumentStore("sqlite:///bustrack.db", unique_fields={"users": ("email",)})
    doc_id = store.insert("users", {"email": "a@b.com", ...})
    doc = store.get("users", doc_id)          # dict with id/createdAt/updatedAt merged in
    store.close()
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Column,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger("bustrack.storage")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_documents = Table(
    "documents",
    metadata,
    Column("collection", String(64), primary_key=True),
    Column("id", String(40), primary_key=True),
    Column("body", JSON, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_unique_keys = Table(
    "unique_keys",
    metadata,
    Column("collection", String(64), nullable=False),
    Column("field", String(64), nullable=False),
    Column("value", String(255), nullable=False),
    Column("document_id", String(40), nullable=False),
    UniqueConstraint("collection", "field", "value", name="uq_collection_field_value"),
)


class DuplicateKeyError(Exception):
    """A write would give two documents the same value for a unique field."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"Duplicate unique key in collection {collection!r}")
        self.collection = collection


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_last_ns = 0
_id_lock = threading.Lock()


def _new_id() -> str:
    # 16 hex chars of a strictly increasing nanosecond clock + 8 random hex
    # chars: ids sort in creation order even when the clock is coarse.
    global _last_ns
    with _id_lock:
        _last_ns = max(time.time_ns(), _last_ns + 1)
        stamp = _last_ns
    return f"{stamp:016x}{secrets.token_hex(4)}"


def _field_equals(field: str, value: Any):
    element = _documents.c.body[field]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


def _filter_clause(collection: str, filters: Optional[Mapping[str, Any]]):
    clauses = [_documents.c.collection == collection]
    for field, value in (filters or {}).items():
        clauses.append(_field_equals(field, value))
    return and_(*clauses)


def _row_to_document(row) -> dict[str, Any]:
    doc = dict(row.body)
    doc["id"] = row.id
    doc["createdAt"] = row.created_at
    doc["updatedAt"] = row.updated_at
    return doc


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """Collection-oriented document store over any SQLAlchemy database URL."""

    def __init__(self, db_url: str, unique_fields: Optional[Mapping[str, tuple[str, ...]]] = None) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._unique_fields: dict[str, tuple[str, ...]] = dict(unique_fields or {})
        metadata.create_all(self.engine)
        logger.debug("Document store ready (%s)", self.engine.url.render_as_string(hide_password=True))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Return the document or None if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_documents).where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
            ).fetchone()
        return _row_to_document(row) if row is not None else None

    def find_one(self, collection: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        """Return the first document (in id order) whose field equals value, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_documents)
                .where(_filter_clause(collection, {field: value}))
                .order_by(_documents.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_document(row) if row is not None else None

    def count(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_documents).where(_filter_clause(collection, filters))
            ).scalar()
        return result or 0

    def scan(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        after: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Return documents in id order, optionally skipping `offset` or starting after id `after`."""
        query = select(_documents).where(_filter_clause(collection, filters))
        if after is not None:
            query = query.where(_documents.c.id > after)
        query = query.order_by(_documents.c.id)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_document(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a new document and return its generated id.

        Raises DuplicateKeyError if a declared unique field collides.
        """
        doc_id = _new_id()
        now = _now_iso()
        body = _strip_meta(data)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _documents.insert().values(
                        collection=collection, id=doc_id, body=body, created_at=now, updated_at=now
                    )
                )
                self._write_unique_keys(conn, collection, doc_id, body)
        except IntegrityError as exc:
            logger.info("Unique key collision on insert into %s", collection)
            raise DuplicateKeyError(collection) from exc
        return doc_id

    def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> bool:
        """Replace the body of an existing document and refresh updated_at.

        Returns True if a document was updated, False if doc_id was not found.
        Raises DuplicateKeyError if the new body collides on a unique field.
        """
        body = _strip_meta(data)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _documents.update()
                    .where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
                    .values(body=body, updated_at=_now_iso())
                )
                if result.rowcount == 0:
                    return False
                self._delete_unique_keys(conn, collection, doc_id)
                self._write_unique_keys(conn, collection, doc_id, body)
        except IntegrityError as exc:
            raise DuplicateKeyError(collection) from exc
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if deleted, False if not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _documents.delete().where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
            )
            self._delete_unique_keys(conn, collection, doc_id)
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Unique key index
    # ------------------------------------------------------------------

    def _write_unique_keys(self, conn: Connection, collection: str, doc_id: str, body: Mapping[str, Any]) -> None:
        for field in self._unique_fields.get(collection, ()):
            value = body.get(field)
            if value is None:
                continue
            conn.execute(
                _unique_keys.insert().values(collection=collection, field=field, value=str(value), document_id=doc_id)
            )

    def _delete_unique_keys(self, conn: Connection, collection: str, doc_id: str) -> None:
        conn.execute(
            _unique_keys.delete().where(
                (_unique_keys.c.collection == collection) & (_unique_keys.c.document_id == doc_id)
            )
        )


def _strip_meta(data: Mapping[str, Any]) -> dict[str, Any]:
    # id and timestamps are store-assigned columns, never part of the body.
    return {k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
