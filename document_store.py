"""
Document store: the narrow interface every data module talks to.

Mirrors the subset of the Firestore client API StudySpark needs: point
reads, equality-filtered queries with ordering and limits, live snapshot
listeners, add/set/update/delete, atomic write batches, read-then-write
transactions, and ArrayUnion / ArrayRemove field transforms.

SQLiteDocumentStore is the default backend. Documents are JSON rows in the
`documents` table (see database.py). Change notification is in-process:
after every committed write, listeners on the touched documents' owners
re-run their query and receive a full new snapshot. FirestoreDocumentStore in
firebase_backend.py exposes the same surface over firebase-admin.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from database import get_db
from errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"

SnapshotCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


# ── Field transforms ──────────────────────────────────────────


class ArrayUnion:
    """Append each value not already present in the array field."""

    def __init__(self, values: list) -> None:
        self.values = list(values)

    def apply(self, current: list | None) -> list:
        result = list(current or [])
        for value in self.values:
            if value not in result:
                result.append(value)
        return result


class ArrayRemove:
    """Remove every element equal to one of the values."""

    def __init__(self, values: list) -> None:
        self.values = list(values)

    def apply(self, current: list | None) -> list:
        return [item for item in (current or []) if item not in self.values]


def _apply_fields(existing: dict, changes: dict) -> dict:
    result = copy.deepcopy(existing)
    for key, value in changes.items():
        if isinstance(value, (ArrayUnion, ArrayRemove)):
            result[key] = value.apply(result.get(key))
        else:
            result[key] = copy.deepcopy(value)
    return result


# ── JSON encoding (datetimes survive the round trip) ───────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return {"$date": obj.astimezone(timezone.utc).isoformat()}
    raise TypeError(f"Cannot store value of type {type(obj).__name__}")


def _json_hook(obj: dict) -> Any:
    if len(obj) == 1 and "$date" in obj:
        return datetime.fromisoformat(obj["$date"])
    return obj


def encode_document(data: dict) -> str:
    return json.dumps(data, default=_json_default, sort_keys=True)


def decode_document(raw: str) -> dict:
    return json.loads(raw, object_hook=_json_hook)


# ── Snapshots ─────────────────────────────────────────────────


class DocumentSnapshot:
    """Point-in-time view of one document (which may not exist)."""

    def __init__(self, reference: DocumentReference, data: dict | None) -> None:
        self.reference = reference
        self._data = data

    @property
    def id(self) -> str:
        return self.reference.id

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict | None:
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field: str) -> Any:
        return (self._data or {}).get(field)

    def __repr__(self) -> str:
        return f"DocumentSnapshot({self.reference.path!r}, exists={self.exists})"


class QuerySnapshot:
    def __init__(self, docs: list) -> None:
        self.docs = list(docs)

    def __iter__(self) -> Iterator:
        return iter(self.docs)

    def __len__(self) -> int:
        return len(self.docs)

    @property
    def empty(self) -> bool:
        return not self.docs


class Watch:
    """Handle for a live listener. unsubscribe() is idempotent."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._release()


# ── References and queries ────────────────────────────────────


class DocumentReference:
    def __init__(self, store: SQLiteDocumentStore, collection: str, doc_id: str) -> None:
        self._store = store
        self.collection = collection
        self.id = doc_id

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def get(self) -> DocumentSnapshot:
        return self._store._get(self)

    def set(self, data: dict, merge: bool = False) -> None:
        batch = self._store.batch()
        batch.set(self, data, merge=merge)
        batch.commit()

    def update(self, data: dict) -> None:
        batch = self._store.batch()
        batch.update(self, data)
        batch.commit()

    def delete(self) -> None:
        batch = self._store.batch()
        batch.delete(self)
        batch.commit()

    def on_snapshot(self, on_next: SnapshotCallback, on_error: ErrorCallback | None = None) -> Watch:
        return self._store._watch(self.collection, self.get, on_next, on_error, doc_id=self.id)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DocumentReference) and other.path == self.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"DocumentReference({self.path!r})"


class Query:
    """Immutable query builder: equality filters, ordering, limit."""

    def __init__(
        self,
        store: SQLiteDocumentStore,
        collection: str,
        filters: tuple = (),
        orders: tuple = (),
        limit_to: int | None = None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._filters = filters
        self._orders = orders
        self._limit = limit_to

    @property
    def collection_name(self) -> str:
        return self._collection

    def where(self, field: str, op: str, value: Any) -> Query:
        if op != "==":
            raise ValueError(f"Unsupported filter operator: {op}")
        return Query(self._store, self._collection, self._filters + ((field, value),),
                     self._orders, self._limit)

    def order_by(self, field: str, direction: str = ASCENDING) -> Query:
        return Query(self._store, self._collection, self._filters,
                     self._orders + ((field, direction),), self._limit)

    def limit(self, count: int) -> Query:
        return Query(self._store, self._collection, self._filters, self._orders, count)

    def get(self) -> QuerySnapshot:
        return self._store._run_query(self)

    def stream(self) -> Iterator[DocumentSnapshot]:
        return iter(self.get().docs)

    def on_snapshot(self, on_next: SnapshotCallback, on_error: ErrorCallback | None = None) -> Watch:
        return self._store._watch(self._collection, self.get, on_next, on_error,
                                  owner=self._owner_filter())

    def _owner_filter(self) -> str | None:
        for field, value in self._filters:
            if field == "userId":
                return value
        return None

    def _matches(self, data: dict) -> bool:
        return all(data.get(field) == value for field, value in self._filters)


class CollectionReference(Query):
    def __init__(self, store: SQLiteDocumentStore, name: str) -> None:
        super().__init__(store, name)

    def document(self, doc_id: str | None = None) -> DocumentReference:
        return DocumentReference(self._store, self._collection, doc_id or uuid.uuid4().hex[:20])

    def add(self, data: dict) -> DocumentReference:
        ref = self.document()
        ref.set(data)
        return ref


# ── Writes ────────────────────────────────────────────────────


class WriteBatch:
    """Collects writes and applies them all-or-nothing on commit()."""

    def __init__(self, store: SQLiteDocumentStore) -> None:
        self._store = store
        self._ops: list[tuple[str, DocumentReference, dict | None, bool]] = []

    def set(self, ref: DocumentReference, data: dict, merge: bool = False) -> WriteBatch:
        self._ops.append(("set", ref, dict(data), merge))
        return self

    def update(self, ref: DocumentReference, data: dict) -> WriteBatch:
        self._ops.append(("update", ref, dict(data), False))
        return self

    def delete(self, ref: DocumentReference) -> WriteBatch:
        self._ops.append(("delete", ref, None, False))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        ops, self._ops = self._ops, []
        self._store._commit(ops)


class Transaction(WriteBatch):
    """A write batch whose reads happen inside the same exclusive lock."""

    def get(self, ref: DocumentReference) -> DocumentSnapshot:
        return self._store._get(ref)


# ── Change feed ───────────────────────────────────────────────


class ChangeFeed:
    """In-process pub/sub from committed writes to refresh callbacks.

    Listeners are keyed by (collection, owner). A query filtered on userId
    listens under that owner and hears only writes to that user's
    documents; an unfiltered query listens under owner None and hears every
    write to the collection. A document listener also passes its id and
    hears only writes to that document.
    """

    def __init__(self) -> None:
        # (collection, owner) -> token -> (doc id or None, callback)
        self._listeners: dict[tuple, dict[int, tuple]] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    def subscribe(
        self,
        collection: str,
        callback: Callable[[], None],
        owner: str | None = None,
        doc_id: str | None = None,
    ) -> Callable[[], None]:
        key = (collection, owner)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners.setdefault(key, {})[token] = (doc_id, callback)

        def release() -> None:
            with self._lock:
                listeners = self._listeners.get(key)
                if listeners is not None:
                    listeners.pop(token, None)
                    if not listeners:
                        del self._listeners[key]

        return release

    def publish(self, changes: set[tuple[str, str | None, str]]) -> None:
        """Run each callback interested in any (collection, owner, doc id) once."""
        callbacks: dict[int, Callable[[], None]] = {}
        with self._lock:
            for collection, owner, doc_id in changes:
                keys = {(collection, owner), (collection, None)}
                for key in keys:
                    for token, (wanted, cb) in self._listeners.get(key, {}).items():
                        if wanted is None or wanted == doc_id:
                            callbacks.setdefault(token, cb)
        for token in sorted(callbacks):
            callbacks[token]()

    def listener_count(self, collection: str | None = None, owner: str | None = None) -> int:
        with self._lock:
            return sum(
                len(listeners) for (name, who), listeners in self._listeners.items()
                if (collection is None or name == collection) and (owner is None or who == owner)
            )


# ── SQLite backend ────────────────────────────────────────────


class SQLiteDocumentStore:
    """Document store over the app's SQLite database. Needs an app context."""

    backend = "sqlite"

    def __init__(self) -> None:
        self.feed = ChangeFeed()

    def collection(self, name: str) -> CollectionReference:
        return CollectionReference(self, name)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def run_transaction(self, fn: Callable[[Transaction], Any]) -> Any:
        """Run fn(txn) under an exclusive lock; its writes commit atomically."""
        db = get_db()
        if db.in_transaction:
            db.commit()
        txn = Transaction(self)
        try:
            db.execute("BEGIN IMMEDIATE")
            result = fn(txn)
            touched = self._apply_all(db, txn._ops)
            db.commit()
        except sqlite3.Error as e:
            db.rollback()
            raise StoreError(f"Transaction failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        self.feed.publish(touched)
        return result

    def close(self) -> None:
        pass

    # -- internals --

    def _load(self, db, ref: DocumentReference) -> dict | None:
        row = db.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (ref.collection, ref.id),
        ).fetchone()
        return decode_document(row["data"]) if row else None

    def _get(self, ref: DocumentReference) -> DocumentSnapshot:
        try:
            data = self._load(get_db(), ref)
        except sqlite3.Error as e:
            raise StoreError(f"Could not read {ref.path}: {e}") from e
        return DocumentSnapshot(ref, data)

    def _run_query(self, query: Query) -> QuerySnapshot:
        sql = "SELECT id, data FROM documents WHERE collection = ?"
        params: list[Any] = [query._collection]
        owner = query._owner_filter()
        if owner is not None:
            sql += " AND user_id = ?"
            params.append(owner)
        sql += " ORDER BY rowid"
        try:
            rows = get_db().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Query on {query._collection} failed: {e}") from e

        docs = []
        for row in rows:
            data = decode_document(row["data"])
            if query._matches(data):
                ref = DocumentReference(self, query._collection, row["id"])
                docs.append(DocumentSnapshot(ref, data))

        for field, direction in reversed(query._orders):
            docs.sort(key=lambda d: _sort_key(d.get(field)), reverse=direction == DESCENDING)
        if query._limit is not None:
            docs = docs[:query._limit]
        return QuerySnapshot(docs)

    def _write(self, db, ref: DocumentReference, data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        db.execute(
            "INSERT INTO documents (collection, id, user_id, data, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(collection, id) DO UPDATE SET "
            "user_id=excluded.user_id, data=excluded.data, updated_at=excluded.updated_at",
            (ref.collection, ref.id, data.get("userId"), encode_document(data), now, now),
        )

    def _apply_op(self, db, op: tuple) -> set[tuple]:
        """Apply one write; return the (collection, owner, id) keys it touched."""
        kind, ref, data, merge = op
        existing = self._load(db, ref)
        owners = {existing.get("userId")} if existing is not None else set()
        if kind == "delete":
            db.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (ref.collection, ref.id),
            )
        elif kind == "set":
            written = _apply_fields((existing or {}) if merge else {}, data)
            self._write(db, ref, written)
            owners.add(written.get("userId"))
        elif kind == "update":
            if existing is None:
                raise NotFoundError(f"No document to update: {ref.path}")
            written = _apply_fields(existing, data)
            self._write(db, ref, written)
            owners.add(written.get("userId"))
        else:
            raise ValueError(f"Unknown write: {kind}")
        return {(ref.collection, owner, ref.id) for owner in owners or {None}}

    def _apply_all(self, db, ops: list[tuple]) -> set[tuple]:
        touched: set[tuple] = set()
        for op in ops:
            touched |= self._apply_op(db, op)
        return touched

    def _commit(self, ops: list[tuple]) -> None:
        if not ops:
            return
        db = get_db()
        if db.in_transaction:
            db.commit()
        try:
            db.execute("BEGIN IMMEDIATE")
            touched = self._apply_all(db, ops)
            db.commit()
        except sqlite3.Error as e:
            db.rollback()
            raise StoreError(f"Write failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        self.feed.publish(touched)

    def _watch(
        self,
        collection: str,
        fetch: Callable[[], Any],
        on_next: SnapshotCallback,
        on_error: ErrorCallback | None,
        owner: str | None = None,
        doc_id: str | None = None,
    ) -> Watch:
        def deliver() -> None:
            try:
                snapshot = fetch()
            except Exception as exc:
                if on_error is None:
                    logger.exception("Snapshot listener on %s failed", collection)
                else:
                    on_error(exc)
                return
            try:
                on_next(snapshot)
            except Exception:
                logger.exception("Snapshot callback on %s raised", collection)

        release = self.feed.subscribe(collection, deliver, owner=owner, doc_id=doc_id)
        watch = Watch(release)
        deliver()
        return watch


def _sort_key(value: Any) -> tuple:
    return (value is None, value if value is not None else 0)
