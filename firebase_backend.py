"""
Firebase backends: Cloud Firestore documents and Cloud Storage objects.

FirestoreDocumentStore exposes the same surface as SQLiteDocumentStore
(collection / document / where / order_by / limit / on_snapshot / batch /
run_transaction) by wrapping the firebase-admin client. Snapshot listeners
run on Firestore's own threads; the live views guard their state with
locks, so the callbacks are passed straight through.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as admin_firestore
from firebase_admin import storage
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from document_store import (
    ASCENDING,
    DESCENDING,
    ArrayRemove,
    ArrayUnion,
    QuerySnapshot,
    Watch,
)
from errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)


def init_firebase_app(credentials_path: str | None = None, bucket: str | None = None):
    """Return the default firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        cred = (credentials.Certificate(credentials_path) if credentials_path
                else credentials.ApplicationDefault())
        options = {"storageBucket": bucket} if bucket else None
        logger.info("Initializing firebase app (bucket=%s)", bucket or "-")
        return firebase_admin.initialize_app(cred, options)


def _translate(data: dict) -> dict:
    """Swap our field transforms for Firestore's sentinels."""
    result = {}
    for key, value in data.items():
        if isinstance(value, ArrayUnion):
            result[key] = firestore.ArrayUnion(value.values)
        elif isinstance(value, ArrayRemove):
            result[key] = firestore.ArrayRemove(value.values)
        else:
            result[key] = value
    return result


class FirestoreSnapshot:
    def __init__(self, native, reference: FirestoreDocument) -> None:
        self._native = native
        self.reference = reference

    @property
    def id(self) -> str:
        return self._native.id

    @property
    def exists(self) -> bool:
        return self._native.exists

    def to_dict(self) -> dict | None:
        return self._native.to_dict()

    def get(self, field: str) -> Any:
        return (self._native.to_dict() or {}).get(field)


def _wrap_docs(docs) -> QuerySnapshot:
    return QuerySnapshot([FirestoreSnapshot(d, FirestoreDocument(d.reference)) for d in docs])


class FirestoreDocument:
    def __init__(self, native) -> None:
        self._native = native

    @property
    def id(self) -> str:
        return self._native.id

    @property
    def path(self) -> str:
        return self._native.path

    def get(self) -> FirestoreSnapshot:
        try:
            return FirestoreSnapshot(self._native.get(), self)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e

    def set(self, data: dict, merge: bool = False) -> None:
        with _store_errors(f"set {self.path}"):
            self._native.set(_translate(data), merge=merge)

    def update(self, data: dict) -> None:
        with _store_errors(f"update {self.path}"):
            self._native.update(_translate(data))

    def delete(self) -> None:
        with _store_errors(f"delete {self.path}"):
            self._native.delete()

    def on_snapshot(self, on_next: Callable, on_error: Callable | None = None) -> Watch:
        def callback(docs, changes, read_time):
            try:
                snapshot = FirestoreSnapshot(docs[0], self) if docs else FirestoreSnapshot(
                    self._native.get(), self)
            except Exception as exc:
                _report(on_error, exc, self.path)
                return
            on_next(snapshot)

        watch = self._native.on_snapshot(callback)
        return Watch(watch.unsubscribe)


class FirestoreQuery:
    def __init__(self, native, collection: str) -> None:
        self._native = native
        self._collection = collection

    @property
    def collection_name(self) -> str:
        return self._collection

    def where(self, field: str, op: str, value: Any) -> FirestoreQuery:
        if op != "==":
            raise ValueError(f"Unsupported filter operator: {op}")
        return FirestoreQuery(self._native.where(filter=FieldFilter(field, op, value)),
                              self._collection)

    def order_by(self, field: str, direction: str = ASCENDING) -> FirestoreQuery:
        native_direction = (firestore.Query.DESCENDING if direction == DESCENDING
                            else firestore.Query.ASCENDING)
        return FirestoreQuery(self._native.order_by(field, direction=native_direction),
                              self._collection)

    def limit(self, count: int) -> FirestoreQuery:
        return FirestoreQuery(self._native.limit(count), self._collection)

    def get(self) -> QuerySnapshot:
        try:
            return _wrap_docs(self._native.stream())
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Query on {self._collection} failed: {e}") from e

    def stream(self):
        return iter(self.get().docs)

    def on_snapshot(self, on_next: Callable, on_error: Callable | None = None) -> Watch:
        def callback(docs, changes, read_time):
            try:
                snapshot = _wrap_docs(docs)
            except Exception as exc:
                _report(on_error, exc, self._collection)
                return
            on_next(snapshot)

        watch = self._native.on_snapshot(callback)
        return Watch(watch.unsubscribe)


class FirestoreCollection(FirestoreQuery):
    def document(self, doc_id: str | None = None) -> FirestoreDocument:
        native = self._native.document(doc_id) if doc_id else self._native.document()
        return FirestoreDocument(native)

    def add(self, data: dict) -> FirestoreDocument:
        with _store_errors(f"add to {self._collection}"):
            _, ref = self._native.add(_translate(data))
        return FirestoreDocument(ref)


class FirestoreBatch:
    def __init__(self, native) -> None:
        self._native = native
        self._count = 0

    def set(self, ref: FirestoreDocument, data: dict, merge: bool = False) -> FirestoreBatch:
        self._native.set(ref._native, _translate(data), merge=merge)
        self._count += 1
        return self

    def update(self, ref: FirestoreDocument, data: dict) -> FirestoreBatch:
        self._native.update(ref._native, _translate(data))
        self._count += 1
        return self

    def delete(self, ref: FirestoreDocument) -> FirestoreBatch:
        self._native.delete(ref._native)
        self._count += 1
        return self

    def __len__(self) -> int:
        return self._count

    def commit(self) -> None:
        if not self._count:
            return
        with _store_errors("batch commit"):
            self._native.commit()


class FirestoreTransaction(FirestoreBatch):
    def get(self, ref: FirestoreDocument) -> FirestoreSnapshot:
        return FirestoreSnapshot(ref._native.get(transaction=self._native), ref)


class FirestoreDocumentStore:
    backend = "firebase"

    def __init__(self, client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, credentials_path: str | None = None, bucket: str | None = None):
        app = init_firebase_app(credentials_path, bucket)
        return cls(admin_firestore.client(app))

    def collection(self, name: str) -> FirestoreCollection:
        return FirestoreCollection(self._client.collection(name), name)

    def batch(self) -> FirestoreBatch:
        return FirestoreBatch(self._client.batch())

    def run_transaction(self, fn: Callable[[FirestoreTransaction], Any]) -> Any:
        @firestore.transactional
        def run(native_txn):
            return fn(FirestoreTransaction(native_txn))

        with _store_errors("transaction"):
            return run(self._client.transaction())

    def close(self) -> None:
        self._client.close()


class FirebaseObjectStore:
    backend = "firebase"

    def __init__(self, bucket) -> None:
        self._bucket = bucket

    @classmethod
    def from_config(cls, credentials_path: str | None = None, bucket: str | None = None):
        app = init_firebase_app(credentials_path, bucket)
        return cls(storage.bucket(app=app))

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        blob = self._bucket.blob(path)
        with _store_errors(f"upload {path}"):
            blob.upload_from_string(data, content_type=content_type)
            blob.make_public()
        logger.info("Uploaded %s to bucket", path)
        return blob.public_url


def _report(on_error: Callable | None, exc: Exception, what: str) -> None:
    if on_error is None:
        logger.exception("Snapshot listener on %s failed", what)
    else:
        on_error(exc)


@contextmanager
def _store_errors(action: str):
    """Map google-api-core failures onto StoreError / NotFoundError."""
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFoundError(f"{action}: {e}") from e
    except google_exceptions.GoogleAPICallError as e:
        raise StoreError(f"{action} failed: {e}") from e
