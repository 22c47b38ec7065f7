"""
Rate limiter and the per-app storage singletons (document store, object
store, session registry), kept on ``app.extensions``.
"""

from __future__ import annotations

import logging

from flask import Flask, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])


def init_storage(app: Flask) -> None:
    """Create the configured backends once per app."""
    from session_context import SessionRegistry

    backend = app.config.get("STORE_BACKEND", "sqlite")
    if backend == "firebase":
        from firebase_backend import FirebaseObjectStore, FirestoreDocumentStore

        creds = app.config.get("FIREBASE_CREDENTIALS") or None
        bucket = app.config.get("FIREBASE_BUCKET") or None
        store = FirestoreDocumentStore.from_config(creds, bucket)
        objects = FirebaseObjectStore.from_config(creds, bucket)
    elif backend == "sqlite":
        from document_store import SQLiteDocumentStore
        from object_storage import LocalObjectStore

        store = SQLiteDocumentStore()
        objects = LocalObjectStore(app.config.get("UPLOAD_DIR", "uploads"),
                                   app.config.get("UPLOAD_BASE_URL", "/uploads"))
    else:
        raise RuntimeError(f"Unknown STORE_BACKEND: {backend}")

    app.extensions["document_store"] = store
    app.extensions["object_store"] = objects
    app.extensions["sessions"] = SessionRegistry(
        store, idle_timeout=app.config.get("SESSION_IDLE_TIMEOUT") or None
    )
    logger.info("Storage backend: %s", backend)


def get_store():
    return current_app.extensions["document_store"]


def get_object_store():
    return current_app.extensions["object_store"]


def get_sessions():
    return current_app.extensions["sessions"]
