"""Core routes: health checks, dashboard, notifications, local uploads."""

from __future__ import annotations

import logging
import time

from flask import Blueprint, abort, jsonify, send_file
from flask_login import login_required

from auth import current_session
from database import get_db
from errors import StoreError
from extensions import get_object_store

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)

_start_time = time.time()


# ── Health checks ─────────────────────────────────────────

@bp.route("/health")
def health():
    uptime = int(time.time() - _start_time)
    return jsonify({"status": "ok", "uptime_seconds": uptime})


@bp.route("/ready")
def ready():
    try:
        get_db().execute("SELECT 1").fetchone()
    except Exception as exc:
        logger.error("Readiness check failed: %s", exc, exc_info=True)
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


# ── Dashboard ─────────────────────────────────────────────

@bp.route("/api/dashboard")
@login_required
def dashboard():
    session = current_session()

    # First visit of the day logs a session and advances the streak
    try:
        session.user_stats.record_daily_visit()
    except StoreError as exc:
        logger.error("Failed to update study stats for %s: %s", session.user_id, exc)
        session.toasts.error("Could not update your study streak.")

    view = session.dashboard
    if view.value is None:
        return jsonify({"loading": True})
    return jsonify({
        "loading": False,
        "stats": view.value["stats"].to_dict(),
        "upcomingAssignments": [a.to_dict() for a in view.value["upcoming"]],
    })


@bp.route("/api/notifications")
@login_required
def notifications():
    toasts = current_session().toasts.drain()
    return jsonify({"notifications": [t.to_dict() for t in toasts]})


# ── Local object storage ──────────────────────────────────

@bp.route("/uploads/<path:path>")
def uploaded_file(path):
    objects = get_object_store()
    if getattr(objects, "backend", "") != "local":
        abort(404)
    try:
        return send_file(objects.open(path))
    except FileNotFoundError:
        abort(404)
