"""Public (signed-out) routes: material search and feedback."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from db_stores import FeedbackStore
from extensions import get_store, limiter
from schemas import FeedbackIn, parse
from search import search_public_materials

bp = Blueprint("public", __name__)

RECENT_FEEDBACK = 3


@bp.route("/api/public/materials")
def search_materials():
    results = search_public_materials(
        get_store(),
        request.args.get("q", ""),
        page_size=current_app.config.get("PUBLIC_SEARCH_PAGE_SIZE", 20),
        min_length=current_app.config.get("PUBLIC_SEARCH_MIN_LENGTH", 3),
    )
    return jsonify({"results": [m.to_dict() for m in results]})


@bp.route("/api/feedback")
def recent_feedback():
    entries = FeedbackStore(get_store()).recent(limit=RECENT_FEEDBACK)
    return jsonify({"feedback": [f.to_dict() for f in entries]})


@bp.route("/api/feedback", methods=["POST"])
@limiter.limit("10 per hour")
def submit_feedback():
    data = parse(FeedbackIn, request.get_json(silent=True))
    entry = FeedbackStore(get_store()).submit(data)
    return jsonify({"feedback": entry.to_dict()}), 201
