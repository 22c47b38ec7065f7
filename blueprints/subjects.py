"""Subject routes. Deleting a subject removes its assignments, materials and plan events."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from auth import current_session
from schemas import SubjectIn, SubjectUpdate, parse

bp = Blueprint("subjects", __name__)


@bp.route("/api/subjects")
@login_required
def list_subjects():
    session = current_session()
    view = session.view(("subjects",), session.subjects.watch)
    return jsonify({
        "loading": view.loading,
        "subjects": [s.to_dict() for s in view.items],
    })


@bp.route("/api/subjects", methods=["POST"])
@login_required
def create_subject():
    data = parse(SubjectIn, request.get_json(silent=True))
    subject = current_session().subjects.add(data)
    return jsonify({"subject": subject.to_dict()}), 201


@bp.route("/api/subjects/<subject_id>")
@login_required
def get_subject(subject_id):
    subject = current_session().subjects.get(subject_id)
    return jsonify({"subject": subject.to_dict()})


@bp.route("/api/subjects/<subject_id>", methods=["PATCH"])
@login_required
def update_subject(subject_id):
    data = parse(SubjectUpdate, request.get_json(silent=True))
    session = current_session()
    session.subjects.update(subject_id, data)
    return jsonify({"subject": session.subjects.get(subject_id).to_dict()})


@bp.route("/api/subjects/<subject_id>", methods=["DELETE"])
@login_required
def delete_subject(subject_id):
    removed = current_session().subjects.delete(subject_id)
    return jsonify({"success": True, "dependentsRemoved": removed})
