"""Assignment routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from auth import current_session
from schemas import AssignmentIn, AssignmentUpdate, parse

bp = Blueprint("assignments", __name__)


@bp.route("/api/assignments")
@login_required
def list_assignments():
    session = current_session()
    subject_id = request.args.get("subjectId")
    if subject_id:
        items = session.assignments_for(subject_id).list()
    else:
        items = session.view(("assignments",), session.assignments.watch).items
    return jsonify({"assignments": [a.to_dict() for a in items]})


@bp.route("/api/assignments", methods=["POST"])
@login_required
def create_assignment():
    data = parse(AssignmentIn, request.get_json(silent=True))
    assignment = current_session().assignments.add(data)
    return jsonify({"assignment": assignment.to_dict()}), 201


@bp.route("/api/assignments/<assignment_id>", methods=["PATCH"])
@login_required
def update_assignment(assignment_id):
    data = parse(AssignmentUpdate, request.get_json(silent=True))
    current_session().assignments.update(assignment_id, data)
    return jsonify({"success": True})


@bp.route("/api/assignments/<assignment_id>", methods=["DELETE"])
@login_required
def delete_assignment(assignment_id):
    current_session().assignments.delete(assignment_id)
    return jsonify({"success": True})
