"""Study material routes (per subject)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from auth import current_session
from db_stores import ProfileStore
from schemas import MaterialIn, parse

bp = Blueprint("materials", __name__)


@bp.route("/api/subjects/<subject_id>/materials")
@login_required
def list_materials(subject_id):
    session = current_session()
    session.subjects.get(subject_id)  # 404 unless owned by the caller
    materials = session.materials(subject_id).list()
    return jsonify({"materials": [m.to_dict() for m in materials]})


@bp.route("/api/subjects/<subject_id>/materials", methods=["POST"])
@login_required
def create_material(subject_id):
    payload = dict(request.get_json(silent=True) or {})
    payload["subjectId"] = subject_id
    data = parse(MaterialIn, payload)

    session = current_session()
    profile = ProfileStore(session.store).get(session.user_id)
    uploader = profile.display_name if profile else ""
    material = session.materials(subject_id).add(data, uploader_name=uploader)
    return jsonify({"material": material.to_dict()}), 201


@bp.route("/api/materials/<material_id>", methods=["DELETE"])
@login_required
def delete_material(material_id):
    current_session().materials(None).delete(material_id)
    return jsonify({"success": True})
