"""Timetable routes: weekly lectures, exam timetables and the time-slot grid."""

from __future__ import annotations

from flask import Blueprint, abort, jsonify, request
from flask_login import login_required

from auth import current_session
from db_stores import TimetableStore
from models import EXAM_TYPES, TIMETABLE_TYPES, TimeSlot
from schemas import ExamEntryIn, LectureEntryIn, TimeSlotIn, TimetableEntryUpdate, parse

bp = Blueprint("timetable", __name__)


def _slots_json(settings) -> list[dict]:
    return [slot.to_dict() for slot in settings.time_slots]


def _grid_json(entries) -> dict[str, dict[str, str]]:
    """Lecture ids by day, then start time."""
    grid: dict[str, dict[str, str]] = {}
    for (day, start), entry in TimetableStore.lecture_grid(entries).items():
        grid.setdefault(day, {})[start] = entry.id
    return grid


# ── Time slots ────────────────────────────────────────────

@bp.route("/api/timetable/slots")
@login_required
def list_slots():
    settings = current_session().timetable.ensure_settings()
    return jsonify({"timeSlots": _slots_json(settings)})


@bp.route("/api/timetable/slots", methods=["POST"])
@login_required
def add_slot():
    data = parse(TimeSlotIn, request.get_json(silent=True))
    timetable = current_session().timetable
    timetable.add_time_slot(data)
    return jsonify({"timeSlots": _slots_json(timetable.ensure_settings())}), 201


@bp.route("/api/timetable/slots", methods=["DELETE"])
@login_required
def delete_slot():
    data = parse(TimeSlotIn, request.get_json(silent=True))
    timetable = current_session().timetable
    removed = timetable.delete_time_slot(TimeSlot(data.start, data.end))
    return jsonify({
        "success": True,
        "lecturesRemoved": removed,
        "timeSlots": _slots_json(timetable.ensure_settings()),
    })


# ── Entries ───────────────────────────────────────────────

@bp.route("/api/timetable/<entry_type>")
@login_required
def list_entries(entry_type):
    if entry_type not in TIMETABLE_TYPES:
        abort(404)
    timetable = current_session().timetable
    entries = timetable.list_entries(entry_type)
    body = {"entries": [e.to_dict() for e in entries]}
    if entry_type == "lecture":
        body["timeSlots"] = _slots_json(timetable.ensure_settings())
        body["grid"] = _grid_json(entries)
    return jsonify(body)


@bp.route("/api/timetable/<entry_type>", methods=["POST"])
@login_required
def create_entry(entry_type):
    if entry_type not in TIMETABLE_TYPES:
        abort(404)
    schema = ExamEntryIn if entry_type in EXAM_TYPES else LectureEntryIn
    data = parse(schema, request.get_json(silent=True))
    entry = current_session().timetable.add_entry(data, entry_type)
    return jsonify({"entry": entry.to_dict()}), 201


@bp.route("/api/timetable/entries/<entry_id>", methods=["PATCH"])
@login_required
def update_entry(entry_id):
    data = parse(TimetableEntryUpdate, request.get_json(silent=True))
    current_session().timetable.update_entry(entry_id, data)
    return jsonify({"success": True})


@bp.route("/api/timetable/entries/<entry_id>", methods=["DELETE"])
@login_required
def delete_entry(entry_id):
    current_session().timetable.delete_entry(entry_id)
    return jsonify({"success": True})
