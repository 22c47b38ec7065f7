"""Tests for schemas.py: partial updates and time formats."""

import pytest

from errors import ValidationError
from schemas import (
    AssignmentUpdate,
    ProfileUpdate,
    SubjectUpdate,
    TimeSlotIn,
    TimetableEntryUpdate,
    changes,
    parse,
)


def _rejected_fields(schema, payload):
    with pytest.raises(ValidationError) as exc_info:
        parse(schema, payload)
    return {e["field"] for e in exc_info.value.details["errors"]}


class TestPartialUpdates:
    def test_omitted_fields_are_not_sent(self):
        assert changes(parse(AssignmentUpdate, {"status": "Completed"})) == {"status": "Completed"}

    def test_assignment_fields_cannot_be_cleared(self):
        assert _rejected_fields(AssignmentUpdate, {"dueDate": None, "status": None}) == {"dueDate", "status"}
        assert _rejected_fields(AssignmentUpdate, {"title": None}) == {"title"}

    def test_subject_fields_cannot_be_cleared(self):
        assert _rejected_fields(SubjectUpdate, {"title": None, "instructor": None}) == {"title", "instructor"}

    def test_timetable_fields_cannot_be_cleared(self):
        payload = {"day": None, "date": None, "startTime": None, "endTime": None, "subject": None}
        assert _rejected_fields(TimetableEntryUpdate, payload) == set(payload)

    def test_profile_names_cannot_be_cleared(self):
        assert _rejected_fields(ProfileUpdate, {"firstName": None}) == {"firstName"}

    def test_nullable_fields_can_be_cleared(self):
        assert changes(parse(AssignmentUpdate, {"grade": None})) == {"grade": None}
        assert changes(parse(TimetableEntryUpdate, {"details": None})) == {"details": None}
        assert changes(parse(ProfileUpdate, {"className": None})) == {"className": None}


class TestTimeFormat:
    def test_two_digit_hours(self):
        slot = parse(TimeSlotIn, {"start": "09:00", "end": "23:59"})
        assert slot.start == "09:00"

    def test_one_digit_hour_rejected(self):
        assert _rejected_fields(TimeSlotIn, {"start": "9:00", "end": "10:00"}) == {"start"}

    def test_out_of_range_rejected(self):
        for value in ("24:00", "12:60", "0900"):
            assert _rejected_fields(TimeSlotIn, {"start": value, "end": "10:00"}) == {"start"}
