"""Tests for db_stores.py: ownership, references, cascades, time slots, feedback."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from db_stores import (
    AssignmentStore,
    FeedbackStore,
    ProfileStore,
    StudyMaterialStore,
    SubjectStore,
    TimetableStore,
)
from document_store import SQLiteDocumentStore
from errors import MissingReferenceError, NotAuthenticatedError, NotFoundError, StoreError
from models import DEFAULT_TIME_SLOTS, TimeSlot
from schemas import (
    AssignmentIn,
    AssignmentUpdate,
    FeedbackIn,
    LectureEntryIn,
    MaterialIn,
    SubjectIn,
    SubjectUpdate,
    TimeSlotIn,
)

UID = "user-1"
OTHER = "user-2"
DUE = datetime(2026, 11, 2, 17, 0, tzinfo=timezone.utc)


def _subject(store, uid=UID, title="Physics"):
    return SubjectStore(store, uid).add(SubjectIn(title=title, instructor="Dr. Curie"))


def _assignment(store, subject_id, uid=UID, title="Lab report", **kw):
    return AssignmentStore(store, uid).add(
        AssignmentIn(subjectId=subject_id, title=title, dueDate=kw.pop("due", DUE), **kw)
    )


def _material(store, subject_id, uid=UID, title="Kinematics notes", public=False):
    return StudyMaterialStore(store, uid, subject_id).add(
        MaterialIn(subjectId=subject_id, title=title, type="Notes", contentType="text",
                   content="v = u + at", isPublic=public),
        uploader_name="Test Student",
    )


class TestSubjectStore:
    def test_add_and_list(self, store):
        subject = _subject(store)
        listed = SubjectStore(store, UID).list()
        assert [s.id for s in listed] == [subject.id]
        assert listed[0].user_id == UID

    def test_list_only_own_subjects(self, store):
        _subject(store, OTHER, "History")
        assert SubjectStore(store, UID).list() == []

    def test_write_without_user_raises(self, store):
        with pytest.raises(NotAuthenticatedError):
            SubjectStore(store, None).add(SubjectIn(title="Physics", instructor="Dr. Curie"))

    def test_get_other_users_subject_is_not_found(self, store):
        subject = _subject(store, OTHER)
        with pytest.raises(NotFoundError):
            SubjectStore(store, UID).get(subject.id)

    def test_update_changes_only_sent_fields(self, store):
        subject = _subject(store)
        SubjectStore(store, UID).update(subject.id, SubjectUpdate(instructor="Dr. Bohr"))
        updated = SubjectStore(store, UID).get(subject.id)
        assert updated.title == "Physics"
        assert updated.instructor == "Dr. Bohr"

    def test_watch_without_user_is_idle(self, store):
        view = SubjectStore(store, None).watch()
        assert not view.loading
        assert view.items == []
        assert store.feed.listener_count() == 0


class TestSubjectCascade:
    def test_delete_removes_every_dependent(self, store):
        subject = _subject(store)
        keep = _subject(store, title="Chemistry")
        _assignment(store, subject.id)
        _assignment(store, subject.id, title="Problem set")
        _material(store, subject.id)
        store.collection("studyPlanEvents").add({"userId": UID, "subjectId": subject.id})
        kept_assignment = _assignment(store, keep.id)

        removed = SubjectStore(store, UID).delete(subject.id)

        assert removed == 4
        for collection in ("assignments", "studyMaterials", "studyPlanEvents"):
            left = store.collection(collection).where("subjectId", "==", subject.id).get()
            assert left.empty, collection
        assert not store.collection("subjects").document(subject.id).get().exists
        assert [a.id for a in AssignmentStore(store, UID).list()] == [kept_assignment.id]

    def test_failed_cascade_leaves_everything(self, store):
        subject = _subject(store)
        _assignment(store, subject.id)
        _material(store, subject.id)

        calls = {"n": 0}
        original = SQLiteDocumentStore._apply_op

        def flaky(self, db, op):
            calls["n"] += 1
            if calls["n"] == 3:
                raise StoreError("disk full")
            return original(self, db, op)

        with patch.object(SQLiteDocumentStore, "_apply_op", flaky):
            with pytest.raises(StoreError):
                SubjectStore(store, UID).delete(subject.id)

        assert store.collection("subjects").document(subject.id).get().exists
        assert len(AssignmentStore(store, UID, subject.id).list()) == 1
        assert len(StudyMaterialStore(store, UID, subject.id).list()) == 1

    def test_cannot_delete_other_users_subject(self, store):
        subject = _subject(store, OTHER)
        with pytest.raises(NotFoundError):
            SubjectStore(store, UID).delete(subject.id)
        assert store.collection("subjects").document(subject.id).get().exists


class TestAssignmentStore:
    def test_add_copies_subject_title(self, store):
        subject = _subject(store)
        assignment = _assignment(store, subject.id)
        assert assignment.subject_title == "Physics"
        assert assignment.status == "Pending"
        assert assignment.due_date == DUE

    def test_missing_subject_rejected(self, store):
        with pytest.raises(MissingReferenceError):
            _assignment(store, "does-not-exist")
        assert store.collection("assignments").get().empty

    def test_other_users_subject_rejected(self, store):
        subject = _subject(store, OTHER)
        with pytest.raises(MissingReferenceError):
            _assignment(store, subject.id)

    def test_list_sorted_by_due_date(self, store):
        subject = _subject(store)
        _assignment(store, subject.id, title="later", due=DUE + timedelta(days=3))
        _assignment(store, subject.id, title="sooner", due=DUE)
        assert [a.title for a in AssignmentStore(store, UID).list()] == ["sooner", "later"]

    def test_subject_filter(self, store):
        physics = _subject(store)
        chemistry = _subject(store, title="Chemistry")
        _assignment(store, physics.id, title="p")
        _assignment(store, chemistry.id, title="c")
        assert [a.title for a in AssignmentStore(store, UID, chemistry.id).list()] == ["c"]

    def test_update_status_and_grade(self, store):
        subject = _subject(store)
        assignment = _assignment(store, subject.id)
        AssignmentStore(store, UID).update(
            assignment.id, AssignmentUpdate(status="Completed", grade=91)
        )
        updated = AssignmentStore(store, UID).list()[0]
        assert updated.is_graded
        assert updated.grade == 91

    def test_delete_other_users_assignment_is_not_found(self, store):
        subject = _subject(store, OTHER)
        assignment = _assignment(store, subject.id, uid=OTHER)
        with pytest.raises(NotFoundError):
            AssignmentStore(store, UID).delete(assignment.id)


class TestStudyMaterialStore:
    def test_add_records_uploader(self, store):
        subject = _subject(store)
        material = _material(store, subject.id)
        assert material.uploader_name == "Test Student"
        assert material.is_public is False

    def test_list_sorted_by_title(self, store):
        subject = _subject(store)
        _material(store, subject.id, title="Optics")
        _material(store, subject.id, title="Acoustics")
        titles = [m.title for m in StudyMaterialStore(store, UID, subject.id).list()]
        assert titles == ["Acoustics", "Optics"]

    def test_watch_without_subject_is_idle(self, store):
        view = StudyMaterialStore(store, UID, None).watch()
        assert not view.loading
        assert view.items == []

    def test_missing_subject_rejected(self, store):
        with pytest.raises(MissingReferenceError):
            _material(store, "ghost")


class TestTimetableStore:
    def _lecture(self, store, start, end, day="Monday"):
        return TimetableStore(store, UID).add_entry(
            LectureEntryIn(day=day, startTime=start, endTime=end, subject="Physics",
                           details="Room 101"),
            "lecture",
        )

    def test_ensure_settings_creates_defaults_once(self, store):
        timetable = TimetableStore(store, UID)
        first = timetable.ensure_settings()
        second = timetable.ensure_settings()
        assert first.id == second.id == UID
        assert first.time_slots == list(DEFAULT_TIME_SLOTS)
        assert len(store.collection("userTimetableSettings").get()) == 1

    def test_watch_settings_auto_creates(self, store):
        view = TimetableStore(store, UID).watch_settings()
        assert not view.loading
        assert view.settings is not None
        assert view.time_slots[0] == TimeSlot("08:00", "09:00")
        view.close()

    def test_add_time_slot_appears_sorted(self, store):
        timetable = TimetableStore(store, UID)
        timetable.add_time_slot(TimeSlotIn(start="07:00", end="08:00"))
        slots = timetable.ensure_settings().time_slots
        assert slots[0] == TimeSlot("07:00", "08:00")
        assert len(slots) == len(DEFAULT_TIME_SLOTS) + 1

    def test_add_duplicate_slot_is_noop(self, store):
        timetable = TimetableStore(store, UID)
        timetable.add_time_slot(TimeSlotIn(start="08:00", end="09:00"))
        assert len(timetable.ensure_settings().time_slots) == len(DEFAULT_TIME_SLOTS)

    def test_delete_slot_removes_matching_lectures_only(self, store):
        timetable = TimetableStore(store, UID)
        self._lecture(store, "09:00", "10:00", "Monday")
        self._lecture(store, "09:00", "10:00", "Friday")
        survivor = self._lecture(store, "09:00", "10:30")
        other = self._lecture(store, "10:00", "11:00")

        removed = timetable.delete_time_slot(TimeSlot("09:00", "10:00"))

        assert removed == 2
        remaining = {e.id for e in timetable.list_entries("lecture")}
        assert remaining == {survivor.id, other.id}
        assert TimeSlot("09:00", "10:00") not in timetable.ensure_settings().time_slots

    def test_exams_ordered_by_date(self, store):
        from schemas import ExamEntryIn

        timetable = TimetableStore(store, UID)
        for day in (20, 5):
            timetable.add_entry(
                ExamEntryIn(date=datetime(2026, 12, day, tzinfo=timezone.utc),
                            startTime="10:00", endTime="12:00", subject="Physics"),
                "written_exam",
            )
        dates = [e.date.day for e in timetable.list_entries("written_exam")]
        assert dates == [5, 20]
        assert timetable.list_entries("practical_exam") == []

    def test_lecture_grid(self, store):
        lecture = self._lecture(store, "09:00", "10:00", "Tuesday")
        grid = TimetableStore.lecture_grid(TimetableStore(store, UID).list_entries("lecture"))
        assert grid[("Tuesday", "09:00")].id == lecture.id

    def test_unknown_type_rejected(self, store):
        with pytest.raises(ValueError):
            TimetableStore(store, UID).list_entries("seminar")


class TestProfileStore:
    def test_seeded_profile(self, store):
        profile = ProfileStore(store).get(UID)
        assert profile.display_name == "Test Student"
        assert profile.photo_url is None

    def test_update_returns_fresh_profile(self, store):
        profile = ProfileStore(store).update(UID, {"className": "MSc CS"})
        assert profile.class_name == "MSc CS"

    def test_update_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            ProfileStore(store).update("nobody", {})


class TestFeedbackStore:
    def test_recent_newest_first_and_limited(self, store):
        feedback = FeedbackStore(store)
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        with patch("db_stores._now") as fake_now:
            for i in range(4):
                fake_now.return_value = base + timedelta(minutes=i)
                feedback.submit(FeedbackIn(name=f"User {i}", feedback="Really helpful app!"))
        recent = feedback.recent()
        assert [f.name for f in recent] == ["User 3", "User 2", "User 1"]
