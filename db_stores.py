"""
Per-user entity stores for StudySpark.

Each store is bound to one user id (None means unauthenticated) and reads
and writes only that user's documents. `watch*` methods open live views
(see subscriptions.py); the remaining methods are one-shot reads and
writes. Writes raise NotAuthenticatedError without a user and
MissingReferenceError when a required foreign key is absent or dangling.
Documents owned by another user are reported as NotFoundError.

Subject and time-slot deletion cascade to their dependents in a single
atomic batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from document_store import ArrayRemove, ArrayUnion, DESCENDING
from errors import MissingReferenceError, NotAuthenticatedError, NotFoundError
from models import (
    COLLECTION_ASSIGNMENTS,
    COLLECTION_FEEDBACK,
    COLLECTION_MATERIALS,
    COLLECTION_PLAN_EVENTS,
    COLLECTION_SUBJECTS,
    COLLECTION_TIMETABLE_ENTRIES,
    COLLECTION_TIMETABLE_SETTINGS,
    COLLECTION_USER_STATS,
    COLLECTION_USERS,
    DEFAULT_TIME_SLOTS,
    EXAM_TYPES,
    TIMETABLE_TYPES,
    Assignment,
    Feedback,
    StudyMaterial,
    Subject,
    TimeSlot,
    TimetableEntry,
    UserProfile,
    UserStats,
    UserTimetableSettings,
)
from schemas import (
    AssignmentIn,
    AssignmentUpdate,
    ExamEntryIn,
    FeedbackIn,
    LectureEntryIn,
    MaterialIn,
    SubjectIn,
    SubjectUpdate,
    TimeSlotIn,
    TimetableEntryUpdate,
    changes,
)
from stats import SESSION_HOURS, already_studied_today, next_streak
from subscriptions import LiveDocument, LiveQuery
from toasts import ToastQueue

logger = logging.getLogger(__name__)

# Children removed together with their subject
SUBJECT_DEPENDENTS = (COLLECTION_ASSIGNMENTS, COLLECTION_MATERIALS, COLLECTION_PLAN_EVENTS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _OwnedStore:
    """Shared ownership scoping for the per-user stores."""

    def __init__(self, store, user_id: Optional[str], toasts: Optional[ToastQueue] = None):
        self.store = store
        self.user_id = user_id
        self.toasts = toasts

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("User not authenticated")
        return self.user_id

    def _owned(self, collection: str):
        return self.store.collection(collection).where("userId", "==", self.user_id)

    def _owned_snapshot(self, collection: str, doc_id: str):
        """Fetch a document the caller owns; anything else is NotFound."""
        self._require_user()
        if not doc_id:
            raise NotFoundError("Not found")
        snap = self.store.collection(collection).document(doc_id).get()
        if not snap.exists or snap.get("userId") != self.user_id:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        return snap

    def _idle(self, view):
        """A view that never subscribes (no user, or no parent key)."""
        view.loading = False
        return view


# ── Subjects ──────────────────────────────────────────────────


class SubjectStore(_OwnedStore):
    def watch(self) -> LiveQuery[Subject]:
        view = LiveQuery(self._owned(COLLECTION_SUBJECTS), Subject.from_snapshot,
                         label="subjects", toasts=self.toasts,
                         error_message="Could not fetch subjects.")
        if not self.user_id:
            return self._idle(view)
        return view.start()

    def watch_one(self, subject_id: str) -> LiveDocument[Subject]:
        ref = self.store.collection(COLLECTION_SUBJECTS).document(subject_id or "-")
        view = LiveDocument(ref, Subject.from_snapshot, owner_id=self.user_id,
                            label="subject", toasts=self.toasts,
                            error_message="Could not fetch subject details.")
        if not self.user_id or not subject_id:
            return self._idle(view)
        return view.start()

    def list(self) -> list[Subject]:
        self._require_user()
        return [Subject.from_snapshot(doc) for doc in self._owned(COLLECTION_SUBJECTS).stream()]

    def get(self, subject_id: str) -> Subject:
        return Subject.from_snapshot(self._owned_snapshot(COLLECTION_SUBJECTS, subject_id))

    def add(self, subject: SubjectIn) -> Subject:
        uid = self._require_user()
        data = {"title": subject.title, "instructor": subject.instructor, "userId": uid}
        ref = self.store.collection(COLLECTION_SUBJECTS).add(data)
        logger.info("Subject %s created for user %s", ref.id, uid)
        return Subject(id=ref.id, user_id=uid, title=subject.title, instructor=subject.instructor)

    def update(self, subject_id: str, updates: SubjectUpdate) -> None:
        snap = self._owned_snapshot(COLLECTION_SUBJECTS, subject_id)
        data = changes(updates)
        if data:
            snap.reference.update(data)

    def delete(self, subject_id: str) -> int:
        """Delete a subject and every document that references it, atomically.

        Returns the number of dependent documents removed.
        """
        snap = self._owned_snapshot(COLLECTION_SUBJECTS, subject_id)
        batch = self.store.batch()
        batch.delete(snap.reference)

        removed = 0
        for collection in SUBJECT_DEPENDENTS:
            children = (
                self._owned(collection)
                .where("subjectId", "==", subject_id)
                .stream()
            )
            for child in children:
                batch.delete(child.reference)
                removed += 1

        batch.commit()
        logger.info("Subject %s deleted with %d dependents", subject_id, removed)
        return removed


# ── Assignments ───────────────────────────────────────────────


class AssignmentStore(_OwnedStore):
    def __init__(self, store, user_id, subject_id: Optional[str] = None, toasts=None):
        super().__init__(store, user_id, toasts)
        self.subject_id = subject_id

    def _query(self):
        query = self._owned(COLLECTION_ASSIGNMENTS)
        if self.subject_id:
            query = query.where("subjectId", "==", self.subject_id)
        return query

    def watch(self) -> LiveQuery[Assignment]:
        view = LiveQuery(self._query(), Assignment.from_snapshot,
                         sort_key=lambda a: a.due_date,
                         label="assignments", toasts=self.toasts,
                         error_message="Could not fetch assignments.")
        if not self.user_id:
            return self._idle(view)
        return view.start()

    def list(self) -> list[Assignment]:
        self._require_user()
        items = [Assignment.from_snapshot(doc) for doc in self._query().stream()]
        items.sort(key=lambda a: a.due_date)
        return items

    def add(self, assignment: AssignmentIn) -> Assignment:
        uid = self._require_user()
        if not assignment.subjectId:
            raise MissingReferenceError("User or Subject ID not available")
        subject = self.store.collection(COLLECTION_SUBJECTS).document(assignment.subjectId).get()
        if not subject.exists or subject.get("userId") != uid:
            raise MissingReferenceError("Subject not found")

        data = {
            "subjectId": assignment.subjectId,
            "userId": uid,
            "title": assignment.title,
            "dueDate": assignment.dueDate,
            "status": assignment.status,
            "grade": assignment.grade,
            "subjectTitle": subject.get("title") or "",
        }
        ref = self.store.collection(COLLECTION_ASSIGNMENTS).add(data)
        return Assignment.from_snapshot(ref.get())

    def update(self, assignment_id: str, updates: AssignmentUpdate) -> None:
        snap = self._owned_snapshot(COLLECTION_ASSIGNMENTS, assignment_id)
        data = changes(updates)
        if data:
            snap.reference.update(data)

    def delete(self, assignment_id: str) -> None:
        self._owned_snapshot(COLLECTION_ASSIGNMENTS, assignment_id).reference.delete()


# ── Study materials ───────────────────────────────────────────


class StudyMaterialStore(_OwnedStore):
    def __init__(self, store, user_id, subject_id: Optional[str] = None, toasts=None):
        super().__init__(store, user_id, toasts)
        self.subject_id = subject_id

    def _query(self):
        return self._owned(COLLECTION_MATERIALS).where("subjectId", "==", self.subject_id)

    def watch(self) -> LiveQuery[StudyMaterial]:
        view = LiveQuery(self._query(), StudyMaterial.from_snapshot,
                         sort_key=lambda m: m.title,
                         label="study materials", toasts=self.toasts,
                         error_message="Could not fetch study materials.")
        if not self.user_id or not self.subject_id:
            return self._idle(view)
        return view.start()

    def list(self) -> list[StudyMaterial]:
        self._require_user()
        if not self.subject_id:
            return []
        items = [StudyMaterial.from_snapshot(doc) for doc in self._query().stream()]
        items.sort(key=lambda m: m.title)
        return items

    def add(self, material: MaterialIn, uploader_name: str = "") -> StudyMaterial:
        uid = self._require_user()
        if not material.subjectId:
            raise MissingReferenceError("User or Subject ID not available")
        subject = self.store.collection(COLLECTION_SUBJECTS).document(material.subjectId).get()
        if not subject.exists or subject.get("userId") != uid:
            raise MissingReferenceError("Subject not found")

        data = {
            "subjectId": material.subjectId,
            "userId": uid,
            "type": material.type,
            "contentType": material.contentType,
            "title": material.title,
            "content": material.content,
            "isPublic": material.isPublic,
            "uploaderName": uploader_name,
        }
        ref = self.store.collection(COLLECTION_MATERIALS).add(data)
        return StudyMaterial.from_snapshot(ref.get())

    def delete(self, material_id: str) -> None:
        self._owned_snapshot(COLLECTION_MATERIALS, material_id).reference.delete()


# ── Timetable ─────────────────────────────────────────────────


class TimeSlotView(LiveQuery):
    """Live time-slot grid. Creates the default settings on first access."""

    def __init__(self, timetable: TimetableStore, query, toasts=None):
        super().__init__(query, UserTimetableSettings.from_snapshot,
                         label="timetable settings", toasts=toasts,
                         error_message="Could not fetch timetable settings.")
        self._timetable = timetable
        self.settings: Optional[UserTimetableSettings] = None

    @property
    def time_slots(self) -> list[TimeSlot]:
        if self.settings is None:
            return list(DEFAULT_TIME_SLOTS)
        return self.settings.time_slots

    def _on_snapshot(self, snapshot) -> None:
        if snapshot.empty:
            # the creating write publishes a fresh, non-empty snapshot
            self._timetable.ensure_settings()
            return
        super()._on_snapshot(snapshot)
        with self._lock:
            self.settings = self.items[0] if self.items else None


class TimetableStore(_OwnedStore):
    def entries_query(self, entry_type: str):
        if entry_type not in TIMETABLE_TYPES:
            raise ValueError(f"Unknown timetable type: {entry_type}")
        query = self._owned(COLLECTION_TIMETABLE_ENTRIES).where("type", "==", entry_type)
        if entry_type in EXAM_TYPES:
            query = query.order_by("date")
        return query

    def watch_entries(self, entry_type: Optional[str]) -> LiveQuery[TimetableEntry]:
        if entry_type is None or not self.user_id:
            view = LiveQuery(None, TimetableEntry.from_snapshot, label="timetable")
            return self._idle(view)
        view = LiveQuery(self.entries_query(entry_type), TimetableEntry.from_snapshot,
                         label=f"{entry_type} timetable", toasts=self.toasts,
                         error_message="Could not fetch timetable.")
        return view.start()

    def list_entries(self, entry_type: str) -> list[TimetableEntry]:
        self._require_user()
        return [TimetableEntry.from_snapshot(doc) for doc in self.entries_query(entry_type).stream()]

    @staticmethod
    def lecture_grid(entries: list[TimetableEntry]) -> dict[tuple[str, str], TimetableEntry]:
        """Index lectures by (day, startTime) for grid rendering."""
        return {entry.grid_key: entry for entry in entries if entry.type == "lecture"}

    def _settings_query(self):
        return self._owned(COLLECTION_TIMETABLE_SETTINGS).limit(1)

    def watch_settings(self) -> TimeSlotView:
        view = TimeSlotView(self, self._settings_query(), toasts=self.toasts)
        if not self.user_id:
            return self._idle(view)
        return view.start()

    def ensure_settings(self) -> UserTimetableSettings:
        """Return the user's settings, creating the defaults if missing."""
        uid = self._require_user()
        existing = self._settings_query().get()
        if not existing.empty:
            return UserTimetableSettings.from_snapshot(existing.docs[0])

        ref = self.store.collection(COLLECTION_TIMETABLE_SETTINGS).document(uid)

        def create(txn):
            snap = txn.get(ref)
            if not snap.exists:
                txn.set(ref, {"userId": uid, "timeSlots": [s.to_dict() for s in DEFAULT_TIME_SLOTS]})
                logger.info("Created default timetable settings for user %s", uid)

        self.store.run_transaction(create)
        return UserTimetableSettings.from_snapshot(ref.get())

    def add_entry(self, entry: LectureEntryIn | ExamEntryIn, entry_type: str) -> TimetableEntry:
        uid = self._require_user()
        if entry_type not in TIMETABLE_TYPES:
            raise ValueError(f"Unknown timetable type: {entry_type}")
        data = entry.model_dump()
        data.update({"type": entry_type, "userId": uid})
        ref = self.store.collection(COLLECTION_TIMETABLE_ENTRIES).add(data)
        return TimetableEntry.from_snapshot(ref.get())

    def update_entry(self, entry_id: str, updates: TimetableEntryUpdate) -> None:
        snap = self._owned_snapshot(COLLECTION_TIMETABLE_ENTRIES, entry_id)
        data = changes(updates)
        if data:
            snap.reference.update(data)

    def delete_entry(self, entry_id: str) -> None:
        self._owned_snapshot(COLLECTION_TIMETABLE_ENTRIES, entry_id).reference.delete()

    def add_time_slot(self, slot: TimeSlotIn) -> None:
        self._require_user()
        settings = self.ensure_settings()
        ref = self.store.collection(COLLECTION_TIMETABLE_SETTINGS).document(settings.id)
        ref.update({"timeSlots": ArrayUnion([{"start": slot.start, "end": slot.end}])})

    def delete_time_slot(self, slot: TimeSlot) -> int:
        """Remove a slot and every lecture in it (same start AND end), atomically.

        Returns the number of lecture entries removed.
        """
        self._require_user()
        settings = self.ensure_settings()

        batch = self.store.batch()
        lectures = (
            self._owned(COLLECTION_TIMETABLE_ENTRIES)
            .where("type", "==", "lecture")
            .where("startTime", "==", slot.start)
            .stream()
        )
        removed = 0
        for doc in lectures:
            if doc.get("endTime") == slot.end:
                batch.delete(doc.reference)
                removed += 1

        settings_ref = self.store.collection(COLLECTION_TIMETABLE_SETTINGS).document(settings.id)
        batch.update(settings_ref, {"timeSlots": ArrayRemove([slot.to_dict()])})
        batch.commit()
        logger.info("Time slot %s-%s deleted with %d lectures", slot.start, slot.end, removed)
        return removed


# ── User stats (streak ledger) ────────────────────────────────


class UserStatsStore(_OwnedStore):
    def _ref(self):
        return self.store.collection(COLLECTION_USER_STATS).document(self._require_user())

    def watch(self) -> LiveDocument[UserStats]:
        if not self.user_id:
            view = LiveDocument(None, lambda s: None, label="user stats")
            return self._idle(view)
        view = LiveDocument(self._ref(), lambda s: UserStats.from_dict(s.to_dict()),
                            owner_id=self.user_id, label="user stats", toasts=self.toasts,
                            error_message="Could not fetch study statistics.")
        return view.start()

    def get(self) -> Optional[UserStats]:
        snap = self._ref().get()
        return UserStats.from_dict(snap.to_dict()) if snap.exists else None

    def record_daily_visit(self, now: Optional[datetime] = None) -> bool:
        """Log today's study session and advance the streak, once per day.

        Runs as a single read-then-write transaction. Returns True when the
        ledger changed, False when today was already recorded.
        """
        uid = self._require_user()
        now = now or _now()
        today = now.astimezone(timezone.utc).date()
        ref = self._ref()
        session = {"date": now, "duration": SESSION_HOURS}

        def apply(txn) -> bool:
            snap = txn.get(ref)
            if not snap.exists:
                txn.set(ref, {
                    "userId": uid,
                    "studyStreak": 1,
                    "lastStudiedDate": now,
                    "studySessions": [session],
                })
                return True

            stats = UserStats.from_dict(snap.to_dict())
            if already_studied_today(stats.last_studied_date, today):
                return False

            txn.update(ref, {
                "studyStreak": next_streak(stats.last_studied_date, stats.study_streak, today),
                "lastStudiedDate": now,
                "studySessions": ArrayUnion([session]),
            })
            return True

        changed = self.store.run_transaction(apply)
        if changed:
            logger.info("Recorded study visit for user %s", uid)
        return changed


# ── Profiles ──────────────────────────────────────────────────


class ProfileStore:
    """Profile documents keyed by user id."""

    def __init__(self, store):
        self.store = store

    def _ref(self, uid: str):
        return self.store.collection(COLLECTION_USERS).document(uid)

    def get(self, uid: str) -> Optional[UserProfile]:
        snap = self._ref(uid).get()
        return UserProfile.from_dict(snap.to_dict()) if snap.exists else None

    def create(self, profile: UserProfile) -> None:
        data = profile.to_dict()
        data["userId"] = profile.uid
        self._ref(profile.uid).set(data)

    def update(self, uid: str, updates: dict) -> UserProfile:
        if updates:
            self._ref(uid).update(updates)
        profile = self.get(uid)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile


# ── Feedback ──────────────────────────────────────────────────


class FeedbackStore:
    def __init__(self, store):
        self.store = store

    def submit(self, entry: FeedbackIn) -> Feedback:
        data = {"name": entry.name, "feedback": entry.feedback, "createdAt": _now()}
        ref = self.store.collection(COLLECTION_FEEDBACK).add(data)
        return Feedback.from_snapshot(ref.get())

    def recent(self, limit: int = 3) -> list[Feedback]:
        query = (
            self.store.collection(COLLECTION_FEEDBACK)
            .order_by("createdAt", direction=DESCENDING)
            .limit(limit)
        )
        return [Feedback.from_snapshot(doc) for doc in query.stream()]
