"""
Domain records for StudySpark.

Each dataclass maps one document shape in the document store. Field names
in storage are camelCase (shared with the web client); Python attributes
are snake_case. `from_snapshot` builds a record from a DocumentSnapshot and
`to_dict` renders the camelCase JSON the API returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Collection names (schema-in-code; the store creates them on first write)
COLLECTION_SUBJECTS = "subjects"
COLLECTION_ASSIGNMENTS = "assignments"
COLLECTION_MATERIALS = "studyMaterials"
COLLECTION_PLAN_EVENTS = "studyPlanEvents"
COLLECTION_TIMETABLE_ENTRIES = "timetableEntries"
COLLECTION_TIMETABLE_SETTINGS = "userTimetableSettings"
COLLECTION_USER_STATS = "userStats"
COLLECTION_FEEDBACK = "feedback"
COLLECTION_USERS = "users"

ASSIGNMENT_STATUSES = ("Pending", "Completed")
MATERIAL_TYPES = ("Notes", "Practicals", "PYQ")
MATERIAL_CONTENT_TYPES = ("link", "text")
TIMETABLE_TYPES = ("lecture", "written_exam", "practical_exam")
EXAM_TYPES = ("written_exam", "practical_exam")
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
PROFESSIONS = ("student", "teacher")


def to_utc(value: Any) -> Optional[datetime]:
    """Coerce a stored instant (datetime or ISO string) to an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise TypeError(f"Not an instant: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Subject:
    id: str
    user_id: str
    title: str
    instructor: str = ""

    @staticmethod
    def from_snapshot(doc) -> Subject:
        d = doc.to_dict()
        return Subject(id=doc.id, user_id=d.get("userId", ""), title=d.get("title", ""),
                       instructor=d.get("instructor", ""))

    def to_dict(self) -> dict:
        return {"id": self.id, "userId": self.user_id, "title": self.title,
                "instructor": self.instructor}


@dataclass
class Assignment:
    id: str
    subject_id: str
    user_id: str
    title: str
    due_date: datetime
    status: str = "Pending"  # "Pending" or "Completed"
    grade: Optional[float] = None
    subject_title: str = ""  # copied from the subject at write time

    @property
    def is_graded(self) -> bool:
        return self.status == "Completed" and self.grade is not None

    @staticmethod
    def from_snapshot(doc) -> Assignment:
        d = doc.to_dict()
        return Assignment(
            id=doc.id,
            subject_id=d.get("subjectId", ""),
            user_id=d.get("userId", ""),
            title=d.get("title", ""),
            due_date=to_utc(d.get("dueDate")),
            status=d.get("status", "Pending"),
            grade=d.get("grade"),
            subject_title=d.get("subjectTitle", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subjectId": self.subject_id,
            "userId": self.user_id,
            "title": self.title,
            "dueDate": _iso(self.due_date),
            "status": self.status,
            "grade": self.grade,
            "subjectTitle": self.subject_title,
        }


@dataclass
class StudyMaterial:
    id: str
    subject_id: str
    user_id: str
    type: str  # Notes / Practicals / PYQ
    content_type: str  # link / text
    title: str
    content: str
    is_public: bool = False
    uploader_name: str = ""
    subject_title: str = ""  # only filled in by public search

    @staticmethod
    def from_snapshot(doc) -> StudyMaterial:
        d = doc.to_dict()
        return StudyMaterial(
            id=doc.id,
            subject_id=d.get("subjectId", ""),
            user_id=d.get("userId", ""),
            type=d.get("type", "Notes"),
            content_type=d.get("contentType", "text"),
            title=d.get("title", ""),
            content=d.get("content", ""),
            is_public=bool(d.get("isPublic", False)),
            uploader_name=d.get("uploaderName", ""),
            subject_title=d.get("subjectTitle", ""),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "subjectId": self.subject_id,
            "userId": self.user_id,
            "type": self.type,
            "contentType": self.content_type,
            "title": self.title,
            "content": self.content,
            "isPublic": self.is_public,
            "uploaderName": self.uploader_name,
        }
        if self.subject_title:
            data["subjectTitle"] = self.subject_title
        return data


@dataclass
class TimetableEntry:
    id: str
    user_id: str
    type: str  # lecture / written_exam / practical_exam
    start_time: str  # "HH:mm"
    end_time: str
    subject: str
    details: str = ""
    day: Optional[str] = None  # lectures recur weekly
    date: Optional[datetime] = None  # exams happen once

    @property
    def grid_key(self) -> tuple[str, str]:
        return (self.day or "", self.start_time)

    @staticmethod
    def from_snapshot(doc) -> TimetableEntry:
        d = doc.to_dict()
        return TimetableEntry(
            id=doc.id,
            user_id=d.get("userId", ""),
            type=d.get("type", "lecture"),
            start_time=d.get("startTime", ""),
            end_time=d.get("endTime", ""),
            subject=d.get("subject", ""),
            details=d.get("details", ""),
            day=d.get("day"),
            date=to_utc(d.get("date")),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "subject": self.subject,
            "details": self.details,
        }
        if self.day is not None:
            data["day"] = self.day
        if self.date is not None:
            data["date"] = _iso(self.date)
        return data


@dataclass(frozen=True)
class TimeSlot:
    start: str  # "HH:mm"
    end: str

    @staticmethod
    def from_dict(d: dict) -> TimeSlot:
        return TimeSlot(start=d["start"], end=d["end"])

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


DEFAULT_TIME_SLOTS: tuple[TimeSlot, ...] = tuple(
    TimeSlot(f"{h:02d}:00", f"{h + 1:02d}:00") for h in range(8, 18)
)


@dataclass
class UserTimetableSettings:
    id: str
    user_id: str
    time_slots: list[TimeSlot] = field(default_factory=list)

    @staticmethod
    def from_snapshot(doc) -> UserTimetableSettings:
        d = doc.to_dict()
        slots = sorted((TimeSlot.from_dict(s) for s in d.get("timeSlots", [])),
                       key=lambda s: s.start)
        return UserTimetableSettings(id=doc.id, user_id=d.get("userId", ""), time_slots=slots)


@dataclass
class StudySession:
    date: datetime
    duration: float  # hours

    def to_dict(self) -> dict:
        return {"date": _iso(self.date), "duration": self.duration}


@dataclass
class UserStats:
    user_id: str
    study_streak: int = 0
    last_studied_date: Optional[datetime] = None
    study_sessions: list[StudySession] = field(default_factory=list)

    @staticmethod
    def from_dict(d: dict) -> UserStats:
        return UserStats(
            user_id=d.get("userId", ""),
            study_streak=int(d.get("studyStreak") or 0),
            last_studied_date=to_utc(d.get("lastStudiedDate")),
            study_sessions=[
                StudySession(date=to_utc(s["date"]), duration=s.get("duration", 0))
                for s in d.get("studySessions", [])
            ],
        )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "studyStreak": self.study_streak,
            "lastStudiedDate": _iso(self.last_studied_date),
            "studySessions": [s.to_dict() for s in self.study_sessions],
        }


@dataclass
class UserProfile:
    uid: str
    email: str
    first_name: str
    last_name: str
    profession: str = "student"
    class_name: str = ""
    college_name: str = ""
    photo_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @staticmethod
    def from_dict(d: dict) -> UserProfile:
        return UserProfile(
            uid=d.get("uid", ""),
            email=d.get("email", ""),
            first_name=d.get("firstName", ""),
            last_name=d.get("lastName", ""),
            profession=d.get("profession", "student"),
            class_name=d.get("className") or "",
            college_name=d.get("collegeName") or "",
            photo_url=d.get("photoURL"),
        )

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "profession": self.profession,
            "className": self.class_name,
            "collegeName": self.college_name,
            "photoURL": self.photo_url,
        }


@dataclass
class Feedback:
    id: str
    name: str
    feedback: str
    created_at: Optional[datetime] = None

    @staticmethod
    def from_snapshot(doc) -> Feedback:
        d = doc.to_dict()
        return Feedback(id=doc.id, name=d.get("name", ""), feedback=d.get("feedback", ""),
                        created_at=to_utc(d.get("createdAt")))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "feedback": self.feedback,
                "createdAt": _iso(self.created_at)}
