"""
Request and AI-contract schemas (pydantic).

Every write is validated here before it reaches the document store, and
every generative flow validates both its input and the model's output.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

TIME_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"

Weekday = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
ExamType = Literal["written_exam", "practical_exam"]

M = TypeVar("M", bound=BaseModel)


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _ModelOutput(BaseModel):
    """Model replies are checked strictly: no type coercion."""

    model_config = ConfigDict(strict=True)


def parse(schema: type[M], payload: dict | None) -> M:
    """Validate a payload or raise errors.ValidationError."""
    try:
        return schema.model_validate(payload or {})
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def changes(model: BaseModel) -> dict:
    """Fields the caller actually sent, camelCase, for partial updates."""
    return model.model_dump(exclude_unset=True)


def _reject_null(value):
    """Partial updates may omit a required field but never clear it."""
    if value is None:
        raise ValueError("may not be null")
    return value


# ── Subjects, assignments, materials ──────────────────────────


class SubjectIn(_Input):
    title: str = Field(min_length=1)
    instructor: str = Field(min_length=1)


class SubjectUpdate(_Input):
    title: Optional[str] = Field(default=None, min_length=1)
    instructor: Optional[str] = Field(default=None, min_length=1)

    @field_validator("title", "instructor", mode="before")
    @classmethod
    def no_nulls(cls, value):
        return _reject_null(value)


class AssignmentIn(_Input):
    subjectId: str = Field(min_length=1)
    title: str = Field(min_length=1)
    dueDate: datetime
    status: Literal["Pending", "Completed"] = "Pending"
    grade: Optional[float] = Field(default=None, ge=0)


class AssignmentUpdate(_Input):
    title: Optional[str] = Field(default=None, min_length=1)
    dueDate: Optional[datetime] = None
    status: Optional[Literal["Pending", "Completed"]] = None
    grade: Optional[float] = Field(default=None, ge=0)

    @field_validator("title", "dueDate", "status", mode="before")
    @classmethod
    def no_nulls(cls, value):
        return _reject_null(value)


class MaterialIn(_Input):
    subjectId: str = Field(min_length=1)
    title: str = Field(min_length=1)
    type: Literal["Notes", "Practicals", "PYQ"]
    contentType: Literal["link", "text"]
    content: str = Field(min_length=1)
    isPublic: bool = False


# ── Timetable ─────────────────────────────────────────────────


class LectureEntryIn(_Input):
    day: Weekday
    startTime: str = Field(pattern=TIME_PATTERN)
    endTime: str = Field(pattern=TIME_PATTERN)
    subject: str = Field(min_length=1)
    details: str = Field(min_length=1)


class ExamEntryIn(_Input):
    date: datetime
    startTime: str = Field(pattern=TIME_PATTERN)
    endTime: str = Field(pattern=TIME_PATTERN)
    subject: str = Field(min_length=1)
    details: str = ""


class TimetableEntryUpdate(_Input):
    day: Optional[Weekday] = None
    date: Optional[datetime] = None
    startTime: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    endTime: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    subject: Optional[str] = Field(default=None, min_length=1)
    details: Optional[str] = None

    @field_validator("day", "date", "startTime", "endTime", "subject", mode="before")
    @classmethod
    def no_nulls(cls, value):
        return _reject_null(value)


class TimeSlotIn(_Input):
    start: str = Field(pattern=TIME_PATTERN)
    end: str = Field(pattern=TIME_PATTERN)


# ── Accounts, profile, feedback ───────────────────────────────


class SignupIn(_Input):
    firstName: str = Field(min_length=1)
    lastName: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    profession: Literal["student", "teacher"]
    className: Optional[str] = None
    collegeName: Optional[str] = None


class LoginIn(_Input):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(_Input):
    firstName: Optional[str] = Field(default=None, min_length=1)
    lastName: Optional[str] = Field(default=None, min_length=1)
    className: Optional[str] = None
    collegeName: Optional[str] = None

    @field_validator("firstName", "lastName", mode="before")
    @classmethod
    def no_nulls(cls, value):
        return _reject_null(value)


class FeedbackIn(_Input):
    name: str = Field(min_length=2)
    feedback: str = Field(min_length=10)


# ── Generative flow contracts ─────────────────────────────────


class TutorInput(_Input):
    question: str = Field(min_length=1)
    courseMaterial: Optional[str] = None


class TutorOutput(_ModelOutput):
    answer: str


class SummarizeInput(_Input):
    text: str = Field(min_length=100)


class SummarizeOutput(_ModelOutput):
    summary: str


class QuizInput(_Input):
    sourceText: str = Field(min_length=1)
    numQuestions: int = Field(ge=1, le=10)


class QuizQuestion(_ModelOutput):
    questionText: str
    options: list[str] = Field(min_length=4, max_length=4)
    correctAnswerIndex: int = Field(ge=0, le=3)
    explanation: str


class QuizOutput(_ModelOutput):
    questions: list[QuizQuestion]


class StudyPlanInput(_Input):
    subjectTitles: list[str] = Field(min_length=1)
    weeklyHours: float = Field(gt=0)
    deadlines: Optional[str] = None


class StudyPlanRequest(_Input):
    """HTTP form of the study plan request: subjects chosen by id."""

    subjectIds: list[str] = Field(min_length=1)
    weeklyHours: float = Field(gt=0)
    deadlines: Optional[str] = None


class PlannedSession(_ModelOutput):
    subjectTitle: str
    day: str
    time: str
    topic: str
    description: str


class StudyPlanOutput(_ModelOutput):
    plan: list[PlannedSession]
