"""
Dashboard statistics and the daily study-streak rule.

Everything here is a pure function of its arguments: callers pass "now"
explicitly, nothing is persisted, and the same inputs always give the same
output regardless of which live input changed last.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from models import Assignment, StudySession, Subject, UserStats

ACTIVITY_DAYS = 7
SESSION_HOURS = 1  # logged once per day on the first dashboard visit


@dataclass
class DashboardStats:
    subjects_completed: int = 0
    average_score: int = 0
    study_streak: int = 0
    weekly_activity: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subjectsCompleted": self.subjects_completed,
            "averageScore": self.average_score,
            "studyStreak": self.study_streak,
            "weeklyActivity": self.weekly_activity,
        }


def _day(value: datetime | date) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).date()
    return value


def average_score(assignments: Iterable[Assignment]) -> int:
    """Mean grade of Completed assignments that carry a grade; 0 if none."""
    grades = [a.grade for a in assignments if a.is_graded]
    if not grades:
        return 0
    return math.floor(sum(grades) / len(grades) + 0.5)


def weekly_activity(sessions: Iterable[StudySession], today: date) -> list[dict]:
    """Hours studied per day for the trailing week, oldest day first."""
    days = [today - timedelta(days=offset) for offset in range(ACTIVITY_DAYS - 1, -1, -1)]
    hours = {d: 0 for d in days}
    for session in sessions:
        session_day = _day(session.date)
        if session_day in hours:
            hours[session_day] += session.duration
    return [{"day": d.strftime("%a"), "date": d.isoformat(), "hours": hours[d]} for d in days]


def compute_dashboard_stats(
    subjects: list[Subject],
    assignments: list[Assignment],
    user_stats: Optional[UserStats],
    today: date,
) -> DashboardStats:
    return DashboardStats(
        subjects_completed=len(subjects),
        average_score=average_score(assignments),
        study_streak=user_stats.study_streak if user_stats else 0,
        weekly_activity=weekly_activity(user_stats.study_sessions if user_stats else [], today),
    )


def upcoming_assignments(assignments: Iterable[Assignment], limit: int = 5) -> list[Assignment]:
    pending = [a for a in assignments if a.status == "Pending"]
    pending.sort(key=lambda a: a.due_date)
    return pending[:limit]


# ── Streak rule ───────────────────────────────────────────────


def already_studied_today(last_studied: Optional[datetime], today: date) -> bool:
    return last_studied is not None and _day(last_studied) == today


def next_streak(last_studied: Optional[datetime], previous_streak: int, today: date) -> int:
    """Streak after a first visit today.

    Continues (+1) only when the last study day was exactly yesterday;
    otherwise the streak restarts at 1. Callers must not call this when
    the user already studied today.
    """
    if last_studied is not None and _day(last_studied) == today - timedelta(days=1):
        return (previous_streak or 0) + 1
    return 1
