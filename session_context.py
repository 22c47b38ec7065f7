"""
Per-user session state.

A SessionContext owns one signed-in user's entity stores, the live views
opened on their behalf and their toast queue. The SessionRegistry holding
every open context lives on the Flask app (``app.extensions["sessions"]``);
nothing here is a module global. Closing a context releases every
subscription it opened.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime, timezone
from typing import Callable, Optional

from db_stores import (
    AssignmentStore,
    StudyMaterialStore,
    SubjectStore,
    TimetableStore,
    UserStatsStore,
)
from stats import DashboardStats, compute_dashboard_stats, upcoming_assignments
from subscriptions import DerivedView
from toasts import ToastQueue

logger = logging.getLogger(__name__)


def _today() -> date:
    return datetime.now(timezone.utc).date()


class DashboardView(DerivedView):
    """Dashboard statistics over the subjects, assignments and stats views."""

    def __init__(self, subjects, assignments, user_stats, today: Callable[[], date] = _today):
        self._today = today
        super().__init__(
            {"subjects": subjects, "assignments": assignments, "user_stats": user_stats},
            self._stats,
        )

    def _stats(self, subjects, assignments, user_stats) -> dict:
        stats: DashboardStats = compute_dashboard_stats(
            subjects, assignments, user_stats, self._today()
        )
        return {
            "stats": stats,
            "upcoming": upcoming_assignments(assignments),
        }


class SessionContext:
    def __init__(self, user_id: str, store, today: Callable[[], date] = _today) -> None:
        self.user_id = user_id
        self.store = store
        self.toasts = ToastQueue()
        self._today = today
        self._views: dict[tuple, object] = {}
        self._lock = threading.Lock()
        self._dashboard: Optional[DashboardView] = None
        self.opened = False

        self.subjects = SubjectStore(store, user_id, self.toasts)
        self.assignments = AssignmentStore(store, user_id, toasts=self.toasts)
        self.timetable = TimetableStore(store, user_id, self.toasts)
        self.user_stats = UserStatsStore(store, user_id, self.toasts)

    def materials(self, subject_id: Optional[str]) -> StudyMaterialStore:
        return StudyMaterialStore(self.store, self.user_id, subject_id, self.toasts)

    def assignments_for(self, subject_id: Optional[str]) -> AssignmentStore:
        return AssignmentStore(self.store, self.user_id, subject_id, self.toasts)

    # ── Live views ────────────────────────────────────────────

    def view(self, key: tuple, factory: Callable[[], object]):
        """Return the live view cached under key, opening it on first use."""
        with self._lock:
            existing = self._views.get(key)
        if existing is not None:
            return existing
        created = factory()
        with self._lock:
            winner = self._views.setdefault(key, created)
        if winner is not created:
            created.close()
        return winner

    def open(self) -> SessionContext:
        """Attach the subscriptions the dashboard depends on."""
        if self.opened:
            return self
        subjects = self.view(("subjects",), self.subjects.watch)
        assignments = self.view(("assignments",), self.assignments.watch)
        stats = self.view(("userStats",), self.user_stats.watch)
        self._dashboard = DashboardView(subjects, assignments, stats, self._today)
        self.opened = True
        logger.info("Opened session for user %s", self.user_id)
        return self

    @property
    def dashboard(self) -> DashboardView:
        if self._dashboard is None:
            self.open()
        return self._dashboard

    def open_view_count(self) -> int:
        with self._lock:
            return len(self._views)

    def close(self) -> None:
        with self._lock:
            views, self._views = list(self._views.values()), {}
        if self._dashboard is not None:
            self._dashboard.close()
            self._dashboard = None
        for view in views:
            view.close()
        self.opened = False
        logger.info("Closed session for user %s (%d views released)", self.user_id, len(views))


class SessionRegistry:
    """Open session contexts keyed by user id.

    Contexts not touched for ``idle_timeout`` seconds are closed on the next
    ``get_or_open`` call, so sessions that expire without a logout do not
    keep their subscriptions alive. An idle_timeout of None or 0 disables
    eviction.
    """

    def __init__(
        self,
        store,
        today: Callable[[], date] = _today,
        idle_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self._today = today
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, SessionContext] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def get_or_open(self, user_id: str) -> SessionContext:
        now = self._clock()
        self.evict_idle(now, keep=user_id)
        with self._lock:
            ctx = self._sessions.get(user_id)
            if ctx is None:
                ctx = SessionContext(user_id, self.store, self._today)
                self._sessions[user_id] = ctx
            self._last_seen[user_id] = now
        return ctx.open()

    def evict_idle(self, now: Optional[float] = None, keep: Optional[str] = None) -> int:
        """Close contexts idle longer than the timeout; return how many."""
        if not self._idle_timeout:
            return 0
        now = self._clock() if now is None else now
        with self._lock:
            stale = [
                uid for uid, seen in self._last_seen.items()
                if uid != keep and now - seen > self._idle_timeout
            ]
            evicted = [self._sessions.pop(uid) for uid in stale if uid in self._sessions]
            for uid in stale:
                del self._last_seen[uid]
        for ctx in evicted:
            ctx.close()
        if evicted:
            logger.info("Evicted %d idle sessions", len(evicted))
        return len(evicted)

    def get(self, user_id: str) -> Optional[SessionContext]:
        with self._lock:
            return self._sessions.get(user_id)

    def close(self, user_id: str) -> None:
        with self._lock:
            ctx = self._sessions.pop(user_id, None)
            self._last_seen.pop(user_id, None)
        if ctx is not None:
            ctx.close()

    def close_all(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
            self._last_seen.clear()
        for ctx in sessions:
            ctx.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._sessions
