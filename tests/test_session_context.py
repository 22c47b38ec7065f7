"""Tests for session_context.py: per-user views, dashboard recomputation, teardown."""

from datetime import date, datetime, timezone

from schemas import AssignmentIn, AssignmentUpdate, SubjectIn
from session_context import SessionContext, SessionRegistry

TODAY = date(2026, 10, 19)


def _today():
    return TODAY


class TestSessionContext:
    def test_open_attaches_dashboard_views(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        assert ctx.open_view_count() == 3
        assert not ctx.dashboard.loading
        assert ctx.dashboard.value["stats"].subjects_completed == 0
        ctx.close()

    def test_open_twice_reuses_views(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        listeners = store.feed.listener_count()
        ctx.open()
        assert store.feed.listener_count() == listeners
        ctx.close()

    def test_dashboard_follows_writes(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        subject = ctx.subjects.add(SubjectIn(title="Physics", instructor="Dr. Curie"))
        assignment = ctx.assignments.add(AssignmentIn(
            subjectId=subject.id, title="Lab report",
            dueDate=datetime(2026, 10, 25, tzinfo=timezone.utc),
        ))
        value = ctx.dashboard.value
        assert value["stats"].subjects_completed == 1
        assert [a.id for a in value["upcoming"]] == [assignment.id]

        ctx.assignments.update(assignment.id, AssignmentUpdate(status="Completed", grade=88))
        value = ctx.dashboard.value
        assert value["stats"].average_score == 88
        assert value["upcoming"] == []
        ctx.close()

    def test_streak_reflected_after_visit(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        ctx.user_stats.record_daily_visit(datetime(2026, 10, 19, 9, tzinfo=timezone.utc))
        stats = ctx.dashboard.value["stats"]
        assert stats.study_streak == 1
        assert stats.weekly_activity[-1]["hours"] == 1
        ctx.close()

    def test_other_users_writes_do_not_leak(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        other = SessionContext("user-2", store, _today)
        other.subjects.add(SubjectIn(title="History", instructor="Dr. Who"))
        assert ctx.dashboard.value["stats"].subjects_completed == 0
        ctx.close()

    def test_view_cache(self, store):
        ctx = SessionContext("user-1", store, _today)
        first = ctx.view(("materials", "s1"), ctx.materials("s1").watch)
        second = ctx.view(("materials", "s1"), ctx.materials("s1").watch)
        assert first is second
        ctx.close()

    def test_close_releases_all_subscriptions(self, store):
        ctx = SessionContext("user-1", store, _today).open()
        ctx.view(("timetable", "lecture"), lambda: ctx.timetable.watch_entries("lecture"))
        assert store.feed.listener_count() > 0
        ctx.close()
        assert store.feed.listener_count() == 0
        assert ctx.open_view_count() == 0


class TestSessionRegistry:
    def test_get_or_open_is_idempotent(self, store):
        registry = SessionRegistry(store, _today)
        first = registry.get_or_open("user-1")
        assert registry.get_or_open("user-1") is first
        assert len(registry) == 1
        assert "user-1" in registry
        registry.close_all()

    def test_close_removes_and_releases(self, store):
        registry = SessionRegistry(store, _today)
        registry.get_or_open("user-1")
        registry.get_or_open("user-2")
        registry.close("user-1")
        assert registry.get("user-1") is None
        assert "user-2" in registry
        registry.close_all()
        assert len(registry) == 0
        assert store.feed.listener_count() == 0

    def test_close_unknown_user_is_noop(self, store):
        SessionRegistry(store, _today).close("nobody")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestIdleEviction:
    def test_idle_session_closed_on_next_access(self, store):
        clock = FakeClock()
        registry = SessionRegistry(store, _today, idle_timeout=60, clock=clock)
        registry.get_or_open("user-1")
        clock.now += 30
        registry.get_or_open("user-2")
        clock.now += 45
        registry.get_or_open("user-2")

        assert "user-1" not in registry
        assert "user-2" in registry
        assert store.feed.listener_count() == registry.get("user-2").open_view_count()
        registry.close_all()

    def test_access_keeps_session_alive(self, store):
        clock = FakeClock()
        registry = SessionRegistry(store, _today, idle_timeout=60, clock=clock)
        first = registry.get_or_open("user-1")
        clock.now += 50
        registry.get_or_open("user-1")
        clock.now += 50
        assert registry.evict_idle() == 0
        assert registry.get_or_open("user-1") is first
        registry.close_all()

    def test_no_timeout_keeps_everything(self, store):
        clock = FakeClock()
        registry = SessionRegistry(store, _today, clock=clock)
        registry.get_or_open("user-1")
        clock.now += 10 ** 6
        assert registry.evict_idle() == 0
        assert "user-1" in registry
        registry.close_all()


class TestCrossUserIsolation:
    def test_write_does_not_refresh_other_users_views(self, store):
        mine = SessionContext("user-1", store, _today).open()
        theirs = SessionContext("user-2", store, _today).open()
        before = theirs.dashboard.recomputations

        mine.subjects.add(SubjectIn(title="Physics", instructor="Dr. Curie"))

        assert mine.dashboard.value["stats"].subjects_completed == 1
        assert theirs.dashboard.recomputations == before
        assert theirs.dashboard.value["stats"].subjects_completed == 0
        mine.close()
        theirs.close()
