"""Session ledger and daily-goal aggregation."""

from datetime import datetime

import pytest

from zenfocus.events import EventBus, EventRecorder, SessionRecorded
from zenfocus.ledger import (
    SessionLedger,
    daily_focus_seconds,
    daily_progress,
    progress_percent,
    start_of_day,
)
from zenfocus.models import Session, TimerMode


def ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


NOW = ms(datetime(2026, 3, 10, 15, 30))
MIDNIGHT = ms(datetime(2026, 3, 10, 0, 0))


def focus(at: int, duration: int = 1500) -> Session:
    return Session(mode=TimerMode.FOCUS, duration=duration, completedAt=at)


class FakeHistoryStore:
    def __init__(self, stored=None):
        self.stored = list(stored or [])
        self.recorded = []

    def get_history(self):
        return list(self.stored)

    def record_session(self, session):
        self.recorded.append(session)


class TestStartOfDay:
    def test_local_midnight(self):
        assert start_of_day(NOW) == MIDNIGHT

    def test_midnight_is_its_own_start(self):
        assert start_of_day(MIDNIGHT) == MIDNIGHT


class TestDailyFocusSeconds:
    def test_counts_only_today(self):
        history = [
            focus(MIDNIGHT - 1),
            focus(MIDNIGHT - 60 * 60 * 1000),
            focus(MIDNIGHT),
            focus(NOW - 1000, duration=600),
        ]
        assert daily_focus_seconds(history, NOW) == 1500 + 600

    def test_ignores_break_entries(self):
        history = [
            focus(NOW - 1000),
            Session(mode=TimerMode.SHORT_BREAK, duration=300, completedAt=NOW - 500),
            Session(mode=TimerMode.LONG_BREAK, duration=900, completedAt=NOW - 400),
        ]
        assert daily_focus_seconds(history, NOW) == 1500

    def test_empty_history(self):
        assert daily_focus_seconds([], NOW) == 0

    def test_filters_by_timestamp_not_position(self):
        history = [focus(NOW - 1000), focus(MIDNIGHT - 1000), focus(NOW - 2000)]
        assert daily_focus_seconds(history, NOW) == 3000


class TestProgressPercent:
    def test_fraction_of_goal(self):
        assert progress_percent(3600, 4) == pytest.approx(25.0)

    def test_clamps_at_100(self):
        assert progress_percent(10 * 3600, 4) == 100.0

    def test_zero_goal_is_zero(self):
        assert progress_percent(3600, 0) == 0.0

    def test_unset_goal_is_zero(self):
        assert progress_percent(3600, None) == 0.0

    @pytest.mark.parametrize("seconds", [0, 1, 1800, 14_400, 100_000])
    def test_always_within_bounds(self, seconds):
        assert 0.0 <= progress_percent(seconds, 4) <= 100.0

    def test_daily_progress_summary(self):
        history = [focus(MIDNIGHT + 1000), focus(NOW - 1000), focus(MIDNIGHT - 1000)]
        p = daily_progress(history, 4, NOW)
        assert p.focus_seconds == 3000
        assert p.goal_seconds == 14_400
        assert p.sessions == 2
        assert p.percent == pytest.approx(20.83, abs=0.01)


class TestSessionLedger:
    def test_record_is_immediately_visible_and_persisted(self):
        events = EventBus()
        recorder = EventRecorder(events)
        store = FakeHistoryStore()
        ledger = SessionLedger(store, events=events)

        s = focus(NOW)
        ledger.record_session(s)

        assert ledger.history == [s]
        assert store.recorded == [s]
        assert recorder.of_type(SessionRecorded)[0].session == s

    def test_history_is_a_copy(self):
        ledger = SessionLedger()
        ledger.record_session(focus(NOW))
        ledger.history.clear()
        assert len(ledger.history) == 1

    def test_load_keeps_optimistic_entries(self):
        stored = [focus(NOW - 5000), focus(NOW - 4000)]
        store = FakeHistoryStore(stored)
        ledger = SessionLedger(store)
        pending = focus(NOW - 4500)
        ledger.record_session(pending)

        history = ledger.load()

        assert [s.id for s in history] == [stored[0].id, pending.id, stored[1].id]

    def test_load_does_not_duplicate_known_entries(self):
        s = focus(NOW)
        store = FakeHistoryStore([s])
        ledger = SessionLedger(store)
        ledger.record_session(s)
        assert len(ledger.load()) == 1

    def test_daily_focus_from_ledger(self):
        ledger = SessionLedger()
        ledger.record_session(focus(NOW - 1000))
        ledger.record_session(focus(MIDNIGHT - 1000))
        assert ledger.daily_focus_seconds(NOW) == 1500
        assert ledger.progress(4, NOW).percent == pytest.approx(10.42, abs=0.01)
