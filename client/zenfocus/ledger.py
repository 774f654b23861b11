from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from .events import EventBus, SessionRecorded
from .models import Session, TimerMode, now_ms

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    def get_history(self) -> list[Session]: ...

    def record_session(self, session: Session) -> None: ...


@dataclass
class DailyProgress:
    focus_seconds: int
    goal_seconds: int
    percent: float
    sessions: int


def start_of_day(now: int) -> int:
    """Local midnight of `now`, both in epoch milliseconds."""
    local = datetime.fromtimestamp(now / 1000)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def _todays_focus(history: Iterable[Session], now: int) -> list[Session]:
    since = start_of_day(now)
    return [s for s in history if s.mode == TimerMode.FOCUS and s.completedAt >= since]


def daily_focus_seconds(history: Iterable[Session], now: int) -> int:
    return sum(s.duration for s in _todays_focus(history, now))


def progress_percent(focus_seconds: float, goal_hours: float | None) -> float:
    """Share of the daily goal reached, clamped to [0, 100]. A zero or unset goal gives 0."""
    if not goal_hours or goal_hours <= 0:
        return 0.0
    percent = 100.0 * focus_seconds / (goal_hours * 3600)
    return max(0.0, min(100.0, percent))


def daily_progress(history: Iterable[Session], goal_hours: float | None, now: int) -> DailyProgress:
    todays = _todays_focus(history, now)
    focus_seconds = sum(s.duration for s in todays)
    return DailyProgress(
        focus_seconds=focus_seconds,
        goal_seconds=int((goal_hours or 0) * 3600),
        percent=round(progress_percent(focus_seconds, goal_hours), 2),
        sessions=len(todays),
    )


class SessionLedger:
    """
    Append-only history of completed sessions.

    The in-memory list is the source of truth for this process: an append is
    visible immediately and stays even if the durable write behind it fails.
    """

    def __init__(self, store: HistoryStore | None = None, events: EventBus | None = None):
        self.store = store
        self.events = events or EventBus()
        self._lock = threading.Lock()
        self._history: list[Session] = []

    @property
    def history(self) -> list[Session]:
        with self._lock:
            return list(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history = []

    def record_session(self, session: Session) -> None:
        with self._lock:
            self._history.append(session)
        logger.info(f"Recorded {session.mode.value} session {session.id} ({session.duration}s)")
        self.events.publish(SessionRecorded(session=session))
        if self.store is not None:
            self.store.record_session(session)

    def load(self) -> list[Session]:
        """Reconciles with stored history; local entries missing from it are kept."""
        if self.store is None:
            return self.history
        stored = self.store.get_history()
        with self._lock:
            known = {s.id for s in stored}
            pending = [s for s in self._history if s.id not in known]
            merged = list(stored) + pending
            merged.sort(key=lambda s: s.completedAt)
            self._history = merged
            return list(merged)

    def daily_focus_seconds(self, now: int | None = None) -> int:
        return daily_focus_seconds(self.history, now if now is not None else now_ms())

    def progress(self, goal_hours: float | None, now: int | None = None) -> DailyProgress:
        return daily_progress(self.history, goal_hours, now if now is not None else now_ms())
