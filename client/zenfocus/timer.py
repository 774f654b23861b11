from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

from .events import EventBus, ModeChanged, RunningChanged, Ticked, TimerCompleted, TimerReset
from .models import Session, Settings, TimerMode, TimerState, now_ms
from .ticker import Clock, Ticker

logger = logging.getLogger(__name__)


class SessionSink(Protocol):
    def record_session(self, session: Session) -> None: ...


def format_time(seconds: int) -> str:
    """Format seconds as 'MM:SS'."""
    m, s = divmod(max(0, seconds), 60)
    return f"{m:02d}:{s:02d}"


class TimerStateMachine:
    """
    Countdown over FOCUS / SHORT_BREAK / LONG_BREAK, each running or paused.

    - Starts in FOCUS, paused, with the full focus duration remaining.
    - tick() takes exactly one second off while running. Reaching zero
      completes the period: FOCUS records a session and moves to SHORT_BREAK,
      a break moves back to FOCUS. The next period never starts by itself.
    - switch_mode() and reset() abandon the current period; they never
      record anything.
    - New settings re-derive the remaining time only while paused.

    All state changes happen under one lock. The clock is started whenever
    the machine runs and cancelled on every transition that stops it; ticks
    from a cancelled clock generation are dropped.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        ledger: SessionSink | None = None,
        events: EventBus | None = None,
        clock: Clock | None = None,
        clock_ms: Callable[[], int] = now_ms,
    ):
        self._settings = settings or Settings()
        self.ledger = ledger
        self.events = events or EventBus()
        self.clock = clock or Ticker()
        self._clock_ms = clock_ms

        self._lock = threading.RLock()
        self._mode = TimerMode.FOCUS
        self._remaining = self._settings.seconds_for(self._mode)
        self._running = False
        self._tick_generation: int | None = None

    # ---- Read-only properties ----

    @property
    def mode(self) -> TimerMode:
        with self._lock:
            return self._mode

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def settings(self) -> Settings:
        with self._lock:
            return self._settings

    def snapshot(self) -> TimerState:
        with self._lock:
            return TimerState(mode=self._mode, remainingSeconds=self._remaining, isRunning=self._running)

    def duration_for(self, mode: TimerMode) -> int:
        with self._lock:
            return self._settings.seconds_for(mode)

    # ---- Clock plumbing ----

    def _start_clock(self) -> None:
        self._tick_generation = self.clock.start(self._on_clock)

    def _stop_clock(self) -> None:
        self._tick_generation = None
        self.clock.cancel()

    def _on_clock(self, generation: int) -> None:
        with self._lock:
            if generation != self._tick_generation:
                logger.debug(f"Dropping stale tick from generation {generation}")
                return
            self.tick()

    # ---- Operations ----

    def switch_mode(self, mode: TimerMode) -> None:
        with self._lock:
            self._stop_clock()
            self._running = False
            self._mode = mode
            self._remaining = self._settings.seconds_for(mode)
            self.events.publish(ModeChanged(mode=mode, remaining_seconds=self._remaining))

    def reset(self, target_mode: TimerMode | None = None) -> None:
        with self._lock:
            mode = target_mode or self._mode
            self._stop_clock()
            self._running = False
            self._remaining = self._settings.seconds_for(mode)
            self.events.publish(TimerReset(mode=self._mode, remaining_seconds=self._remaining))

    def toggle_running(self) -> bool:
        with self._lock:
            self._running = not self._running
            if self._running:
                self._start_clock()
            else:
                self._stop_clock()
            self.events.publish(RunningChanged(is_running=self._running))
            if self._running and self._remaining == 0:
                self._complete()
            return self._running

    def start(self) -> None:
        with self._lock:
            if not self._running:
                self.toggle_running()

    def pause(self) -> None:
        with self._lock:
            if self._running:
                self.toggle_running()

    def tick(self) -> bool:
        """Takes one second off the running countdown. Returns False when there was nothing to do."""
        with self._lock:
            if not self._running or self._remaining <= 0:
                return False
            self._remaining -= 1
            self.events.publish(Ticked(mode=self._mode, remaining_seconds=self._remaining))
            if self._remaining == 0:
                self._complete()
            return True

    def _complete(self) -> None:
        finished = self._mode
        duration = self._settings.seconds_for(finished)

        self._stop_clock()
        self._running = False
        self.events.publish(RunningChanged(is_running=False))
        self.events.publish(TimerCompleted(mode=finished, duration_seconds=duration))
        logger.info(f"{finished.value} period completed ({duration}s)")

        if finished == TimerMode.FOCUS:
            session = Session(mode=TimerMode.FOCUS, duration=duration, completedAt=self._clock_ms())
            if self.ledger is not None:
                self.ledger.record_session(session)
            self.switch_mode(TimerMode.SHORT_BREAK)
        else:
            self.switch_mode(TimerMode.FOCUS)

    def update_settings(self, settings: Settings) -> None:
        with self._lock:
            self._settings = settings
            if self._running:
                # The period in progress keeps its countdown
                return
            self._remaining = settings.seconds_for(self._mode)
            self.events.publish(TimerReset(mode=self._mode, remaining_seconds=self._remaining))

    def close(self) -> None:
        with self._lock:
            self._stop_clock()
