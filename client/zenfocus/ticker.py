from __future__ import annotations

import threading
import time
from typing import Callable, Protocol


class Clock(Protocol):
    """Schedulable 1 Hz tick source owned by the timer state machine."""

    def start(self, callback: Callable[[int], None]) -> int: ...

    def cancel(self) -> None: ...

    @property
    def running(self) -> bool: ...


class Ticker:
    """
    Fires callback(generation) once per interval on a background thread.

    - Deadlines advance by exactly one interval from a monotonic origin, so
      callback latency does not accumulate into drift.
    - start() opens a new generation and cancel() closes it; a timer that
      fires after its generation was closed does nothing.
    - At most one timer is pending at a time.
    """

    def __init__(self, interval_seconds: float = 1.0):
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._generation = 0
        self._active = False
        self._timer: threading.Timer | None = None
        self._next_deadline = 0.0
        self._callback: Callable[[int], None] | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._active

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def start(self, callback: Callable[[int], None]) -> int:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            self._active = True
            self._callback = callback
            self._next_deadline = time.monotonic() + self.interval_seconds
            self._schedule_locked(self._generation)
            return self._generation

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._active:
            self._generation += 1
        self._active = False
        self._callback = None

    def _schedule_locked(self, generation: int) -> None:
        delay = max(0.0, self._next_deadline - time.monotonic())
        timer = threading.Timer(delay, self._fire, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if not self._active or generation != self._generation:
                return
            callback = self._callback
            self._timer = None

        if callback is not None:
            callback(generation)

        with self._lock:
            # The callback may have cancelled or restarted us
            if not self._active or generation != self._generation:
                return
            self._next_deadline += self.interval_seconds
            self._schedule_locked(generation)


class ManualClock:
    """Clock that only ticks when told to. Used by tests and scripted views."""

    def __init__(self) -> None:
        self._generation = 0
        self._callback: Callable[[int], None] | None = None

    @property
    def running(self) -> bool:
        return self._callback is not None

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, callback: Callable[[int], None]) -> int:
        self._generation += 1
        self._callback = callback
        return self._generation

    def cancel(self) -> None:
        if self._callback is not None:
            self._generation += 1
        self._callback = None

    def advance(self, ticks: int = 1) -> int:
        """Delivers up to `ticks` callbacks; stops early once cancelled. Returns ticks delivered."""
        delivered = 0
        for _ in range(ticks):
            callback = self._callback
            if callback is None:
                break
            callback(self._generation)
            delivered += 1
        return delivered

    def fire_stale(self, generation: int) -> None:
        """Delivers a callback carrying an old generation, as a late timer would."""
        if self._callback is not None:
            self._callback(generation)
