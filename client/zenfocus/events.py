from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from .models import Session, TimerMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeChanged:
    mode: TimerMode
    remaining_seconds: int


@dataclass(frozen=True)
class TimerReset:
    mode: TimerMode
    remaining_seconds: int


@dataclass(frozen=True)
class RunningChanged:
    is_running: bool


@dataclass(frozen=True)
class Ticked:
    mode: TimerMode
    remaining_seconds: int


@dataclass(frozen=True)
class TimerCompleted:
    mode: TimerMode
    duration_seconds: int


@dataclass(frozen=True)
class SessionRecorded:
    session: Session


@dataclass(frozen=True)
class SyncFailed:
    operation: str  # e.g. "update_settings", "get_tasks"
    error: str
    status_code: int | None = None


@dataclass(frozen=True)
class SessionExpired:
    user_id: str | None


@dataclass(frozen=True)
class AuthStateChanged:
    state: str  # AuthState value


Listener = Callable[[Any], None]


class EventBus:
    """
    Synchronous fan-out of core notifications.

    Listeners run on the publishing thread, in subscription order. A listener
    that raises is logged and skipped; it never breaks the publisher.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {type(event).__name__}")


class EventRecorder:
    """Listener that keeps everything it sees; handy for views and tests."""

    def __init__(self, bus: EventBus | None = None):
        self.events: list[Any] = []
        self._lock = threading.Lock()
        if bus is not None:
            bus.subscribe(self)

    def __call__(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, cls: type) -> list[Any]:
        with self._lock:
            return [e for e in self.events if isinstance(e, cls)]
