from __future__ import annotations

import threading
import time
from typing import Callable

# Runs a zero-argument job off the caller's path. Components take one of these
# so tests can swap in run_inline and observe side effects deterministically.
Runner = Callable[[Callable[[], None]], None]


def run_inline(job: Callable[[], None]) -> None:
    job()


class ThreadRunner:
    """Starts each job on its own daemon thread and remembers it until it finishes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()

    def __call__(self, job: Callable[[], None]) -> None:
        def wrapper() -> None:
            try:
                job()
            finally:
                with self._lock:
                    self._threads.discard(threading.current_thread())

        t = threading.Thread(target=wrapper, daemon=True)
        with self._lock:
            self._threads.add(t)
        t.start()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._threads)

    def drain(self, timeout_seconds: float) -> bool:
        """Waits for in-flight jobs; True when none are left."""
        deadline = time.monotonic() + timeout_seconds
        while True:
            with self._lock:
                threads = list(self._threads)
            if not threads:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            threads[0].join(remaining)


run_in_thread = ThreadRunner()
