from __future__ import annotations

import logging
import threading

from .api import ZenFocusApi
from .auth import AuthResult, AuthSessionManager
from .background import Runner, ThreadRunner
from .config import Config
from .events import AuthStateChanged, EventBus
from .gateway import PersistenceGateway
from .ledger import DailyProgress, SessionLedger
from .models import Settings, Task, Theme
from .storage import FileStore, KeyValueStore
from .ticker import Clock, Ticker
from .timer import TimerStateMachine

logger = logging.getLogger(__name__)


class ZenFocusApp:
    """
    Wires the core together and holds the handlers a front-end calls.

    Settings, theme and tasks live here as the view's current copy; every
    change goes through the gateway so it is persisted locally and, when
    signed in, synced.
    """

    def __init__(
        self,
        config: Config,
        store: KeyValueStore | None = None,
        api: ZenFocusApi | None = None,
        clock: Clock | None = None,
        background: Runner | None = None,
    ):
        self.config = config
        self.events = EventBus()
        self.background = background or ThreadRunner()
        self.store = store or FileStore(config.state_dir)
        if api is None and config.base_url:
            api = ZenFocusApi(config.base_url, timeout_seconds=config.request_timeout_seconds)

        self.auth = AuthSessionManager(self.store, api=api, events=self.events, background=self.background)
        self.gateway = PersistenceGateway(self.store, self.auth, api=api, events=self.events, background=self.background)
        self.ledger = SessionLedger(self.gateway, events=self.events)
        self.timer = TimerStateMachine(
            settings=Settings(),
            ledger=self.ledger,
            events=self.events,
            clock=clock or Ticker(config.tick_interval_seconds),
        )

        self._lock = threading.Lock()
        self.settings = Settings()
        self.theme = Theme.NATURE
        self.tasks: list[Task] = []
        self._history_owner: str | None = None

    def start(self) -> None:
        self.auth.start(verify=self.config.verify_on_start)
        self.refresh()
        self.events.subscribe(self._on_event)

    def _on_event(self, event: object) -> None:
        if not isinstance(event, AuthStateChanged):
            return
        # A fresh sign-in pulls that account's data; dropping to guest only swaps the history
        if event.state == "authenticated":
            self.refresh()
        elif event.state == "guest":
            self._reload_history()

    def _current_owner(self) -> str | None:
        user = self.auth.user
        return user.id if user is not None and self.auth.is_authenticated else None

    def _reload_history(self) -> None:
        owner = self._current_owner()
        with self._lock:
            changed = owner != self._history_owner
            self._history_owner = owner
        if changed:
            # Unsynced entries belong to the previous account
            self.ledger.clear()
        self.ledger.load()

    def refresh(self) -> None:
        settings = self.gateway.get_settings()
        theme = self.gateway.get_theme()
        tasks = self.gateway.get_tasks()
        with self._lock:
            self.settings = settings
            self.theme = theme
            self.tasks = tasks
        self._reload_history()
        self.timer.update_settings(settings)

    def close(self) -> None:
        self.timer.close()
        # Give in-flight syncs one request's worth of time before the process goes away
        if isinstance(self.background, ThreadRunner):
            if not self.background.drain(self.config.request_timeout_seconds):
                logger.warning(f"{self.background.pending} sync request(s) still in flight at exit")

    # ---- Auth ----

    def login(self, email: str, password: str) -> AuthResult:
        return self.auth.login(email, password)

    def register(self, email: str, password: str, name: str = "") -> AuthResult:
        return self.auth.register(email, password, name)

    def logout(self) -> None:
        self.auth.logout()
        self.refresh()

    # ---- Settings / theme ----

    def update_settings(self, settings: Settings) -> None:
        with self._lock:
            self.settings = settings
        self.timer.update_settings(settings)
        self.gateway.update_settings(settings)

    def set_theme(self, theme: Theme) -> None:
        with self._lock:
            self.theme = theme
        self.gateway.update_theme(theme)

    # ---- Tasks ----

    def add_task(self, title: str) -> Task:
        task = Task(title=title)
        with self._lock:
            self.tasks = [task, *self.tasks]
        return self.gateway.create_task(task)

    def _find_task(self, task_id: str) -> Task | None:
        with self._lock:
            return next((t for t in self.tasks if t.id == task_id), None)

    def toggle_task(self, task_id: str) -> Task | None:
        task = self._find_task(task_id)
        if task is None:
            return None
        return self._apply_task_update(task_id, completed=not task.completed)

    def rename_task(self, task_id: str, title: str) -> Task | None:
        return self._apply_task_update(task_id, title=title)

    def _apply_task_update(self, task_id: str, title: str | None = None, completed: bool | None = None) -> Task | None:
        updated = self.gateway.update_task(task_id, title=title, completed=completed)
        if updated is not None:
            with self._lock:
                self.tasks = [updated if t.id == task_id else t for t in self.tasks]
        return updated

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            self.tasks = [t for t in self.tasks if t.id != task_id]
        self.gateway.delete_task(task_id)

    # ---- Derived ----

    def progress(self) -> DailyProgress:
        return self.ledger.progress(self.settings.dailyGoalHours)
