"""
Persistence gateway: one interface over on-device storage and the backend.

Guest (no usable token): every read and write touches local storage only.
Authenticated: reads try the backend first and fall back to the cached local
copy; writes land locally first and then fire one best-effort remote attempt
on a background runner. Nothing here raises into the timer or the ledger.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from .api import ApiError, UnauthorizedError, ZenFocusApi
from .auth import AuthSessionManager
from .background import Runner, run_in_thread
from .events import EventBus, SyncFailed
from .models import DEFAULT_THEME, Session, Settings, Task, Theme
from .storage import SESSIONS_KEY, SETTINGS_KEY, TASKS_KEY, THEME_KEY, KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Entity(Generic[T]):
    key: str
    default: Callable[[], T]
    parse: Callable[[Any], T]
    dump: Callable[[T], Any]


SETTINGS = Entity[Settings](
    key=SETTINGS_KEY,
    default=Settings,
    parse=Settings.model_validate,
    dump=lambda s: s.model_dump(),
)
TASKS = Entity[list[Task]](
    key=TASKS_KEY,
    default=list,
    parse=lambda raw: [Task.model_validate(t) for t in raw],
    dump=lambda tasks: [t.model_dump() for t in tasks],
)
SESSIONS = Entity[list[Session]](
    key=SESSIONS_KEY,
    default=list,
    parse=lambda raw: [Session.model_validate(s) for s in raw],
    dump=lambda sessions: [s.model_dump(mode="json") for s in sessions],
)
THEME = Entity[Theme](
    key=THEME_KEY,
    default=lambda: DEFAULT_THEME,
    parse=Theme,
    dump=lambda theme: theme.value,
)


class PersistenceGateway:
    def __init__(
        self,
        store: KeyValueStore,
        auth: AuthSessionManager,
        api: ZenFocusApi | None = None,
        events: EventBus | None = None,
        background: Runner = run_in_thread,
    ):
        self.store = store
        self.auth = auth
        self.api = api if api is not None else auth.api
        self.events = events or auth.events
        self.background = background

    @property
    def is_remote(self) -> bool:
        return self._remote_token() is not None

    def _remote_token(self) -> str | None:
        if self.api is None or not self.auth.is_authenticated:
            return None
        return self.auth.token

    # ---- Local side ----

    def _load_local(self, entity: Entity[T]) -> T:
        try:
            raw = self.store.get(entity.key)
        except OSError as e:
            logger.warning(f"Could not read local {entity.key}: {e}")
            return entity.default()
        if raw is None:
            return entity.default()
        try:
            return entity.parse(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding malformed local {entity.key}: {e}")
            return entity.default()

    def _save_local(self, entity: Entity[T], value: T) -> None:
        self.store.set(entity.key, entity.dump(value))

    # ---- Shared algorithms ----

    def _read(self, operation: str, entity: Entity[T], fetch: Callable[[str], T]) -> T:
        """Read-with-default, then reconcile-with-remote."""
        token = self._remote_token()
        if token is None:
            return self._load_local(entity)
        try:
            value = fetch(token)
        except UnauthorizedError as e:
            self._expired(operation, token, e)
            return self._load_local(entity)
        except (ApiError, ValueError, TypeError) as e:
            self._failed(operation, e)
            return self._load_local(entity)

        try:
            self._save_local(entity, value)
        except OSError as e:
            self._failed(f"{operation}:cache", e)
        return value

    def _write(self, operation: str, apply_local: Callable[[], None], remote: Callable[[str], Any]) -> None:
        try:
            apply_local()
        except OSError as e:
            self._failed(f"{operation}:local", e)

        token = self._remote_token()
        if token is None:
            return
        self.background(lambda: self._push(operation, token, remote))

    def _push(self, operation: str, token: str, remote: Callable[[str], Any]) -> None:
        try:
            remote(token)
        except UnauthorizedError as e:
            self._expired(operation, token, e)
        except (ApiError, ValueError, TypeError) as e:
            self._failed(operation, e)

    def _failed(self, operation: str, error: Exception) -> None:
        status = error.status_code if isinstance(error, ApiError) else None
        logger.warning(f"{operation} failed: {error}")
        self.events.publish(SyncFailed(operation=operation, error=str(error), status_code=status))

    def _expired(self, operation: str, token: str, error: ApiError) -> None:
        self._failed(operation, error)
        self.auth.invalidate(token)

    # ---- Settings ----

    def get_settings(self) -> Settings:
        return self._read("get_settings", SETTINGS, lambda token: self.api.get_settings(token))

    def update_settings(self, settings: Settings) -> None:
        self._write(
            "update_settings",
            lambda: self._save_local(SETTINGS, settings),
            lambda token: self.api.update_settings(token, settings),
        )

    # ---- Tasks ----

    def get_tasks(self) -> list[Task]:
        return self._read("get_tasks", TASKS, lambda token: self.api.get_tasks(token))

    def create_task(self, task: Task) -> Task:
        def apply_local() -> None:
            tasks = [t for t in self._load_local(TASKS) if t.id != task.id]
            self._save_local(TASKS, [task, *tasks])

        self._write("create_task", apply_local, lambda token: self.api.create_task(token, task))
        return task

    def update_task(self, task_id: str, title: str | None = None, completed: bool | None = None) -> Task | None:
        if title is None and completed is None:
            raise ValueError("No fields to update")
        if title is not None and not title.strip():
            raise ValueError("title must not be blank")

        updated: list[Task] = []

        def apply_local() -> None:
            tasks = self._load_local(TASKS)
            changes: dict[str, Any] = {}
            if title is not None:
                changes["title"] = title
            if completed is not None:
                changes["completed"] = completed
            result = []
            for t in tasks:
                if t.id == task_id:
                    t = t.model_copy(update=changes)
                    updated.append(t)
                result.append(t)
            self._save_local(TASKS, result)

        self._write(
            "update_task",
            apply_local,
            lambda token: self.api.update_task(token, task_id, title=title, completed=completed),
        )
        return updated[0] if updated else None

    def delete_task(self, task_id: str) -> None:
        self._write(
            "delete_task",
            lambda: self._save_local(TASKS, [t for t in self._load_local(TASKS) if t.id != task_id]),
            lambda token: self.api.delete_task(token, task_id),
        )

    # ---- Sessions ----

    def get_history(self) -> list[Session]:
        return self._read("get_history", SESSIONS, lambda token: self.api.get_sessions(token))

    def record_session(self, session: Session) -> None:
        def apply_local() -> None:
            sessions = [s for s in self._load_local(SESSIONS) if s.id != session.id]
            self._save_local(SESSIONS, [*sessions, session])

        self._write("record_session", apply_local, lambda token: self.api.record_session(token, session))

    # ---- Theme ----

    def get_theme(self) -> Theme:
        return self._read("get_theme", THEME, lambda token: self.api.get_theme(token))

    def update_theme(self, theme: Theme) -> None:
        self._write(
            "update_theme",
            lambda: self._save_local(THEME, theme),
            lambda token: self.api.update_theme(token, theme),
        )
