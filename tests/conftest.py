from __future__ import annotations

from typing import Any

import pytest

from zenfocus.api import ApiError, NetworkError, UnauthorizedError
from zenfocus.auth import AuthSessionManager
from zenfocus.background import run_inline
from zenfocus.events import EventBus, EventRecorder
from zenfocus.gateway import PersistenceGateway
from zenfocus.models import AuthIdentity, Session, Settings, Task, Theme, User
from zenfocus.storage import MemoryStore, save_identity

ALICE = User(id="u-alice", email="alice@example.com", name="Alice")
ALICE_TOKEN = "token-alice"


class FakeApi:
    """
    In-process stand-in for ZenFocusApi.

    - `offline = True` makes every call raise NetworkError.
    - `reject_token = True` makes every authenticated call raise UnauthorizedError.
    - `calls` records (method, args) for every call made.
    """

    def __init__(self) -> None:
        self.offline = False
        self.reject_token = False
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.accounts: dict[str, tuple[str, User]] = {ALICE.email: ("secret-pass", ALICE)}
        self.settings = Settings()
        self.tasks: list[Task] = []
        self.sessions: list[Session] = []
        self.theme = Theme.NATURE

    def _call(self, name: str, *args: Any, token: str | None = None) -> None:
        self.calls.append((name, args))
        if self.offline:
            raise NetworkError(f"{name} failed: connection refused")
        if token is not None and self.reject_token:
            raise UnauthorizedError("Invalid or expired token", status_code=401)

    # Auth

    def register(self, email: str, password: str, name: str) -> AuthIdentity:
        self._call("register", email)
        if email in self.accounts:
            raise ApiError("Email already registered", status_code=409)
        user = User(id=f"u-{len(self.accounts)}", email=email, name=name)
        self.accounts[email] = (password, user)
        return AuthIdentity(user=user, token=f"token-{user.id}")

    def login(self, email: str, password: str) -> AuthIdentity:
        self._call("login", email)
        stored = self.accounts.get(email)
        if stored is None or stored[0] != password:
            raise UnauthorizedError("Invalid email or password", status_code=401)
        return AuthIdentity(user=stored[1], token=ALICE_TOKEN if stored[1] == ALICE else f"token-{stored[1].id}")

    def me(self, token: str) -> User:
        self._call("me", token=token)
        return ALICE

    # Data

    def get_settings(self, token: str) -> Settings:
        self._call("get_settings", token=token)
        return self.settings

    def update_settings(self, token: str, settings: Settings) -> dict[str, Any]:
        self._call("update_settings", settings, token=token)
        self.settings = settings
        return {"changes": 1}

    def get_tasks(self, token: str) -> list[Task]:
        self._call("get_tasks", token=token)
        return list(self.tasks)

    def create_task(self, token: str, task: Task) -> dict[str, Any]:
        self._call("create_task", task, token=token)
        self.tasks.insert(0, task)
        return {"id": task.id}

    def update_task(self, token: str, task_id: str, title: str | None = None, completed: bool | None = None) -> dict[str, Any]:
        self._call("update_task", task_id, title, completed, token=token)
        return {"changes": 1}

    def delete_task(self, token: str, task_id: str) -> dict[str, Any]:
        self._call("delete_task", task_id, token=token)
        self.tasks = [t for t in self.tasks if t.id != task_id]
        return {"changes": 1}

    def get_sessions(self, token: str) -> list[Session]:
        self._call("get_sessions", token=token)
        return list(self.sessions)

    def record_session(self, token: str, session: Session) -> dict[str, Any]:
        self._call("record_session", session, token=token)
        self.sessions.append(session)
        return {"id": session.id}

    def get_theme(self, token: str) -> Theme:
        self._call("get_theme", token=token)
        return self.theme

    def update_theme(self, token: str, theme: Theme) -> dict[str, Any]:
        self._call("update_theme", theme, token=token)
        self.theme = theme
        return {"changes": 1}

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(events: EventBus) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def guest_auth(store: MemoryStore, api: FakeApi, events: EventBus) -> AuthSessionManager:
    auth = AuthSessionManager(store, api=api, events=events, background=run_inline)
    auth.start()
    return auth


@pytest.fixture
def signed_in_auth(store: MemoryStore, api: FakeApi, events: EventBus) -> AuthSessionManager:
    save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
    auth = AuthSessionManager(store, api=api, events=events, background=run_inline)
    auth.start(verify=False)
    return auth


def make_gateway(store: MemoryStore, auth: AuthSessionManager, api: FakeApi, events: EventBus) -> PersistenceGateway:
    return PersistenceGateway(store, auth, api=api, events=events, background=run_inline)
