from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .models import AuthIdentity, User

logger = logging.getLogger(__name__)

SETTINGS_KEY = "zenfocus_settings"
TASKS_KEY = "zenfocus_tasks"
SESSIONS_KEY = "zenfocus_sessions"
THEME_KEY = "zenfocus_theme"
TOKEN_KEY = "zenfocus_token"
USER_KEY = "zenfocus_user"


class KeyValueStore(Protocol):
    """On-device storage: independent JSON values addressed by key."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


def ensure_dir(path: str) -> Path:
    p = Path(path).expanduser()
    p.mkdir(parents=True, exist_ok=True)
    return p


class FileStore:
    """One JSON file per key under a state directory."""

    def __init__(self, state_dir: str):
        self.state_dir = state_dir
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return ensure_dir(self.state_dir) / f"{key}.json"

    def get(self, key: str) -> Any | None:
        with self._lock:
            try:
                p = self._path(key)
                if not p.exists():
                    return None
                return json.loads(p.read_text())
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable local value {key}: {e}")
                return None

    def set(self, key: str, value: Any) -> None:
        p = self._path(key)
        tmp = p.with_suffix(".json.tmp")
        with self._lock:
            tmp.write_text(json.dumps(value, indent=2, sort_keys=True))
            tmp.replace(p)

    def remove(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


class MemoryStore:
    """Process-local store; values are round-tripped through JSON like the file store."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


def load_identity(store: KeyValueStore) -> AuthIdentity | None:
    token = store.get(TOKEN_KEY)
    user = store.get(USER_KEY)
    if not token or not user:
        return None
    try:
        return AuthIdentity(user=User.model_validate(user), token=token)
    except ValidationError:
        logger.warning("Stored credential is malformed; ignoring it")
        return None


def save_identity(store: KeyValueStore, identity: AuthIdentity) -> None:
    store.set(TOKEN_KEY, identity.token)
    store.set(USER_KEY, identity.user.model_dump())


def clear_identity(store: KeyValueStore) -> None:
    store.remove(TOKEN_KEY)
    store.remove(USER_KEY)
