from __future__ import annotations

import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from . import DEFAULT_SETTINGS, DEFAULT_THEME

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    passwordHash TEXT NOT NULL,
    createdAt INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS settings (
    userId TEXT PRIMARY KEY REFERENCES users(id),
    focusDuration INTEGER NOT NULL,
    shortBreakDuration INTEGER NOT NULL,
    longBreakDuration INTEGER NOT NULL,
    dailyGoalHours REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS tasks (
    userId TEXT NOT NULL REFERENCES users(id),
    id TEXT NOT NULL,
    title TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    createdAt INTEGER NOT NULL,
    PRIMARY KEY (userId, id)
);
CREATE TABLE IF NOT EXISTS sessions (
    userId TEXT NOT NULL REFERENCES users(id),
    id TEXT NOT NULL,
    mode TEXT NOT NULL,
    duration INTEGER NOT NULL,
    completedAt INTEGER NOT NULL,
    PRIMARY KEY (userId, id)
);
CREATE INDEX IF NOT EXISTS idx_sessions_user_completed ON sessions (userId, completedAt);
CREATE TABLE IF NOT EXISTS theme (
    userId TEXT PRIMARY KEY REFERENCES users(id),
    currentTheme TEXT NOT NULL
);
"""


class DuplicateError(Exception):
    pass


class Database:
    """
    Per-user rows in one SQLite file. Every query is scoped by user id.

    A connection is opened per operation, so the store is safe to share
    across the server's worker threads. The path must be a file (":memory:"
    would hand each operation a fresh empty database).
    """

    def __init__(self, path: str):
        self.path = path
        self._schema_lock = threading.Lock()
        self._schema_ready = False

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            self._ensure_schema(conn)
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with self._schema_lock:
            if not self._schema_ready:
                conn.executescript(SCHEMA)
                self._schema_ready = True

    # ---- Users ----

    def create_user(self, email: str, name: str, password_hash: str) -> dict[str, Any]:
        user = {"id": str(uuid.uuid4()), "email": email, "name": name}
        try:
            with self.connect() as conn:
                conn.execute(
                    "INSERT INTO users (id, email, name, passwordHash, createdAt) VALUES (?, ?, ?, ?, ?)",
                    (user["id"], email, name, password_hash, int(time.time() * 1000)),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateError(email) from e
        return user

    def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return dict(row) if row else None

    def find_user(self, user_id: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute("SELECT id, email, name FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    # ---- Settings ----

    def get_settings(self, user_id: str) -> dict[str, Any]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT focusDuration, shortBreakDuration, longBreakDuration, dailyGoalHours FROM settings WHERE userId = ?",
                (user_id,),
            ).fetchone()
        return dict(row) if row else dict(DEFAULT_SETTINGS)

    def upsert_settings(self, user_id: str, settings: dict[str, Any]) -> int:
        with self.connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO settings (userId, focusDuration, shortBreakDuration, longBreakDuration, dailyGoalHours)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(userId) DO UPDATE SET
                    focusDuration = excluded.focusDuration,
                    shortBreakDuration = excluded.shortBreakDuration,
                    longBreakDuration = excluded.longBreakDuration,
                    dailyGoalHours = excluded.dailyGoalHours
                """,
                (
                    user_id,
                    settings["focusDuration"],
                    settings["shortBreakDuration"],
                    settings["longBreakDuration"],
                    settings["dailyGoalHours"],
                ),
            )
            return cur.rowcount

    # ---- Tasks ----

    def list_tasks(self, user_id: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, title, completed, createdAt FROM tasks WHERE userId = ? ORDER BY createdAt DESC",
                (user_id,),
            ).fetchall()
        # Stored as 0/1
        return [{**dict(r), "completed": bool(r["completed"])} for r in rows]

    def create_task(self, user_id: str, task: dict[str, Any]) -> None:
        try:
            with self.connect() as conn:
                conn.execute(
                    "INSERT INTO tasks (userId, id, title, completed, createdAt) VALUES (?, ?, ?, ?, ?)",
                    (user_id, task["id"], task["title"], 1 if task["completed"] else 0, task["createdAt"]),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateError(task["id"]) from e

    def update_task(self, user_id: str, task_id: str, title: str | None, completed: bool | None) -> int:
        fields: list[str] = []
        values: list[Any] = []
        if title is not None:
            fields.append("title = ?")
            values.append(title)
        if completed is not None:
            fields.append("completed = ?")
            values.append(1 if completed else 0)
        if not fields:
            return 0
        values.extend([user_id, task_id])
        with self.connect() as conn:
            cur = conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE userId = ? AND id = ?", values)
            return cur.rowcount

    def delete_task(self, user_id: str, task_id: str) -> int:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE userId = ? AND id = ?", (user_id, task_id))
            return cur.rowcount

    # ---- Sessions ----

    def list_sessions(self, user_id: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, mode, duration, completedAt FROM sessions WHERE userId = ? ORDER BY completedAt ASC",
                (user_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def add_session(self, user_id: str, session: dict[str, Any]) -> int:
        # A repeated id is a resent sync write; keep the first copy
        with self.connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO sessions (userId, id, mode, duration, completedAt) VALUES (?, ?, ?, ?, ?)",
                (user_id, session["id"], session["mode"], session["duration"], session["completedAt"]),
            )
            return cur.rowcount

    # ---- Theme ----

    def get_theme(self, user_id: str) -> str:
        with self.connect() as conn:
            row = conn.execute("SELECT currentTheme FROM theme WHERE userId = ?", (user_id,)).fetchone()
        return row["currentTheme"] if row else DEFAULT_THEME

    def set_theme(self, user_id: str, theme: str) -> int:
        with self.connect() as conn:
            cur = conn.execute(
                "INSERT INTO theme (userId, currentTheme) VALUES (?, ?) "
                "ON CONFLICT(userId) DO UPDATE SET currentTheme = excluded.currentTheme",
                (user_id, theme),
            )
            return cur.rowcount
