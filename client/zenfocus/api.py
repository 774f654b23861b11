from __future__ import annotations

from typing import Any

import requests

from .models import AuthIdentity, Session, Settings, Task, Theme, User


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnauthorizedError(ApiError):
    """401 from the backend: missing, invalid or expired bearer token."""


class NetworkError(ApiError):
    """The backend could not be reached at all."""


def _error_message(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text or r.reason or f"HTTP {r.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or f"HTTP {r.status_code}")
    return f"HTTP {r.status_code}"


class ZenFocusApi:
    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        payload: Any = None,
    ) -> Any:
        try:
            r = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(token),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if r.status_code == 401:
            raise UnauthorizedError(_error_message(r), status_code=401)
        if not r.ok:
            raise ApiError(_error_message(r), status_code=r.status_code)
        return r.json() if r.content else None

    # Auth

    def register(self, email: str, password: str, name: str) -> AuthIdentity:
        data = self._request("POST", "/auth/register", payload={"email": email, "password": password, "name": name})
        return AuthIdentity.model_validate(data)

    def login(self, email: str, password: str) -> AuthIdentity:
        data = self._request("POST", "/auth/login", payload={"email": email, "password": password})
        return AuthIdentity.model_validate(data)

    def me(self, token: str) -> User:
        return User.model_validate(self._request("GET", "/auth/me", token=token))

    # Settings

    def get_settings(self, token: str) -> Settings:
        return Settings.model_validate(self._request("GET", "/settings", token=token))

    def update_settings(self, token: str, settings: Settings) -> dict[str, Any]:
        return self._request("POST", "/settings", token=token, payload=settings.model_dump())

    # Tasks

    def get_tasks(self, token: str) -> list[Task]:
        return [Task.model_validate(t) for t in self._request("GET", "/tasks", token=token) or []]

    def create_task(self, token: str, task: Task) -> dict[str, Any]:
        return self._request("POST", "/tasks", token=token, payload=task.model_dump())

    def update_task(
        self,
        token: str,
        task_id: str,
        title: str | None = None,
        completed: bool | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if completed is not None:
            payload["completed"] = completed
        return self._request("PATCH", f"/tasks/{task_id}", token=token, payload=payload)

    def delete_task(self, token: str, task_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/tasks/{task_id}", token=token)

    # Sessions

    def get_sessions(self, token: str) -> list[Session]:
        return [Session.model_validate(s) for s in self._request("GET", "/sessions", token=token) or []]

    def record_session(self, token: str, session: Session) -> dict[str, Any]:
        return self._request("POST", "/sessions", token=token, payload=session.model_dump(mode="json"))

    # Theme

    def get_theme(self, token: str) -> Theme:
        return Theme(self._request("GET", "/theme", token=token))

    def update_theme(self, token: str, theme: Theme) -> dict[str, Any]:
        return self._request("POST", "/theme", token=token, payload={"theme": theme.value})
