from __future__ import annotations

import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from . import MODES, THEMES, __version__
from .config import ServerConfig, load_server_config
from .db import Database, DuplicateError
from .security import create_token, hash_password, verify_password, verify_token

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SettingsPayload(BaseModel):
    focusDuration: int = Field(..., gt=0)
    shortBreakDuration: int = Field(..., gt=0)
    longBreakDuration: int = Field(..., gt=0)
    dailyGoalHours: float = Field(..., gt=0)


class TaskPayload(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    completed: bool = False
    createdAt: int


class TaskPatch(BaseModel):
    title: str | None = None
    completed: bool | None = None


class SessionPayload(BaseModel):
    id: str = Field(..., min_length=1)
    mode: str
    duration: int = Field(..., ge=0)
    completedAt: int

    @field_validator("mode")
    @classmethod
    def _known_mode(cls, value: str) -> str:
        if value not in MODES:
            raise ValueError(f"mode must be one of {', '.join(MODES)}")
        return value


class ThemePayload(BaseModel):
    theme: str

    @field_validator("theme")
    @classmethod
    def _known_theme(cls, value: str) -> str:
        if value not in THEMES:
            raise ValueError(f"theme must be one of {', '.join(THEMES)}")
        return value


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: str
    email: str
    name: str


class AuthResponse(BaseModel):
    user: UserOut
    token: str


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_app(config: ServerConfig | None = None, db: Database | None = None) -> FastAPI:
    config = config or load_server_config()
    db = db or Database(config.db_path)

    app = FastAPI(title="ZenFocus API", version=__version__)
    app.state.config = config
    app.state.db = db

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
        return JSONResponse(status_code=400, content={"error": message})

    def current_user_id(authorization: str | None = Header(None)) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="No token provided")
        user_id = verify_token(authorization[len("Bearer "):], config)
        # A valid signature is not enough once the account is gone
        if user_id is None or db.find_user(user_id) is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return user_id

    router = APIRouter(prefix="/api")

    # ---- Auth ----

    @router.post("/auth/register", status_code=201, response_model=AuthResponse)
    def register(payload: RegisterRequest) -> AuthResponse:
        email = _normalize_email(payload.email)
        if not _EMAIL_RE.match(email):
            raise HTTPException(status_code=400, detail="Email address is not valid")
        if len(payload.password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            user = db.create_user(email, payload.name.strip(), hash_password(payload.password))
        except DuplicateError:
            raise HTTPException(status_code=409, detail="Email already registered")
        logger.info(f"Registered user {user['id']}")
        return AuthResponse(user=UserOut(**user), token=create_token(user["id"], config))

    @router.post("/auth/login", response_model=AuthResponse)
    def login(payload: LoginRequest) -> AuthResponse:
        row = db.find_user_by_email(_normalize_email(payload.email))
        if row is None or not verify_password(payload.password, row["passwordHash"]):
            raise HTTPException(status_code=401, detail="Invalid email or password")
        user = UserOut(id=row["id"], email=row["email"], name=row["name"])
        return AuthResponse(user=user, token=create_token(user.id, config))

    @router.get("/auth/me", response_model=UserOut)
    def me(user_id: str = Depends(current_user_id)) -> UserOut:
        return UserOut(**db.find_user(user_id))

    # ---- Settings ----

    @router.get("/settings")
    def get_settings(user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return db.get_settings(user_id)

    @router.post("/settings")
    def update_settings(payload: SettingsPayload, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        changes = db.upsert_settings(user_id, payload.model_dump())
        return {"message": "Settings updated", "changes": changes}

    # ---- Tasks ----

    @router.get("/tasks")
    def list_tasks(user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return db.list_tasks(user_id)

    @router.post("/tasks")
    def create_task(payload: TaskPayload, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        try:
            db.create_task(user_id, payload.model_dump())
        except DuplicateError:
            raise HTTPException(status_code=409, detail="Task already exists")
        return {"message": "Task created", "id": payload.id}

    @router.patch("/tasks/{task_id}")
    def update_task(task_id: str, payload: TaskPatch, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        if payload.title is None and payload.completed is None:
            raise HTTPException(status_code=400, detail="No fields to update")
        changes = db.update_task(user_id, task_id, payload.title, payload.completed)
        return {"message": "Task updated", "changes": changes}

    @router.delete("/tasks/{task_id}")
    def delete_task(task_id: str, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return {"message": "Task deleted", "changes": db.delete_task(user_id, task_id)}

    # ---- Sessions ----

    @router.get("/sessions")
    def list_sessions(user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return db.list_sessions(user_id)

    @router.post("/sessions")
    def record_session(payload: SessionPayload, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        db.add_session(user_id, payload.model_dump())
        return {"message": "Session recorded", "id": payload.id}

    # ---- Theme ----

    @router.get("/theme")
    def get_theme(user_id: str = Depends(current_user_id)) -> str:
        return db.get_theme(user_id)

    @router.post("/theme")
    def update_theme(payload: ThemePayload, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        return {"message": "Theme updated", "changes": db.set_theme(user_id, payload.theme)}

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "version": __version__}

    return app


app = create_app()
