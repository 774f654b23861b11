from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class TimerMode(str, Enum):
    FOCUS = "focus"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"


class Theme(str, Enum):
    NATURE = "nature"
    LOFI = "lofi"
    TECH = "tech"
    VINTAGE = "vintage"


DEFAULT_THEME = Theme.NATURE


class Settings(BaseModel):
    # Durations are minutes; the goal is hours.
    focusDuration: int = Field(25, gt=0)
    shortBreakDuration: int = Field(5, gt=0)
    longBreakDuration: int = Field(15, gt=0)
    dailyGoalHours: float = Field(4.0, gt=0)

    def minutes_for(self, mode: TimerMode) -> int:
        if mode == TimerMode.SHORT_BREAK:
            return self.shortBreakDuration
        if mode == TimerMode.LONG_BREAK:
            return self.longBreakDuration
        return self.focusDuration

    def seconds_for(self, mode: TimerMode) -> int:
        return self.minutes_for(mode) * 60


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    completed: bool = False
    createdAt: int = Field(default_factory=now_ms)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    mode: TimerMode
    duration: int = Field(..., ge=0, description="Seconds")
    completedAt: int = Field(..., description="Epoch milliseconds")


class User(BaseModel):
    id: str
    email: str
    name: str = ""


class AuthIdentity(BaseModel):
    user: User
    token: str


class TimerState(BaseModel):
    mode: TimerMode
    remainingSeconds: int = Field(..., ge=0)
    isRunning: bool
