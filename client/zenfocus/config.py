from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Config:
    # Backend base URL including the API prefix, e.g. "http://localhost:8000/api".
    # Empty means guest-only: nothing ever touches the network.
    base_url: str

    # Local storage (guest data + client cache + credential pair)
    state_dir: str

    request_timeout_seconds: float

    # Clock source
    tick_interval_seconds: float

    # Verify a stored token against /auth/me on startup
    verify_on_start: bool

    log_level: str


def load_config() -> Config:
    # Use a stable per-user dir by default
    state_dir = os.getenv("ZENFOCUS_STATE_DIR", os.path.expanduser("~/.zenfocus"))

    return Config(
        base_url=os.getenv("ZENFOCUS_BASE_URL", "").rstrip("/"),
        state_dir=state_dir,
        request_timeout_seconds=float(os.getenv("ZENFOCUS_REQUEST_TIMEOUT_SECONDS", "10.0")),
        tick_interval_seconds=float(os.getenv("ZENFOCUS_TICK_INTERVAL_SECONDS", "1.0")),
        verify_on_start=_env_bool("ZENFOCUS_VERIFY_ON_START", True),
        log_level=os.getenv("ZENFOCUS_LOG_LEVEL", "WARNING").upper(),
    )
