from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ServerConfig:
    # SQLite file; created on first use
    db_path: str

    # Token signing
    jwt_secret: str
    jwt_algorithm: str
    jwt_expire_days: int

    host: str
    port: int


def load_server_config() -> ServerConfig:
    return ServerConfig(
        db_path=os.getenv("ZENFOCUS_DB_PATH", "zenfocus.db"),
        jwt_secret=os.getenv("ZENFOCUS_JWT_SECRET", "zenfocus-secret-key-change-in-production"),
        jwt_algorithm="HS256",
        jwt_expire_days=int(os.getenv("ZENFOCUS_JWT_EXPIRE_DAYS", "7")),
        host=os.getenv("ZENFOCUS_HOST", "0.0.0.0"),
        port=int(os.getenv("ZENFOCUS_PORT", "8000")),
    )
