from __future__ import annotations

from pathlib import Path

import typer
import uvicorn

from .config import load_server_config
from .db import Database

app = typer.Typer(
    help="ZenFocus backend commands (serve, init-db).",
    no_args_is_help=True,
)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: ZENFOCUS_HOST)."),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: ZENFOCUS_PORT)."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    cfg = load_server_config()
    typer.echo(f"[serve] db={cfg.db_path}")
    uvicorn.run(
        "zenfocus_server.serve_api:app",
        host=host or cfg.host,
        port=port or cfg.port,
        reload=reload,
    )


@app.command("init-db")
def init_db(
    db_path: Path | None = typer.Option(None, "--db-path", help="SQLite file (default: ZENFOCUS_DB_PATH)."),
) -> None:
    path = str(db_path) if db_path else load_server_config().db_path
    with Database(path).connect():
        pass
    typer.echo(f"[init-db] Schema ready: {path}")


if __name__ == "__main__":
    app()
