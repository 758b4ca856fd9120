from __future__ import annotations

import sqlite3
from pathlib import Path

from farmsync.infrastructure.local_config import resolve_appdata_dir

MOBILE_DB_FILENAME = "farmsync_mobile.db"
CLOUD_DB_FILENAME = "farmsync_cloud.db"
MEMORY_DB = ":memory:"
DEFAULT_BUSY_TIMEOUT_MS = 30000


def default_db_path(filename: str = MOBILE_DB_FILENAME) -> Path:
    return resolve_appdata_dir() / "data" / filename


def configure_sqlite_connection(
    connection: sqlite3.Connection,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    *,
    wal: bool = True,
) -> None:
    """Filas accesibles por nombre, espera ante bloqueos y WAL en ficheros."""
    connection.row_factory = sqlite3.Row
    pragmas = [f"busy_timeout={int(busy_timeout_ms)}", "foreign_keys=ON"]
    if wal:
        pragmas += ["journal_mode=WAL", "synchronous=NORMAL"]
    for pragma in pragmas:
        connection.execute(f"PRAGMA {pragma}")


def get_connection(
    db_path: Path | str | None = None,
    *,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    check_same_thread: bool = False,
) -> sqlite3.Connection:
    in_memory = str(db_path) == MEMORY_DB
    target: Path | str = MEMORY_DB if in_memory else Path(db_path or default_db_path())
    if isinstance(target, Path):
        target.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(
        target,
        check_same_thread=check_same_thread,
        timeout=max(1.0, busy_timeout_ms / 1000),
    )
    configure_sqlite_connection(connection, busy_timeout_ms, wal=not in_memory)
    return connection
