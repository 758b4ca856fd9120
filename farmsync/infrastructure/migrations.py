from __future__ import annotations

import hashlib
import importlib.util
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

MigrationHook = Callable[[sqlite3.Connection], None]

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"

_UP_SQL_PATTERN = re.compile(r"^(?P<version>\d{3,})_(?P<name>[a-z0-9_]+)\.up\.sql$")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationStep:
    """Una versión del esquema: SQL de subida/bajada y hooks Python opcionales.

    Los hooks (``NNN_nombre.up.py`` / ``.down.py``) exponen ``run(connection)``
    y se ejecutan dentro de la misma transacción que el SQL.
    """

    version: int
    name: str
    directory: Path

    @property
    def stem(self) -> str:
        return f"{self.version:03d}_{self.name}"

    def script(self, direction: str) -> str:
        return (self.directory / f"{self.stem}.{direction}.sql").read_text(encoding="utf-8")

    def hook(self, direction: str) -> MigrationHook | None:
        path = self.directory / f"{self.stem}.{direction}.py"
        if not path.exists():
            return None
        spec = importlib.util.spec_from_file_location(f"farmsync_migration_{self.stem}_{direction}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"No se puede cargar el hook de migración {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        run = getattr(module, "run", None)
        if not callable(run):
            raise AttributeError(f"El hook {path.name} debe definir run(connection)")
        return run

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.script("up").encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MigrationState:
    version: int
    name: str
    applied: bool
    drifted: bool = False


def discover_steps(migrations_dir: Path) -> list[MigrationStep]:
    steps: list[MigrationStep] = []
    for path in sorted(migrations_dir.iterdir()):
        match = _UP_SQL_PATTERN.match(path.name)
        if match is None:
            continue
        step = MigrationStep(int(match["version"]), match["name"], migrations_dir)
        if not (migrations_dir / f"{step.stem}.down.sql").exists():
            raise FileNotFoundError(f"Falta {step.stem}.down.sql en {migrations_dir}")
        steps.append(step)
    versions = [step.version for step in steps]
    if len(versions) != len(set(versions)):
        raise ValueError(f"Versiones de migración duplicadas en {migrations_dir}")
    return steps


class MigrationRunner:
    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.steps = discover_steps(migrations_dir or DEFAULT_MIGRATIONS_DIR)
        self._by_version = {step.version: step for step in self.steps}

    def apply_all(self) -> list[int]:
        applied = self._applied_checksums()
        self._warn_on_drift(applied)
        pending = [step for step in self.steps if step.version not in applied]
        for step in pending:
            self._apply(step)
        return [step.version for step in pending]

    def rollback(self, steps: int = 1) -> list[int]:
        applied = sorted(self._applied_checksums(), reverse=True)[: max(0, steps)]
        for version in applied:
            self._revert(self._by_version[version])
        return applied

    def status(self) -> list[MigrationState]:
        applied = self._applied_checksums()
        return [
            MigrationState(
                version=step.version,
                name=step.name,
                applied=step.version in applied,
                drifted=step.version in applied and applied[step.version] != step.checksum,
            )
            for step in self.steps
        ]

    def _applied_checksums(self) -> dict[int, str]:
        with self.connection:
            self.connection.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
                """
            )
        rows = self.connection.execute("SELECT version, checksum FROM schema_migrations").fetchall()
        return {row["version"]: row["checksum"] for row in rows}

    def _warn_on_drift(self, applied: dict[int, str]) -> None:
        for version, checksum in applied.items():
            step = self._by_version.get(version)
            if step is not None and step.checksum != checksum:
                logger.warning("La migración %s cambió tras aplicarse (checksum distinto)", step.stem)

    def _apply(self, step: MigrationStep) -> None:
        script = step.script("up")
        hook = step.hook("up")
        with self.connection:
            if script.strip():
                self.connection.executescript(script)
            if hook is not None:
                hook(self.connection)
            self.connection.execute(
                "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (step.version, step.name, step.checksum, datetime.now(timezone.utc).isoformat()),
            )
            self.connection.execute(f"PRAGMA user_version = {step.version}")
        logger.info("Migración aplicada %s", step.stem)

    def _revert(self, step: MigrationStep) -> None:
        script = step.script("down")
        hook = step.hook("down")
        with self.connection:
            if hook is not None:
                hook(self.connection)
            if script.strip():
                self.connection.executescript(script)
            self.connection.execute("DELETE FROM schema_migrations WHERE version = ?", (step.version,))
            remaining = self.connection.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()[0]
            self.connection.execute(f"PRAGMA user_version = {int(remaining)}")
        logger.info("Migración revertida %s", step.stem)


def run_migrations(connection: sqlite3.Connection, migrations_dir: Path | None = None) -> list[int]:
    return MigrationRunner(connection, migrations_dir).apply_all()
