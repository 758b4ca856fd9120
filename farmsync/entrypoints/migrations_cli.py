from __future__ import annotations

import argparse
import logging
import sys

from farmsync.bootstrap.logging import configure_logging
from farmsync.bootstrap.settings import resolve_log_dir
from farmsync.infrastructure.db import CLOUD_DB_FILENAME, MOBILE_DB_FILENAME, default_db_path, get_connection
from farmsync.infrastructure.migrations import MigrationRunner

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="farmsync-migrate", description="Gestiona el esquema SQLite de farmsync")
    parser.add_argument("command", choices=["up", "down", "status"], help="Operación a ejecutar")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--db", help="Ruta al archivo SQLite (por defecto, la base móvil)")
    target.add_argument("--cloud", action="store_true", help="Usa la base SQLite de la nube local")
    parser.add_argument("--steps", type=int, default=1, help="Número de migraciones a revertir")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(resolve_log_dir())

    db_path = args.db or default_db_path(CLOUD_DB_FILENAME if args.cloud else MOBILE_DB_FILENAME)
    connection = get_connection(db_path)
    try:
        runner = MigrationRunner(connection)
        if args.command == "up":
            versions = runner.apply_all()
            logger.info("Migraciones aplicadas", extra={"extra": {"db": str(db_path), "versions": versions}})
            sys.stdout.write(f"Aplicadas: {versions or 'ninguna'}\n")
        elif args.command == "down":
            versions = runner.rollback(args.steps)
            logger.info("Migraciones revertidas", extra={"extra": {"db": str(db_path), "versions": versions}})
            sys.stdout.write(f"Revertidas: {versions or 'ninguna'}\n")
        else:
            for state in runner.status():
                marker = "x" if state.applied else " "
                suffix = " (modificada)" if state.drifted else ""
                sys.stdout.write(f"[{marker}] {state.version:03d} {state.name}{suffix}\n")
    finally:
        connection.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
