from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable

from farmsync.application.display_names import resolve_display_name
from farmsync.application.reporting import render_outcome_json, render_report_json, render_report_md
from farmsync.bootstrap.container import AppContainer, build_container
from farmsync.bootstrap.exception_handler import install_exception_hook
from farmsync.bootstrap.logging import configure_logging
from farmsync.bootstrap.settings import resolve_log_dir
from farmsync.core.errors import AppError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="farmsync", description="Reconciliación de árboles móvil/nube")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Compara ambas fuentes sin escribir nada")
    reconcile.add_argument("--farm", required=True, help="Identificador de la granja")
    reconcile.add_argument("--format", choices=["json", "md"], default="json", help="Formato del informe")

    migrate = subparsers.add_parser("migrate", help="Copia a la nube los árboles que sólo existen en el móvil")
    migrate.add_argument("--farm", required=True, help="Identificador de la granja")
    migrate.add_argument(
        "--id",
        dest="ids",
        action="append",
        default=[],
        help="Id a migrar (repetible). Sin --id se migran todos los pendientes",
    )
    migrate.add_argument("--workers", type=int, default=1, help="Escrituras concurrentes en la nube")

    status = subparsers.add_parser("status", help="Indica si la granja necesita reconciliación")
    status.add_argument("--farm", required=True, help="Identificador de la granja")
    return parser


def _run_reconcile(container: AppContainer, args: argparse.Namespace) -> int:
    result = container.reconciliation_service.reconcile(args.farm)

    def _actor(uid: str) -> str:
        return resolve_display_name(uid, container.display_names, container.user_directory.display_name)

    if args.format == "md":
        sys.stdout.write(render_report_md(result, resolve_actor=_actor))
    else:
        sys.stdout.write(render_report_json(result, resolve_actor=_actor) + "\n")
    return EXIT_OK


def _run_migrate(container: AppContainer, args: argparse.Namespace) -> int:
    service = container.reconciliation_service
    if args.ids:
        outcome = service.migrate(args.farm, args.ids, max_workers=max(1, args.workers))
    else:
        result = service.reconcile(args.farm)
        outcome = service.migrate_missing(result, max_workers=max(1, args.workers))
    sys.stdout.write(render_outcome_json(outcome) + "\n")
    return EXIT_PARTIAL_FAILURE if outcome.has_failures else EXIT_OK


def _run_status(container: AppContainer, args: argparse.Namespace) -> int:
    status = container.reconciliation_service.get_reconciliation_status(args.farm)
    payload = {
        "farm_id": status.farm_id,
        "needs_reconciliation": status.needs_reconciliation,
        "last_checked": status.last_checked.isoformat(),
        "summary": status.summary.to_dict(),
    }
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, sort_keys=True) + "\n")
    return EXIT_OK


_COMMANDS: dict[str, Callable[[AppContainer, argparse.Namespace], int]] = {
    "reconcile": _run_reconcile,
    "migrate": _run_migrate,
    "status": _run_status,
}


def main(
    argv: list[str] | None = None,
    *,
    container_factory: Callable[[], AppContainer] = build_container,
) -> int:
    args = _build_parser().parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)

    try:
        container = container_factory()
        return _COMMANDS[args.command](container, args)
    except AppError as exc:
        logger.error("farmsync %s abortado: %s", args.command, exc, extra={"extra": {"farm_id": args.farm}})
        sys.stderr.write(f"Error: {exc}\n")
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
