from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from pathlib import Path
from types import TracebackType

from farmsync.bootstrap.logging import CRASH_LOG_NAME
from farmsync.bootstrap.settings import resolve_log_dir
from farmsync.core.observability import generate_correlation_id, get_correlation_id, get_farm_id, set_correlation_id

logger = logging.getLogger("farmsync.global_exception")


def generar_id_incidente() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _escribir_crash_directo(log_dir: Path, payload: dict[str, object]) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    with (log_dir / CRASH_LOG_NAME).open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def manejar_excepcion_global(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
    *,
    log_dir: Path | None = None,
) -> str:
    """Registra una excepción no controlada y devuelve su id de incidente.

    Si el propio logging falla se escribe el incidente directamente en
    ``crash.log`` para no perderlo.
    """
    incident_id = generar_id_incidente()
    correlation_id = get_correlation_id()
    if not correlation_id:
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)

    try:
        logger.critical(
            "Excepción no controlada. incident_id=%s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={
                "incident_id": incident_id,
                "correlation_id": correlation_id,
                "extra": {"python": sys.version.split()[0], "cwd": str(Path.cwd())},
            },
        )
    except Exception:  # noqa: BLE001
        _escribir_crash_directo(
            log_dir or resolve_log_dir(),
            {
                "incident_id": incident_id,
                "correlation_id": correlation_id,
                "farm_id": get_farm_id(),
                "error_type": exc_type.__name__,
                "error_message": str(exc_value),
                "stacktrace": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
            },
        )
    return incident_id


def install_exception_hook(log_dir: Path) -> None:
    def _hook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        incident_id = manejar_excepcion_global(exc_type, exc_value, exc_traceback, log_dir=log_dir)
        sys.stderr.write(f"Error inesperado. ID de incidente: {incident_id}\n")

    sys.excepthook = _hook
