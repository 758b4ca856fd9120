from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from farmsync.core.observability import get_correlation_id, get_farm_id, get_operation

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
MAIN_LOG_NAME = "farmsync.log"
ERROR_OPERATIVO_LOG_NAME = "error_operativo.log"
CRASH_LOG_NAME = "crash.log"


class JsonLinesFormatter(logging.Formatter):
    """Serializa cada registro como una línea JSON.

    El contexto de la operación (correlation_id, operación, granja) se toma del
    propio registro si viene en ``extra`` y, si no, de los ContextVar activos.
    """

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "modulo": record.module,
            "funcion": record.funcName,
            "mensaje": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        for key, value in (
            ("operation", get_operation()),
            ("farm_id", get_farm_id()),
            ("incident_id", getattr(record, "incident_id", None)),
        ):
            if value:
                event[key] = value

        payload_extra = getattr(record, "extra", None)
        if isinstance(payload_extra, dict) and payload_extra:
            event["extra"] = payload_extra
        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


class _ExactLevelFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self._level


@dataclass(frozen=True)
class LogFileSpec:
    filename: str
    min_level: int
    exact_level: bool = False


LOG_FILES: tuple[LogFileSpec, ...] = (
    LogFileSpec(MAIN_LOG_NAME, logging.NOTSET),
    LogFileSpec(ERROR_OPERATIVO_LOG_NAME, logging.ERROR, exact_level=True),
    LogFileSpec(CRASH_LOG_NAME, logging.CRITICAL),
)


def _max_bytes_from_env(default: int) -> int:
    raw_value = os.getenv("FARMSYNC_LOG_MAX_BYTES", "").strip()
    return int(raw_value) if raw_value.isdigit() else default


def _handler_for(spec: LogFileSpec, log_dir: Path, *, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = RotatingFileHandler(
        log_dir / spec.filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(max(level, spec.min_level))
    handler.setFormatter(JsonLinesFormatter())
    if spec.exact_level:
        handler.addFilter(_ExactLevelFilter(spec.min_level))
    return handler


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
) -> None:
    """Sustituye los handlers del root logger por los ficheros JSONL de ``LOG_FILES``.

    ``farmsync.log`` recibe todo; ``error_operativo.log`` sólo ERROR (los
    fallos de fuente y de escritura) y ``crash.log`` sólo CRITICAL.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    resolved_max_bytes = max_bytes or _max_bytes_from_env(DEFAULT_LOG_MAX_BYTES)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    for spec in LOG_FILES:
        root_logger.addHandler(
            _handler_for(spec, log_dir, level=level, max_bytes=resolved_max_bytes, backup_count=backup_count)
        )
