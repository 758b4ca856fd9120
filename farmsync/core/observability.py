from __future__ import annotations

import logging
import uuid
from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_FARM_ID: ContextVar[str | None] = ContextVar("farm_id", default=None)
_OPERATION: ContextVar[str | None] = ContextVar("operation", default=None)

operational_logger = logging.getLogger("farmsync.operational_error")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def get_farm_id() -> str | None:
    return _FARM_ID.get()


def get_operation() -> str | None:
    return _OPERATION.get()


class OperationContext(AbstractContextManager["OperationContext"]):
    """Etiqueta los logs del bloque con correlation_id, operación y granja.

    Un ``OperationContext`` anidado (``migrate_missing`` -> ``migrate``) hereda
    el correlation_id del exterior para que ambas operaciones queden enlazadas.
    """

    def __init__(self, operation_name: str, farm_id: str | None = None) -> None:
        self.operation_name = operation_name
        self.farm_id = farm_id or get_farm_id()
        self.correlation_id = get_correlation_id() or generate_correlation_id()
        self._tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []

    def __enter__(self) -> "OperationContext":
        for var, value in (
            (_CORRELATION_ID, self.correlation_id),
            (_FARM_ID, self.farm_id),
            (_OPERATION, self.operation_name),
        ):
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return None


def log_event(logger: logging.Logger, event_name: str, payload: dict[str, Any], correlation_id: str) -> dict[str, Any]:
    event = {
        "event": event_name,
        "operation": get_operation(),
        "farm_id": payload.get("farm_id") or get_farm_id(),
        "correlation_id": correlation_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info(event_name, extra={"correlation_id": correlation_id, "extra": event})
    return event


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    extra: dict[str, Any] | None = None,
) -> None:
    """Errores que abortan una operación: van al log de errores operativos."""
    metadata: dict[str, Any] = {"operation": get_operation(), "farm_id": get_farm_id()}
    metadata.update(extra or {})
    metadata["correlation_id"] = metadata.get("correlation_id") or get_correlation_id()
    operational_logger.error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"correlation_id": metadata["correlation_id"], "extra": metadata},
    )
