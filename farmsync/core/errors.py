from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from farmsync.domain.models import MigrationOutcome


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class ExternalServiceError(InfraError):
    pass


class TransientExternalError(ExternalServiceError):
    pass


class MalformedRecordError(InfraError):
    pass


class FetchFailure(InfraError):
    """Una de las dos fuentes no pudo leerse completa: la ejecución aborta."""

    def __init__(self, source: str, farm_id: str, reason: str) -> None:
        super().__init__(f"No se pudo leer la fuente '{source}' para la granja '{farm_id}': {reason}")
        self.source = source
        self.farm_id = farm_id
        self.reason = reason


class PartialBatchFailure(BusinessError):
    def __init__(self, outcome: "MigrationOutcome") -> None:
        failed = len(outcome.failed)
        super().__init__(f"Migración parcial en '{outcome.farm_id}': {failed} registro(s) fallidos")
        self.outcome = outcome


class IdentityAmbiguity(BusinessError):
    """Reservado para resolución de identidad no exacta."""


class OperationCancelledError(AppError):
    pass
