from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from farmsync.application.diff_classifier import classify
from farmsync.application.field_mapping import MOBILE_MAPPING, FieldMapping
from farmsync.application.identity import resolve_identities
from farmsync.application.migration import CancellationToken, MigrationExecutor
from farmsync.application.record_sources import RecordSourceAdapter
from farmsync.application.report_builder import build_result
from farmsync.core.errors import OperationCancelledError, ValidationError
from farmsync.core.metrics import medir_tiempo, metrics_registry
from farmsync.core.observability import OperationContext, log_event
from farmsync.domain.field_values import ComparisonPolicy
from farmsync.domain.models import (
    MigrationFailure,
    MigrationOutcome,
    ReconciliationResult,
    ReconciliationStatus,
)
from farmsync.domain.ports import CloudTreeStore, TreeRecordSource

logger = logging.getLogger(__name__)

MISSING_IN_MOBILE_ERROR = "el registro no existe en el almacén móvil"


class ReconciliationService:
    """Fachada de aplicación: ``reconcile`` (sólo lectura) y ``migrate`` (escritura).

    No guarda estado entre llamadas: cada reconciliación se calcula de cero y
    una migración nunca modifica el resultado que la originó.
    """

    def __init__(
        self,
        mobile_source: TreeRecordSource,
        cloud_store: CloudTreeStore,
        *,
        policy: ComparisonPolicy | None = None,
        mobile_mapping: FieldMapping = MOBILE_MAPPING,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._adapter = RecordSourceAdapter(mobile_source, cloud_store, mobile_mapping=mobile_mapping)
        self._executor = MigrationExecutor(cloud_store)
        self._policy = policy or ComparisonPolicy()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @medir_tiempo("latency.reconciliacion_ms")
    def reconcile(
        self,
        farm_id: str,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> ReconciliationResult:
        farm_id = _require_farm_id(farm_id)
        with OperationContext("reconcile", farm_id) as operation:
            log_event(logger, "reconciliation_started", {"farm_id": farm_id}, operation.correlation_id)
            _raise_if_cancelled(cancellation_token)
            fetched = self._adapter.fetch_both(farm_id)
            _raise_if_cancelled(cancellation_token)
            resolution = resolve_identities(fetched.mobile, fetched.cloud)
            classification = classify(resolution, self._policy)
            result = build_result(farm_id, classification, resolution, generated_at=self._clock())
            metrics_registry.incrementar("reconciliaciones_ejecutadas")
            if result.summary.trees_with_conflicts:
                metrics_registry.incrementar("conflictos_detectados", result.summary.trees_with_conflicts)
            log_event(
                logger,
                "reconciliation_completed",
                {"farm_id": farm_id, "summary": result.summary.to_dict()},
                operation.correlation_id,
            )
            return result

    @medir_tiempo("latency.migracion_ms")
    def migrate(
        self,
        farm_id: str,
        ids: Iterable[str],
        *,
        cancellation_token: CancellationToken | None = None,
        max_workers: int = 1,
    ) -> MigrationOutcome:
        farm_id = _require_farm_id(farm_id)
        requested = sorted({str(record_id).strip() for record_id in ids if str(record_id).strip()})
        with OperationContext("migrate", farm_id) as operation:
            log_event(
                logger,
                "migration_started",
                {"farm_id": farm_id, "requested": len(requested)},
                operation.correlation_id,
            )
            if not requested:
                return MigrationOutcome(farm_id=farm_id, attempted=())
            mobile_by_id = {record.id: record for record in self._adapter.fetch_mobile(farm_id)}
            candidates = [mobile_by_id[record_id] for record_id in requested if record_id in mobile_by_id]
            missing = [
                MigrationFailure(record_id, MISSING_IN_MOBILE_ERROR)
                for record_id in requested
                if record_id not in mobile_by_id
            ]
            outcome = self._executor.execute(
                farm_id,
                candidates,
                cancellation_token=cancellation_token,
                max_workers=max_workers,
                extra_failures=missing,
            )
            log_event(
                logger,
                "migration_completed",
                {
                    "farm_id": farm_id,
                    "migrated": len(outcome.migrated),
                    "skipped": len(outcome.skipped),
                    "failed": list(outcome.failed_ids),
                    "cancelled": outcome.cancelled,
                },
                operation.correlation_id,
            )
            return outcome

    def migrate_missing(
        self,
        result: ReconciliationResult,
        *,
        cancellation_token: CancellationToken | None = None,
        max_workers: int = 1,
    ) -> MigrationOutcome:
        return self.migrate(
            result.farm_id,
            result.only_in_mobile,
            cancellation_token=cancellation_token,
            max_workers=max_workers,
        )

    def get_reconciliation_status(self, farm_id: str) -> ReconciliationStatus:
        result = self.reconcile(farm_id)
        return ReconciliationStatus(
            farm_id=result.farm_id,
            needs_reconciliation=result.needs_reconciliation,
            last_checked=result.generated_at,
            summary=result.summary,
        )


def _require_farm_id(farm_id: str) -> str:
    value = str(farm_id or "").strip()
    if not value:
        raise ValidationError("El identificador de granja es obligatorio")
    return value


def _raise_if_cancelled(token: CancellationToken | None) -> None:
    if token is not None and token.is_cancelled():
        logger.info("Operación cancelada por el llamador")
        raise OperationCancelledError("Operación cancelada por el llamador")
