from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from farmsync.core.metrics import metrics_registry
from farmsync.domain.models import MigrationFailure, MigrationOutcome, SourceOrigin, TreeRecord
from farmsync.domain.ports import CloudTreeStore

logger = logging.getLogger(__name__)


class CancellationToken:
    """Token cooperativo para cancelar entre registros."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class RecordStatus(str, Enum):
    MIGRATED = "migrated"
    SKIPPED = "skipped"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class RecordResult:
    record_id: str
    status: RecordStatus
    error: str | None = None


class CloudExistenceGuard:
    """La existencia en la nube es el testigo de idempotencia; no hay log aparte."""

    def __init__(self, cloud_store: CloudTreeStore) -> None:
        self._cloud_store = cloud_store

    def already_present(self, record: TreeRecord) -> bool:
        return self._cloud_store.exists(record.farm_id, record.id)


class MigrationExecutor:
    def __init__(self, cloud_store: CloudTreeStore, *, guard: CloudExistenceGuard | None = None) -> None:
        self._cloud_store = cloud_store
        self._guard = guard or CloudExistenceGuard(cloud_store)

    def execute(
        self,
        farm_id: str,
        candidates: Iterable[TreeRecord],
        *,
        cancellation_token: CancellationToken | None = None,
        max_workers: int = 1,
        extra_failures: Iterable[MigrationFailure] = (),
    ) -> MigrationOutcome:
        unique: dict[str, TreeRecord] = {}
        for record in candidates:
            unique.setdefault(record.id, record)
        prefailed = {failure.record_id: failure for failure in extra_failures if failure.record_id not in unique}
        attempted = tuple(unique) + tuple(prefailed)

        if max_workers > 1 and len(unique) > 1:
            results = self._run_parallel(farm_id, list(unique.values()), cancellation_token, max_workers)
        else:
            results = self._run_sequential(farm_id, list(unique.values()), cancellation_token)
        by_id = {result.record_id: result for result in results}
        for record_id, failure in prefailed.items():
            by_id[record_id] = RecordResult(record_id, RecordStatus.FAILED, failure.error)

        pending = self._ids_with(attempted, by_id, RecordStatus.PENDING)
        outcome = MigrationOutcome(
            farm_id=farm_id,
            attempted=attempted,
            migrated=self._ids_with(attempted, by_id, RecordStatus.MIGRATED),
            skipped=self._ids_with(attempted, by_id, RecordStatus.SKIPPED),
            failed=tuple(
                MigrationFailure(record_id, by_id[record_id].error or "error desconocido")
                for record_id in attempted
                if by_id[record_id].status is RecordStatus.FAILED
            ),
            pending=pending,
            cancelled=bool(pending) or (cancellation_token is not None and cancellation_token.is_cancelled()),
        )
        metrics_registry.incrementar("arboles_migrados", len(outcome.migrated))
        metrics_registry.incrementar("arboles_omitidos", len(outcome.skipped))
        metrics_registry.incrementar("arboles_fallidos", len(outcome.failed))
        logger.info(
            "Migración granja %s: intentados=%s migrados=%s omitidos=%s fallidos=%s pendientes=%s",
            farm_id,
            len(outcome.attempted),
            len(outcome.migrated),
            len(outcome.skipped),
            len(outcome.failed),
            len(outcome.pending),
        )
        return outcome

    def _run_sequential(
        self,
        farm_id: str,
        records: list[TreeRecord],
        token: CancellationToken | None,
    ) -> list[RecordResult]:
        results: list[RecordResult] = []
        for index, record in enumerate(records):
            if token is not None and token.is_cancelled():
                logger.info("Migración cancelada con %s registro(s) sin procesar", len(records) - index)
                results.extend(RecordResult(pending.id, RecordStatus.PENDING) for pending in records[index:])
                break
            results.append(self.migrate_one(farm_id, record))
        return results

    def _run_parallel(
        self,
        farm_id: str,
        records: list[TreeRecord],
        token: CancellationToken | None,
        max_workers: int,
    ) -> list[RecordResult]:
        def _task(record: TreeRecord) -> RecordResult:
            if token is not None and token.is_cancelled():
                return RecordResult(record.id, RecordStatus.PENDING)
            return self.migrate_one(farm_id, record)

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="farmsync-migrate") as executor:
            futures = [executor.submit(copy_context().run, _task, record) for record in records]
            return [future.result() for future in futures]

    def migrate_one(self, farm_id: str, record: TreeRecord) -> RecordResult:
        if record.farm_id and record.farm_id != farm_id:
            return RecordResult(record.id, RecordStatus.FAILED, f"el registro pertenece a la granja '{record.farm_id}'")
        # Copia literal del registro móvil: mismos campos, mismo id y mismo updated_at.
        to_write = TreeRecord(
            id=record.id,
            farm_id=farm_id,
            fields=record.fields,
            updated_at=record.updated_at,
            source_origin=SourceOrigin.MOBILE,
        )
        try:
            if self._guard.already_present(to_write):
                logger.info("Árbol %s ya existe en la nube; se omite", record.id)
                return RecordResult(record.id, RecordStatus.SKIPPED)
            if not self._cloud_store.create_if_absent(to_write):
                logger.info("Árbol %s creado por otra migración concurrente; se omite", record.id)
                return RecordResult(record.id, RecordStatus.SKIPPED)
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"
            logger.warning(
                "No se pudo migrar el árbol %s: %s",
                record.id,
                error,
                extra={"extra": {"farm_id": farm_id, "record_id": record.id}},
            )
            return RecordResult(record.id, RecordStatus.FAILED, error)
        return RecordResult(record.id, RecordStatus.MIGRATED)

    @staticmethod
    def _ids_with(
        attempted: tuple[str, ...],
        by_id: dict[str, RecordResult],
        status: RecordStatus,
    ) -> tuple[str, ...]:
        return tuple(record_id for record_id in attempted if by_id[record_id].status is status)
