from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass, replace

from farmsync.application.field_mapping import CLOUD_MAPPING, MOBILE_MAPPING, FieldMapping
from farmsync.core.errors import FetchFailure
from farmsync.core.observability import log_operational_error
from farmsync.domain.models import SourceOrigin, TreeRecord
from farmsync.domain.ports import TreeRecordSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedRecordSets:
    farm_id: str
    mobile: tuple[TreeRecord, ...]
    cloud: tuple[TreeRecord, ...]


class RecordSourceAdapter:
    """Lee el conjunto completo de árboles de ambas fuentes para una granja.

    Un fallo en cualquiera de las dos lecturas aborta la ejecución con
    ``FetchFailure``: nunca se devuelve una comparación a una sola cara, que
    aparecería como falsos "sólo en la nube".
    """

    def __init__(
        self,
        mobile_source: TreeRecordSource,
        cloud_source: TreeRecordSource,
        *,
        mobile_mapping: FieldMapping = MOBILE_MAPPING,
        cloud_mapping: FieldMapping = CLOUD_MAPPING,
    ) -> None:
        self._mobile_source = mobile_source
        self._cloud_source = cloud_source
        self._mobile_mapping = mobile_mapping
        self._cloud_mapping = cloud_mapping

    def fetch_both(self, farm_id: str) -> FetchedRecordSets:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="farmsync-fetch") as executor:
            mobile_future = executor.submit(copy_context().run, self.fetch_mobile, farm_id)
            cloud_future = executor.submit(copy_context().run, self.fetch_cloud, farm_id)
            # Se esperan ambas para no dejar lecturas huérfanas antes de propagar.
            errors = [future.exception() for future in (mobile_future, cloud_future)]
        for error in errors:
            if error is not None:
                raise error
        return FetchedRecordSets(farm_id=farm_id, mobile=mobile_future.result(), cloud=cloud_future.result())

    def fetch_mobile(self, farm_id: str) -> tuple[TreeRecord, ...]:
        return self._fetch(self._mobile_source, SourceOrigin.MOBILE, self._mobile_mapping, farm_id)

    def fetch_cloud(self, farm_id: str) -> tuple[TreeRecord, ...]:
        return self._fetch(self._cloud_source, SourceOrigin.CLOUD, self._cloud_mapping, farm_id)

    def _fetch(
        self,
        source: TreeRecordSource,
        origin: SourceOrigin,
        mapping: FieldMapping,
        farm_id: str,
    ) -> tuple[TreeRecord, ...]:
        try:
            raw_records = list(source.fetch_trees(farm_id))
        except Exception as exc:  # noqa: BLE001
            failure = FetchFailure(origin.value, farm_id, str(exc) or type(exc).__name__)
            log_operational_error(
                "Fetch failed: fuente no legible, se aborta la reconciliación",
                exc=exc,
                extra={"operation": "fetch_trees", "source": origin.value, "farm_id": farm_id},
            )
            raise failure from exc

        records: list[TreeRecord] = []
        seen: set[str] = set()
        for raw in raw_records:
            if raw.farm_id and raw.farm_id != farm_id:
                raise FetchFailure(origin.value, farm_id, f"registro '{raw.id}' pertenece a la granja '{raw.farm_id}'")
            if raw.id in seen:
                raise FetchFailure(origin.value, farm_id, f"id duplicado '{raw.id}' en la misma fuente")
            seen.add(raw.id)
            normalized = mapping.apply(raw, origin)
            if not normalized.farm_id:
                normalized = replace(normalized, farm_id=farm_id)
            records.append(normalized)
        logger.info("Leídos %s árboles de '%s' para la granja %s", len(records), origin.value, farm_id)
        return tuple(records)
