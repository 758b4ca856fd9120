from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from farmsync.core.errors import IdentityAmbiguity
from farmsync.domain.models import TreeRecord


@dataclass(frozen=True)
class IdentityPair:
    record_id: str
    mobile: TreeRecord
    cloud: TreeRecord


@dataclass(frozen=True)
class IdentityResolution:
    pairs: tuple[IdentityPair, ...]
    mobile_only: tuple[TreeRecord, ...]
    cloud_only: tuple[TreeRecord, ...]

    @property
    def all_ids(self) -> frozenset[str]:
        return frozenset(
            [pair.record_id for pair in self.pairs]
            + [record.id for record in self.mobile_only]
            + [record.id for record in self.cloud_only]
        )


def _index_by_id(records: Iterable[TreeRecord], side: str) -> dict[str, TreeRecord]:
    indexed: dict[str, TreeRecord] = {}
    for record in records:
        if record.id in indexed:
            raise IdentityAmbiguity(f"El id '{record.id}' aparece más de una vez en la fuente '{side}'")
        indexed[record.id] = record
    return indexed


def resolve_identities(mobile: Iterable[TreeRecord], cloud: Iterable[TreeRecord]) -> IdentityResolution:
    """Empareja por id exacto; no hay emparejamiento aproximado por nombre o GPS."""
    mobile_by_id = _index_by_id(mobile, "mobile")
    cloud_by_id = _index_by_id(cloud, "cloud")
    shared = sorted(mobile_by_id.keys() & cloud_by_id.keys())
    return IdentityResolution(
        pairs=tuple(IdentityPair(record_id, mobile_by_id[record_id], cloud_by_id[record_id]) for record_id in shared),
        mobile_only=tuple(mobile_by_id[record_id] for record_id in sorted(mobile_by_id.keys() - cloud_by_id.keys())),
        cloud_only=tuple(cloud_by_id[record_id] for record_id in sorted(cloud_by_id.keys() - mobile_by_id.keys())),
    )
