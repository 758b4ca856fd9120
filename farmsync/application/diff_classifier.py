from __future__ import annotations

from dataclasses import dataclass

from farmsync.application.identity import IdentityResolution
from farmsync.domain.field_values import ComparisonPolicy, values_equal
from farmsync.domain.models import ConflictEntry, FieldDiff, TreeRecord


@dataclass(frozen=True)
class Classification:
    matched: tuple[str, ...]
    conflicts: tuple[ConflictEntry, ...]
    only_in_cloud: tuple[str, ...]
    only_in_mobile: tuple[str, ...]


def diff_fields(mobile: TreeRecord, cloud: TreeRecord, policy: ComparisonPolicy) -> tuple[FieldDiff, ...]:
    """Campos que difieren, con el valor de la nube como actual y el móvil como nuevo.

    ``updated_at`` no participa: es metadato, no un campo del árbol.
    """
    diffs: list[FieldDiff] = []
    for name in sorted(mobile.fields.keys() | cloud.fields.keys()):
        mobile_value = mobile.field_value(name)
        cloud_value = cloud.field_value(name)
        if not values_equal(name, cloud_value, mobile_value, policy):
            diffs.append(FieldDiff(field=name, current_value=cloud_value, new_value=mobile_value))
    return tuple(diffs)


def classify(resolution: IdentityResolution, policy: ComparisonPolicy | None = None) -> Classification:
    active_policy = policy or ComparisonPolicy()
    matched: list[str] = []
    conflicts: list[ConflictEntry] = []
    for pair in resolution.pairs:
        diffs = diff_fields(pair.mobile, pair.cloud, active_policy)
        if diffs:
            conflicts.append(ConflictEntry(record_id=pair.record_id, mobile=pair.mobile, cloud=pair.cloud, diffs=diffs))
        else:
            matched.append(pair.record_id)
    return Classification(
        matched=tuple(matched),
        conflicts=tuple(conflicts),
        only_in_cloud=tuple(record.id for record in resolution.cloud_only),
        only_in_mobile=tuple(record.id for record in resolution.mobile_only),
    )
