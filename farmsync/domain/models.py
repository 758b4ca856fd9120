from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from farmsync.core.errors import PartialBatchFailure
from farmsync.domain.field_values import FieldValue, ensure_utc


class SourceOrigin(str, Enum):
    MOBILE = "mobile"
    CLOUD = "cloud"


class Bucket(str, Enum):
    MATCHED = "matched"
    CONFLICT = "conflict"
    ONLY_IN_CLOUD = "only_in_cloud"
    ONLY_IN_MOBILE = "only_in_mobile"


@dataclass(frozen=True)
class TreeRecord:
    id: str
    farm_id: str
    fields: Mapping[str, FieldValue] = field(default_factory=dict)
    updated_at: datetime | None = None
    source_origin: SourceOrigin = SourceOrigin.MOBILE

    def __post_init__(self) -> None:
        record_id = str(self.id or "").strip()
        if not record_id:
            raise ValueError("TreeRecord.id es obligatorio")
        object.__setattr__(self, "id", record_id)
        object.__setattr__(self, "farm_id", str(self.farm_id or "").strip())
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        if self.updated_at is not None:
            object.__setattr__(self, "updated_at", ensure_utc(self.updated_at))
        object.__setattr__(self, "source_origin", SourceOrigin(self.source_origin))

    def field_value(self, name: str) -> FieldValue | None:
        return self.fields.get(name)

    def with_origin(self, origin: SourceOrigin) -> "TreeRecord":
        return replace(self, source_origin=origin)


@dataclass(frozen=True)
class FieldDiff:
    field: str
    current_value: FieldValue | None
    new_value: FieldValue | None


@dataclass(frozen=True)
class ConflictEntry:
    record_id: str
    mobile: TreeRecord
    cloud: TreeRecord
    diffs: tuple[FieldDiff, ...]

    @property
    def fields_in_conflict(self) -> tuple[str, ...]:
        return tuple(diff.field for diff in self.diffs)

    @property
    def newer_side(self) -> SourceOrigin | None:
        """Sólo informativo: nunca se usa para resolver el conflicto."""
        mobile_at = self.mobile.updated_at
        cloud_at = self.cloud.updated_at
        if mobile_at is None or cloud_at is None or mobile_at == cloud_at:
            return None
        return SourceOrigin.MOBILE if mobile_at > cloud_at else SourceOrigin.CLOUD


@dataclass(frozen=True)
class ReconciliationSummary:
    trees_to_migrate: int
    trees_with_conflicts: int
    trees_only_in_web: int
    trees_only_in_ios: int
    trees_matched: int
    total_mobile_trees: int
    total_cloud_trees: int

    @classmethod
    def from_buckets(
        cls,
        *,
        matched: tuple[str, ...],
        conflicts: tuple[ConflictEntry, ...],
        only_in_cloud: tuple[str, ...],
        only_in_mobile: tuple[str, ...],
    ) -> "ReconciliationSummary":
        return cls(
            trees_to_migrate=len(only_in_mobile),
            trees_with_conflicts=len(conflicts),
            trees_only_in_web=len(only_in_cloud),
            trees_only_in_ios=len(only_in_mobile),
            trees_matched=len(matched),
            total_mobile_trees=len(matched) + len(conflicts) + len(only_in_mobile),
            total_cloud_trees=len(matched) + len(conflicts) + len(only_in_cloud),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "trees_to_migrate": self.trees_to_migrate,
            "trees_with_conflicts": self.trees_with_conflicts,
            "trees_only_in_web": self.trees_only_in_web,
            "trees_only_in_ios": self.trees_only_in_ios,
            "trees_matched": self.trees_matched,
            "total_mobile_trees": self.total_mobile_trees,
            "total_cloud_trees": self.total_cloud_trees,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    farm_id: str
    generated_at: datetime
    matched: tuple[str, ...]
    conflicts: tuple[ConflictEntry, ...]
    only_in_cloud: tuple[str, ...]
    only_in_mobile: tuple[str, ...]
    summary: ReconciliationSummary
    mobile_records: Mapping[str, TreeRecord] = field(default_factory=dict)
    cloud_records: Mapping[str, TreeRecord] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mobile_records", MappingProxyType(dict(self.mobile_records)))
        object.__setattr__(self, "cloud_records", MappingProxyType(dict(self.cloud_records)))

    @property
    def conflict_ids(self) -> tuple[str, ...]:
        return tuple(entry.record_id for entry in self.conflicts)

    @property
    def needs_reconciliation(self) -> bool:
        return self.summary.trees_to_migrate > 0 or self.summary.trees_with_conflicts > 0

    def bucket_of(self, record_id: str) -> Bucket | None:
        if record_id in self.matched:
            return Bucket.MATCHED
        if record_id in self.conflict_ids:
            return Bucket.CONFLICT
        if record_id in self.only_in_cloud:
            return Bucket.ONLY_IN_CLOUD
        if record_id in self.only_in_mobile:
            return Bucket.ONLY_IN_MOBILE
        return None

    def migration_candidates(self) -> tuple[TreeRecord, ...]:
        return tuple(self.mobile_records[record_id] for record_id in self.only_in_mobile)


@dataclass(frozen=True)
class MigrationFailure:
    record_id: str
    error: str


@dataclass(frozen=True)
class MigrationOutcome:
    farm_id: str
    attempted: tuple[str, ...]
    migrated: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[MigrationFailure, ...] = ()
    pending: tuple[str, ...] = ()
    cancelled: bool = False

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(failure.record_id for failure in self.failed)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "farm_id": self.farm_id,
            "attempted": list(self.attempted),
            "migrated": list(self.migrated),
            "skipped": list(self.skipped),
            "failed": [{"record_id": item.record_id, "error": item.error} for item in self.failed],
            "pending": list(self.pending),
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class ReconciliationStatus:
    farm_id: str
    needs_reconciliation: bool
    last_checked: datetime
    summary: ReconciliationSummary


@dataclass(frozen=True)
class SyncConfig:
    spreadsheet_id: str
    credentials_path: str
    mobile_db_path: str
    device_id: str
    cloud_backend: str = "sheets"
    cloud_db_path: str = ""
    coordinate_tolerance: float | None = None
    timestamp_tolerance_seconds: float | None = None
