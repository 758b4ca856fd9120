from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from farmsync.domain.field_values import (
    BoolValue,
    FieldValue,
    NumberValue,
    StringValue,
    TimestampValue,
    parse_timestamp,
)
from farmsync.domain.models import SourceOrigin, TreeRecord

TIMESTAMP_FIELDS = frozenset(
    {
        "plantingDate",
        "lastCountDate",
        "fertilizedDate",
        "prunedDate",
        "lastSyncDate",
        "lastAIAnalysisDate",
        "createdAt",
    }
)

# Nombres que usa la app móvil antigua -> nombre canónico.
MOBILE_FIELD_ALIASES: Mapping[str, str] = {
    "currentFruitCount": "manualFruitCount",
    "lastInspectionDate": "lastCountDate",
}

LEGACY_MOBILE_DEFAULTS: Mapping[str, FieldValue] = {
    "manualFruitCount": NumberValue(0),
    "aiFruitCount": NumberValue(0),
    "healthStatus": StringValue("Good"),
    "needsAttention": BoolValue(False),
    "treeStatus": StringValue("Young Tree"),
}


@dataclass(frozen=True)
class FieldMapping:
    """Normaliza un registro leído de una fuente a la forma común."""

    aliases: Mapping[str, str] = field(default_factory=dict)
    defaults: Mapping[str, FieldValue] = field(default_factory=dict)
    timestamp_fields: frozenset[str] = TIMESTAMP_FIELDS

    def apply(self, record: TreeRecord, origin: SourceOrigin) -> TreeRecord:
        fields = dict(record.fields)
        for alias, canonical in self.aliases.items():
            # Con ambos nombres presentes se conservan los dos valores tal cual.
            if alias in fields and canonical not in fields:
                fields[canonical] = fields.pop(alias)
        for name in self.timestamp_fields:
            if name in fields:
                fields[name] = _as_timestamp(fields[name])
        for name, default in self.defaults.items():
            fields.setdefault(name, default)
        return replace(record, fields=fields, source_origin=origin)


def _as_timestamp(value: FieldValue) -> FieldValue:
    if isinstance(value, TimestampValue):
        return value
    if isinstance(value, (StringValue, NumberValue)):
        parsed = parse_timestamp(value.value)
        if parsed is not None:
            return TimestampValue(parsed)
    return value


CLOUD_MAPPING = FieldMapping()
MOBILE_MAPPING = FieldMapping(aliases=MOBILE_FIELD_ALIASES)
LEGACY_MOBILE_MAPPING = FieldMapping(aliases=MOBILE_FIELD_ALIASES, defaults=LEGACY_MOBILE_DEFAULTS)
