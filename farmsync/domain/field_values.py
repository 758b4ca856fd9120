from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Union


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class TimestampValue:
    value: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", ensure_utc(self.value))


@dataclass(frozen=True)
class GeoPointValue:
    latitude: float
    longitude: float


FieldValue = Union[StringValue, NumberValue, BoolValue, TimestampValue, GeoPointValue]

DEFAULT_NUMBER_TOLERANCE = 1e-9
DEFAULT_COORDINATE_TOLERANCE = 1e-7
DEFAULT_TIMESTAMP_TOLERANCE = timedelta(seconds=60)
DEFAULT_COORDINATE_FIELDS = frozenset({"latitude", "longitude"})


@dataclass(frozen=True)
class ComparisonPolicy:
    """Tolerancias del comparador de campos.

    Los números y coordenadas se comparan con epsilon para no reportar como
    conflicto el ruido de serialización; texto y booleanos exigen igualdad
    exacta.
    """

    number_tolerance: float = DEFAULT_NUMBER_TOLERANCE
    coordinate_tolerance: float = DEFAULT_COORDINATE_TOLERANCE
    timestamp_tolerance: timedelta = DEFAULT_TIMESTAMP_TOLERANCE
    coordinate_fields: frozenset[str] = field(default=DEFAULT_COORDINATE_FIELDS)

    def number_tolerance_for(self, field_name: str) -> float:
        if field_name in self.coordinate_fields:
            return self.coordinate_tolerance
        return self.number_tolerance


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _within(left: float, right: float, tolerance: float) -> bool:
    if math.isnan(left) or math.isnan(right):
        return math.isnan(left) and math.isnan(right)
    return abs(left - right) <= tolerance


def values_equal(
    field_name: str,
    left: FieldValue | None,
    right: FieldValue | None,
    policy: ComparisonPolicy,
) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if type(left) is not type(right):
        return False
    if isinstance(left, StringValue):
        return left.value == right.value
    if isinstance(left, BoolValue):
        return left.value is right.value
    if isinstance(left, NumberValue):
        return _within(float(left.value), float(right.value), policy.number_tolerance_for(field_name))
    if isinstance(left, GeoPointValue):
        return _within(left.latitude, right.latitude, policy.coordinate_tolerance) and _within(
            left.longitude, right.longitude, policy.coordinate_tolerance
        )
    if isinstance(left, TimestampValue):
        return abs(left.value - right.value) <= policy.timestamp_tolerance
    raise TypeError(f"Tipo de valor no soportado en '{field_name}': {type(left).__name__}")


def _geo_from_mapping(raw: Mapping[str, Any]) -> GeoPointValue | None:
    for lat_key, lng_key in (("latitude", "longitude"), ("lat", "lng"), ("_latitude", "_longitude")):
        if lat_key in raw and lng_key in raw:
            try:
                return GeoPointValue(float(raw[lat_key]), float(raw[lng_key]))
            except (TypeError, ValueError):
                return None
    return None


def coerce_field_value(raw: Any) -> FieldValue | None:
    """Convierte un valor suelto (JSON, fila de hoja, documento) a su variante.

    ``None`` significa campo ausente y el llamador debe descartarlo.
    """
    if raw is None:
        return None
    if isinstance(raw, (StringValue, NumberValue, BoolValue, TimestampValue, GeoPointValue)):
        return raw
    # bool antes que int: bool es subclase de int.
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(raw)
    if isinstance(raw, datetime):
        return TimestampValue(raw)
    if isinstance(raw, str):
        return StringValue(raw)
    if isinstance(raw, Mapping):
        geo = _geo_from_mapping(raw)
        if geo is not None:
            return geo
    return StringValue(json.dumps(raw, ensure_ascii=False, sort_keys=True, default=str))


def coerce_fields(raw_fields: Mapping[str, Any]) -> dict[str, FieldValue]:
    fields: dict[str, FieldValue] = {}
    for name, raw in raw_fields.items():
        value = coerce_field_value(raw)
        if value is not None:
            fields[str(name)] = value
    return fields


def parse_timestamp(raw: Any) -> datetime | None:
    """Acepta datetime, ISO-8601 (con ``Z``) o epoch en segundos."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    text = str(raw).strip()
    if not text:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def to_plain(value: FieldValue | None) -> Any:
    """Representación legible para informes (no es el formato de almacenamiento)."""
    if value is None:
        return None
    if isinstance(value, GeoPointValue):
        return {"latitude": value.latitude, "longitude": value.longitude}
    if isinstance(value, TimestampValue):
        return value.value.isoformat()
    return value.value
