from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from farmsync.core.errors import MalformedRecordError
from farmsync.domain.field_values import (
    BoolValue,
    FieldValue,
    GeoPointValue,
    NumberValue,
    StringValue,
    TimestampValue,
    coerce_field_value,
    parse_timestamp,
)


def encode_value(value: FieldValue) -> dict[str, Any]:
    if isinstance(value, StringValue):
        return {"type": "string", "value": value.value}
    if isinstance(value, BoolValue):
        return {"type": "bool", "value": value.value}
    if isinstance(value, NumberValue):
        return {"type": "number", "value": value.value}
    if isinstance(value, TimestampValue):
        return {"type": "timestamp", "value": value.value.isoformat()}
    if isinstance(value, GeoPointValue):
        return {"type": "geopoint", "latitude": value.latitude, "longitude": value.longitude}
    raise TypeError(f"Tipo de valor no soportado: {type(value).__name__}")


def decode_value(raw: Any) -> FieldValue | None:
    if not isinstance(raw, Mapping) or "type" not in raw:
        # Documentos editados a mano: sin etiqueta se infiere el tipo.
        return coerce_field_value(raw)
    kind = raw["type"]
    try:
        if kind == "string":
            return StringValue(str(raw["value"]))
        if kind == "bool":
            return BoolValue(bool(raw["value"]))
        if kind == "number":
            number = raw["value"]
            if isinstance(number, bool) or not isinstance(number, (int, float)):
                number = float(number)
            return NumberValue(number)
        if kind == "timestamp":
            parsed = parse_timestamp(raw["value"])
            if parsed is None:
                raise MalformedRecordError(f"Timestamp inválido: {raw['value']!r}")
            return TimestampValue(parsed)
        if kind == "geopoint":
            return GeoPointValue(float(raw["latitude"]), float(raw["longitude"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedRecordError(f"Valor etiquetado inválido: {raw!r}") from exc
    return coerce_field_value(dict(raw))


def encode_fields(fields: Mapping[str, FieldValue]) -> str:
    payload = {name: encode_value(value) for name, value in sorted(fields.items())}
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def decode_fields(text: str | None) -> dict[str, FieldValue]:
    if not text or not str(text).strip():
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(f"fields_json no es JSON válido: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedRecordError("fields_json debe ser un objeto JSON")
    fields: dict[str, FieldValue] = {}
    for name, raw in payload.items():
        value = decode_value(raw)
        if value is not None:
            fields[str(name)] = value
    return fields
