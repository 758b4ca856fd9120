from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from farmsync.core.errors import MalformedRecordError
from farmsync.domain.field_values import BoolValue, GeoPointValue, NumberValue, StringValue, TimestampValue
from farmsync.infrastructure.record_codec import decode_fields, decode_value, encode_fields, encode_value


def test_encode_value_etiqueta_cada_variante() -> None:
    stamp = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert encode_value(StringValue("Hass")) == {"type": "string", "value": "Hass"}
    assert encode_value(BoolValue(False)) == {"type": "bool", "value": False}
    assert encode_value(TimestampValue(stamp)) == {"type": "timestamp", "value": "2024-03-01T10:00:00+00:00"}
    assert encode_value(GeoPointValue(1.0, 2.0)) == {"type": "geopoint", "latitude": 1.0, "longitude": 2.0}


def test_fields_json_es_estable() -> None:
    fields = {"b": NumberValue(1), "a": StringValue("x")}
    assert encode_fields(fields) == encode_fields(dict(reversed(list(fields.items()))))


def test_decode_sin_etiqueta_infiere_tipo() -> None:
    decoded = decode_fields(json.dumps({"count": 3, "ok": True, "loc": {"lat": 1, "lng": 2}}))
    assert decoded == {"count": NumberValue(3), "ok": BoolValue(True), "loc": GeoPointValue(1.0, 2.0)}


def test_decode_descarta_nulos_y_texto_vacio() -> None:
    assert decode_fields(json.dumps({"notes": None})) == {}
    assert decode_fields("") == {}
    assert decode_fields(None) == {}


def test_decode_numero_en_texto() -> None:
    assert decode_value({"type": "number", "value": "2.5"}) == NumberValue(2.5)


@pytest.mark.parametrize(
    "payload",
    [
        "{no es json",
        "[1, 2]",
        json.dumps({"when": {"type": "timestamp", "value": "ayer"}}),
        json.dumps({"loc": {"type": "geopoint", "latitude": 1}}),
    ],
)
def test_decode_malformado_lanza_error(payload: str) -> None:
    with pytest.raises(MalformedRecordError):
        decode_fields(payload)
