from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from farmsync.domain.field_values import (
    BoolValue,
    ComparisonPolicy,
    GeoPointValue,
    NumberValue,
    StringValue,
    TimestampValue,
    coerce_field_value,
    coerce_fields,
    parse_timestamp,
    to_plain,
    values_equal,
)

POLICY = ComparisonPolicy()


def test_numeros_dentro_de_epsilon_son_iguales() -> None:
    assert values_equal("manualFruitCount", NumberValue(12.0), NumberValue(12.0 + 1e-12), POLICY)
    assert not values_equal("manualFruitCount", NumberValue(12.0), NumberValue(12.5), POLICY)


def test_coordenadas_usan_su_propia_tolerancia() -> None:
    assert values_equal("latitude", NumberValue(-33.4489), NumberValue(-33.44890004), POLICY)
    assert not values_equal("latitude", NumberValue(-33.4489), NumberValue(-33.4490), POLICY)
    # Fuera de los campos de coordenadas la misma diferencia es un conflicto.
    assert not values_equal("height", NumberValue(-33.4489), NumberValue(-33.44890004), POLICY)


def test_geopoint_compara_ambos_ejes_con_tolerancia() -> None:
    left = GeoPointValue(-33.4489, -70.6693)
    assert values_equal("location", left, GeoPointValue(-33.44890001, -70.66930001), POLICY)
    assert not values_equal("location", left, GeoPointValue(-33.4489, -70.6700), POLICY)


def test_texto_y_booleanos_exigen_igualdad_exacta() -> None:
    assert values_equal("healthStatus", StringValue("Good"), StringValue("Good"), POLICY)
    assert not values_equal("healthStatus", StringValue("Good"), StringValue("good"), POLICY)
    assert not values_equal("needsAttention", BoolValue(True), BoolValue(False), POLICY)


def test_variantes_distintas_nunca_coinciden() -> None:
    assert not values_equal("manualFruitCount", NumberValue(1), StringValue("1"), POLICY)
    assert not values_equal("needsAttention", BoolValue(True), NumberValue(1), POLICY)


def test_campo_ausente_en_un_lado_es_diferencia() -> None:
    assert values_equal("notes", None, None, POLICY)
    assert not values_equal("notes", StringValue(""), None, POLICY)


def test_timestamps_dentro_de_la_tolerancia() -> None:
    base = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert values_equal("lastCountDate", TimestampValue(base), TimestampValue(base + timedelta(seconds=30)), POLICY)
    assert not values_equal("lastCountDate", TimestampValue(base), TimestampValue(base + timedelta(minutes=5)), POLICY)


def test_timestamp_naive_se_interpreta_como_utc() -> None:
    naive = TimestampValue(datetime(2024, 3, 1, 10, 0))
    assert naive.value.tzinfo == timezone.utc


def test_coerce_distingue_bool_de_int() -> None:
    assert coerce_field_value(True) == BoolValue(True)
    assert coerce_field_value(3) == NumberValue(3)
    assert coerce_field_value("x") == StringValue("x")
    assert coerce_field_value(None) is None


def test_coerce_mapa_con_lat_lng_es_geopoint() -> None:
    assert coerce_field_value({"lat": 1.5, "lng": 2.5}) == GeoPointValue(1.5, 2.5)
    assert coerce_field_value({"latitude": "1", "longitude": "2"}) == GeoPointValue(1.0, 2.0)


def test_coerce_listas_se_guardan_como_json_canonico() -> None:
    assert coerce_field_value(["b", "a"]) == StringValue('["b", "a"]')
    assert coerce_field_value({"z": 1, "a": 2}) == StringValue('{"a": 2, "z": 1}')


def test_coerce_fields_descarta_nulos() -> None:
    assert coerce_fields({"a": 1, "b": None}) == {"a": NumberValue(1)}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-01T10:00:00Z", datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)),
        ("2024-03-01T12:00:00+02:00", datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)),
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        ("no es fecha", None),
        ("", None),
        (True, None),
    ],
)
def test_parse_timestamp(raw, expected) -> None:
    assert parse_timestamp(raw) == expected


def test_to_plain_para_informes() -> None:
    stamp = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert to_plain(GeoPointValue(1.0, 2.0)) == {"latitude": 1.0, "longitude": 2.0}
    assert to_plain(TimestampValue(stamp)) == stamp.isoformat()
    assert to_plain(NumberValue(4)) == 4
    assert to_plain(None) is None


def test_valor_desconocido_lanza_type_error() -> None:
    class _Raro:
        pass

    with pytest.raises(TypeError):
        values_equal("x", _Raro(), _Raro(), POLICY)
