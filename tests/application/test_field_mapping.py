from __future__ import annotations

from datetime import datetime, timezone

from farmsync.application.field_mapping import CLOUD_MAPPING, LEGACY_MOBILE_MAPPING, MOBILE_MAPPING
from farmsync.domain.field_values import BoolValue, NumberValue, StringValue, TimestampValue
from farmsync.domain.models import SourceOrigin
from tests.e2e_reconciliation.fakes import make_tree


def test_alias_moviles_se_renombran_al_nombre_canonico() -> None:
    record = make_tree("T1", currentFruitCount=12, lastInspectionDate="2024-03-01T10:00:00Z")

    mapped = MOBILE_MAPPING.apply(record, SourceOrigin.MOBILE)

    assert "currentFruitCount" not in mapped.fields
    assert mapped.fields["manualFruitCount"] == NumberValue(12)
    assert mapped.fields["lastCountDate"] == TimestampValue(datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc))


def test_fechas_en_texto_se_convierten_en_timestamp() -> None:
    record = make_tree("T1", origin=SourceOrigin.CLOUD, plantingDate="2020-01-15T00:00:00+00:00")

    mapped = CLOUD_MAPPING.apply(record, SourceOrigin.CLOUD)

    assert isinstance(mapped.fields["plantingDate"], TimestampValue)
    assert mapped.source_origin is SourceOrigin.CLOUD


def test_fecha_ilegible_se_conserva_como_texto() -> None:
    mapped = CLOUD_MAPPING.apply(make_tree("T1", plantingDate="ayer"), SourceOrigin.CLOUD)
    assert mapped.fields["plantingDate"] == StringValue("ayer")


def test_mapeo_movil_por_defecto_no_inventa_campos() -> None:
    mapped = MOBILE_MAPPING.apply(make_tree("T1", variety="Hass"), SourceOrigin.MOBILE)
    assert dict(mapped.fields) == {"variety": StringValue("Hass")}


def test_mapeo_legacy_rellena_valores_por_defecto_sin_pisar() -> None:
    mapped = LEGACY_MOBILE_MAPPING.apply(make_tree("T1", healthStatus="Poor"), SourceOrigin.MOBILE)

    assert mapped.fields["healthStatus"] == StringValue("Poor")
    assert mapped.fields["manualFruitCount"] == NumberValue(0)
    assert mapped.fields["needsAttention"] == BoolValue(False)


def test_alias_no_pisa_el_valor_canonico_existente() -> None:
    record = make_tree("T1", manualFruitCount=12, currentFruitCount=5)

    mapped = MOBILE_MAPPING.apply(record, SourceOrigin.MOBILE)

    assert mapped.fields["manualFruitCount"] == NumberValue(12)
    assert mapped.fields["currentFruitCount"] == NumberValue(5)
