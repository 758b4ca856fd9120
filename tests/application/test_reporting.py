from __future__ import annotations

import json

from farmsync.application.diff_classifier import classify
from farmsync.application.identity import resolve_identities
from farmsync.application.report_builder import build_result
from farmsync.application.reporting import build_report, render_outcome_json, render_report_json, render_report_md
from farmsync.domain.models import MigrationFailure, MigrationOutcome, SourceOrigin
from tests.e2e_reconciliation.fakes import T0, make_tree


def _conflict_result():
    mobile = [make_tree("T4", manualFruitCount=15, updatedBy="u1"), make_tree("T2", variety="Hass")]
    cloud = [make_tree("T4", origin=SourceOrigin.CLOUD, updated_at=T0.replace(day=2), manualFruitCount=12)]
    resolution = resolve_identities(mobile, cloud)
    return build_result("F1", classify(resolution), resolution, generated_at=T0)


def test_build_report_incluye_diffs_en_valores_planos() -> None:
    report = build_report(_conflict_result())

    conflict = report["conflicts"][0]
    assert conflict["record_id"] == "T4"
    assert conflict["newer_side"] == "cloud"
    assert {"field": "manualFruitCount", "cloud": 12, "mobile": 15} in conflict["diffs"]
    assert report["only_in_mobile"] == ["T2"]
    assert report["summary"]["trees_to_migrate"] == 1


def test_build_report_resuelve_quien_edito() -> None:
    report = build_report(_conflict_result(), resolve_actor=lambda uid: {"u1": "Ana"}.get(uid, uid))
    assert report["conflicts"][0]["edited_by"] == {"mobile": "Ana"}


def test_render_json_es_json_valido() -> None:
    payload = json.loads(render_report_json(_conflict_result()))
    assert payload["farm_id"] == "F1"
    assert payload["needs_reconciliation"] is True


def test_render_md_lista_conflictos_y_pendientes() -> None:
    text = render_report_md(_conflict_result())

    assert "## Conflictos" in text
    assert "| manualFruitCount | 12 | 15 |" in text
    assert "## Pendientes de migrar" in text
    assert "- T2" in text


def test_render_outcome_json() -> None:
    outcome = MigrationOutcome(
        farm_id="F1",
        attempted=("T1", "T2"),
        migrated=("T1",),
        failed=(MigrationFailure("T2", "boom"),),
    )
    payload = json.loads(render_outcome_json(outcome))
    assert payload["migrated"] == ["T1"]
    assert payload["failed"][0]["record_id"] == "T2"
