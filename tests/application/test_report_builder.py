from __future__ import annotations

from farmsync.application.diff_classifier import classify
from farmsync.application.identity import resolve_identities
from farmsync.application.report_builder import build_result
from farmsync.domain.models import Bucket, SourceOrigin
from tests.e2e_reconciliation.fakes import T0, make_tree


def _result():
    mobile = [make_tree("T1", a=1), make_tree("T2", a=1), make_tree("T3", a=1)]
    cloud = [
        make_tree("T1", origin=SourceOrigin.CLOUD, a=1),
        make_tree("T2", origin=SourceOrigin.CLOUD, a=5),
        make_tree("T4", origin=SourceOrigin.CLOUD, a=1),
    ]
    resolution = resolve_identities(mobile, cloud)
    return build_result("F1", classify(resolution), resolution, generated_at=T0)


def test_resumen_coherente_con_buckets() -> None:
    result = _result()
    summary = result.summary

    assert summary.trees_to_migrate == len(result.only_in_mobile) == 1
    assert summary.trees_with_conflicts == len(result.conflicts) == 1
    assert summary.trees_only_in_web == len(result.only_in_cloud) == 1
    assert summary.trees_only_in_ios == summary.trees_to_migrate
    assert summary.trees_matched == 1
    assert summary.total_mobile_trees == 3
    assert summary.total_cloud_trees == 3
    assert result.generated_at == T0


def test_bucket_de_cada_id_y_candidatos_a_migrar() -> None:
    result = _result()

    assert result.bucket_of("T1") is Bucket.MATCHED
    assert result.bucket_of("T2") is Bucket.CONFLICT
    assert result.bucket_of("T3") is Bucket.ONLY_IN_MOBILE
    assert result.bucket_of("T4") is Bucket.ONLY_IN_CLOUD
    assert result.bucket_of("T9") is None
    assert [record.id for record in result.migration_candidates()] == ["T3"]
    assert result.needs_reconciliation is True
