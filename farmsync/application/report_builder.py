from __future__ import annotations

from datetime import datetime, timezone

from farmsync.application.diff_classifier import Classification
from farmsync.application.identity import IdentityResolution
from farmsync.domain.models import ReconciliationResult, ReconciliationSummary


def build_result(
    farm_id: str,
    classification: Classification,
    resolution: IdentityResolution,
    *,
    generated_at: datetime | None = None,
) -> ReconciliationResult:
    summary = ReconciliationSummary.from_buckets(
        matched=classification.matched,
        conflicts=classification.conflicts,
        only_in_cloud=classification.only_in_cloud,
        only_in_mobile=classification.only_in_mobile,
    )
    mobile_records = {pair.record_id: pair.mobile for pair in resolution.pairs}
    mobile_records.update({record.id: record for record in resolution.mobile_only})
    cloud_records = {pair.record_id: pair.cloud for pair in resolution.pairs}
    cloud_records.update({record.id: record for record in resolution.cloud_only})
    return ReconciliationResult(
        farm_id=farm_id,
        generated_at=generated_at or datetime.now(timezone.utc),
        matched=classification.matched,
        conflicts=classification.conflicts,
        only_in_cloud=classification.only_in_cloud,
        only_in_mobile=classification.only_in_mobile,
        summary=summary,
        mobile_records=mobile_records,
        cloud_records=cloud_records,
    )
