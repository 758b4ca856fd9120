from __future__ import annotations

import json
from typing import Any, Callable

from farmsync.domain.field_values import to_plain
from farmsync.domain.models import ConflictEntry, MigrationOutcome, ReconciliationResult

ActorResolver = Callable[[str], str]

ACTOR_FIELDS = ("updatedBy", "userId")


def _actor_of(entry: ConflictEntry, resolve_actor: ActorResolver | None) -> dict[str, str]:
    actors: dict[str, str] = {}
    if resolve_actor is None:
        return actors
    for side, record in (("mobile", entry.mobile), ("cloud", entry.cloud)):
        for name in ACTOR_FIELDS:
            value = record.field_value(name)
            raw = to_plain(value)
            if isinstance(raw, str) and raw:
                actors[side] = resolve_actor(raw)
                break
    return actors


def build_report(result: ReconciliationResult, *, resolve_actor: ActorResolver | None = None) -> dict[str, Any]:
    conflicts = []
    for entry in result.conflicts:
        newer = entry.newer_side
        item: dict[str, Any] = {
            "record_id": entry.record_id,
            "mobile_updated_at": entry.mobile.updated_at.isoformat() if entry.mobile.updated_at else None,
            "cloud_updated_at": entry.cloud.updated_at.isoformat() if entry.cloud.updated_at else None,
            "newer_side": newer.value if newer else None,
            "diffs": [
                {"field": diff.field, "cloud": to_plain(diff.current_value), "mobile": to_plain(diff.new_value)}
                for diff in entry.diffs
            ],
        }
        actors = _actor_of(entry, resolve_actor)
        if actors:
            item["edited_by"] = actors
        conflicts.append(item)
    return {
        "farm_id": result.farm_id,
        "generated_at": result.generated_at.isoformat(),
        "needs_reconciliation": result.needs_reconciliation,
        "summary": result.summary.to_dict(),
        "matched": list(result.matched),
        "conflicts": conflicts,
        "only_in_cloud": list(result.only_in_cloud),
        "only_in_mobile": list(result.only_in_mobile),
    }


def render_report_json(result: ReconciliationResult, *, resolve_actor: ActorResolver | None = None) -> str:
    return json.dumps(build_report(result, resolve_actor=resolve_actor), ensure_ascii=False, sort_keys=True)


def render_report_md(result: ReconciliationResult, *, resolve_actor: ActorResolver | None = None) -> str:
    data = build_report(result, resolve_actor=resolve_actor)
    lines = [f"# Reconciliación granja {result.farm_id}", ""]
    lines.extend(f"- **{key}**: {value}" for key, value in data["summary"].items())
    if data["conflicts"]:
        lines.extend(["", "## Conflictos", ""])
        for conflict in data["conflicts"]:
            lines.append(f"### {conflict['record_id']}")
            edited_by = conflict.get("edited_by")
            if edited_by:
                lines.append("Editado por: " + ", ".join(f"{side}={name}" for side, name in sorted(edited_by.items())))
            lines.append("")
            lines.append("| campo | nube | móvil |")
            lines.append("|---|---|---|")
            for diff in conflict["diffs"]:
                lines.append(f"| {diff['field']} | {diff['cloud']} | {diff['mobile']} |")
            lines.append("")
    if data["only_in_mobile"]:
        lines.extend(["", "## Pendientes de migrar", ""])
        lines.extend(f"- {record_id}" for record_id in data["only_in_mobile"])
    if data["only_in_cloud"]:
        lines.extend(["", "## Sólo en la nube", ""])
        lines.extend(f"- {record_id}" for record_id in data["only_in_cloud"])
    return "\n".join(lines).rstrip() + "\n"


def render_outcome_json(outcome: MigrationOutcome) -> str:
    return json.dumps(outcome.to_dict(), ensure_ascii=False, sort_keys=True)
