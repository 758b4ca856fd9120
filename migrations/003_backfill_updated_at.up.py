from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone


def _as_iso(raw: object) -> str | None:
    if isinstance(raw, dict):
        raw = raw.get("value")
    if isinstance(raw, bool) or raw in (None, ""):
        return None
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc).isoformat()
    text = str(raw).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def run(connection: sqlite3.Connection) -> None:
    """Las exportaciones antiguas del móvil guardaban updatedAt dentro de los campos."""
    cursor = connection.cursor()
    cursor.execute("SELECT farm_id, record_id, fields_json FROM trees WHERE updated_at IS NULL")
    updates: list[tuple[str, str, str, str]] = []
    for row in cursor.fetchall():
        try:
            fields = json.loads(row[2] or "{}")
        except json.JSONDecodeError:
            continue
        if not isinstance(fields, dict) or "updatedAt" not in fields:
            continue
        updated_at = _as_iso(fields.pop("updatedAt"))
        if updated_at is None:
            continue
        updates.append((updated_at, json.dumps(fields, ensure_ascii=False, sort_keys=True), row[0], row[1]))
    if updates:
        cursor.executemany(
            "UPDATE trees SET updated_at = ?, fields_json = ? WHERE farm_id = ? AND record_id = ?",
            updates,
        )
