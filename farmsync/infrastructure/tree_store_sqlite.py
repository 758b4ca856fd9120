from __future__ import annotations

import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, TypeVar

from farmsync.core.errors import PersistenceError
from farmsync.domain.field_values import parse_timestamp
from farmsync.domain.models import SourceOrigin, TreeRecord
from farmsync.infrastructure.record_codec import decode_fields, encode_fields

logger = logging.getLogger(__name__)

_LOCKED_RETRY_BACKOFF_SECONDS = (0.05, 0.15, 0.3)
_T = TypeVar("_T")


def _is_locked_operational_error(error: sqlite3.OperationalError) -> bool:
    return "locked" in str(error).lower()


def _run_with_locked_retry(operation: Callable[[], _T], *, context: str) -> _T:
    for attempt, delay_seconds in enumerate(_LOCKED_RETRY_BACKOFF_SECONDS, start=1):
        try:
            return operation()
        except sqlite3.OperationalError as error:
            if not _is_locked_operational_error(error):
                raise
            logger.warning(
                "SQLite locked in %s (attempt=%s/%s); retrying in %.0fms",
                context,
                attempt,
                len(_LOCKED_RETRY_BACKOFF_SECONDS),
                delay_seconds * 1000,
            )
            time.sleep(delay_seconds)

    return operation()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _iso_or_none(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class SQLiteTreeStore:
    """Almacén de árboles sobre la tabla ``trees``.

    Sirve tanto de origen móvil (lectura) como de backend de nube alternativo
    a Google Sheets: ``create_if_absent`` usa ``INSERT OR IGNORE`` y la clave
    primaria ``(farm_id, record_id)`` decide quién escribe primero.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        origin: SourceOrigin = SourceOrigin.MOBILE,
        *,
        device_id: str | None = None,
    ) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row
        self._origin = origin
        self._device_id = device_id
        self._lock = threading.Lock()

    def fetch_trees(self, farm_id: str) -> list[TreeRecord]:
        def _query() -> list[sqlite3.Row]:
            with self._lock:
                cursor = self._connection.execute(
                    """
                    SELECT farm_id, record_id, updated_at, fields_json
                    FROM trees
                    WHERE farm_id = ?
                    ORDER BY record_id
                    """,
                    (farm_id,),
                )
                return cursor.fetchall()

        rows = _run_with_locked_retry(_query, context="trees.fetch_trees")
        return [self._row_to_record(row) for row in rows]

    def get(self, farm_id: str, record_id: str) -> TreeRecord | None:
        def _query() -> sqlite3.Row | None:
            with self._lock:
                cursor = self._connection.execute(
                    """
                    SELECT farm_id, record_id, updated_at, fields_json
                    FROM trees
                    WHERE farm_id = ? AND record_id = ?
                    """,
                    (farm_id, record_id),
                )
                return cursor.fetchone()

        row = _run_with_locked_retry(_query, context="trees.get")
        return self._row_to_record(row) if row is not None else None

    def exists(self, farm_id: str, record_id: str) -> bool:
        def _query() -> bool:
            with self._lock:
                cursor = self._connection.execute(
                    "SELECT 1 FROM trees WHERE farm_id = ? AND record_id = ? LIMIT 1",
                    (farm_id, record_id),
                )
                return cursor.fetchone() is not None

        return _run_with_locked_retry(_query, context="trees.exists")

    def create_if_absent(self, record: TreeRecord) -> bool:
        if not record.farm_id:
            raise PersistenceError(f"El árbol {record.id} no tiene granja asignada")

        def _insert() -> bool:
            with self._lock, self._connection:
                cursor = self._connection.execute(
                    """
                    INSERT OR IGNORE INTO trees (
                        farm_id, record_id, updated_at, fields_json, source_device, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    self._insert_params(record),
                )
                return cursor.rowcount == 1

        created = _run_with_locked_retry(_insert, context="trees.create_if_absent")
        logger.debug("create_if_absent %s/%s -> %s", record.farm_id, record.id, created)
        return created

    def save_many(self, records: Iterable[TreeRecord]) -> int:
        """Inserta o sobrescribe registros. Uso exclusivo de carga de datos y tests."""
        params = [self._insert_params(record) for record in records]
        if not params:
            return 0

        def _upsert() -> int:
            with self._lock, self._connection:
                self._connection.executemany(
                    """
                    INSERT INTO trees (
                        farm_id, record_id, updated_at, fields_json, source_device, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(farm_id, record_id) DO UPDATE SET
                        updated_at = excluded.updated_at,
                        fields_json = excluded.fields_json,
                        source_device = excluded.source_device
                    """,
                    params,
                )
            return len(params)

        return _run_with_locked_retry(_upsert, context="trees.save_many")

    def count(self, farm_id: str) -> int:
        with self._lock:
            row = self._connection.execute("SELECT COUNT(*) FROM trees WHERE farm_id = ?", (farm_id,)).fetchone()
        return int(row[0])

    def _insert_params(self, record: TreeRecord) -> tuple[object, ...]:
        return (
            record.farm_id,
            record.id,
            _iso_or_none(record.updated_at),
            encode_fields(record.fields),
            self._device_id,
            _now_iso(),
        )

    def _row_to_record(self, row: sqlite3.Row) -> TreeRecord:
        return TreeRecord(
            id=row["record_id"],
            farm_id=row["farm_id"],
            fields=decode_fields(row["fields_json"]),
            updated_at=parse_timestamp(row["updated_at"]),
            source_origin=self._origin,
        )


class SQLiteUserDirectory:
    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row

    def display_name(self, uid: str) -> str | None:
        row = self._connection.execute("SELECT display_name FROM users WHERE uid = ?", (uid,)).fetchone()
        if row is None:
            return None
        name = str(row["display_name"] or "").strip()
        return name or None

    def upsert(self, uid: str, display_name: str, email: str | None = None) -> None:
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO users (uid, display_name, email) VALUES (?, ?, ?)
                ON CONFLICT(uid) DO UPDATE SET display_name = excluded.display_name, email = excluded.email
                """,
                (uid, display_name, email),
            )
