from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone

from farmsync.domain.field_values import parse_timestamp
from farmsync.domain.models import SourceOrigin, TreeRecord
from farmsync.domain.ports import SheetsClientPort
from farmsync.infrastructure.record_codec import decode_fields, encode_fields
from farmsync.infrastructure.sheets_repository import (
    TREES_SHEET,
    USERS_HEADERS,
    USERS_SHEET,
    rows_with_index,
)

logger = logging.getLogger(__name__)

_DELETE_ATTEMPTS = 3
_REQUIRED_TREE_COLUMNS = ("id", "farm_id", "updated_at", "fields_json", "write_token")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SheetsTreeStore:
    """Almacén de árboles en la nube sobre la hoja ``trees``.

    Sheets no ofrece escrituras condicionales, así que ``create_if_absent``
    añade la fila con un ``write_token`` propio y relee la hoja: gana la
    primera fila para ``(farm_id, id)``. Si la primera no es la nuestra, la
    fila añadida se borra y se informa que el registro ya existía.
    """

    def __init__(
        self,
        client: SheetsClientPort,
        *,
        device_id: str | None = None,
        token_factory=None,
    ) -> None:
        self._client = client
        self._device_id = device_id or ""
        self._token_factory = token_factory or (lambda: str(uuid.uuid4()))
        self._lock = threading.RLock()

    def fetch_trees(self, farm_id: str) -> list[TreeRecord]:
        with self._lock:
            self._client.invalidate(TREES_SHEET)
            rows = self._rows()
        records: list[TreeRecord] = []
        seen: set[str] = set()
        for row_number, row in rows:
            if row["farm_id"] != farm_id or not row["id"]:
                continue
            if row["id"] in seen:
                logger.warning(
                    "Fila %s duplica el árbol %s/%s; se conserva la primera",
                    row_number,
                    farm_id,
                    row["id"],
                )
                continue
            seen.add(row["id"])
            records.append(self._row_to_record(row))
        return records

    def exists(self, farm_id: str, record_id: str) -> bool:
        with self._lock:
            return self._first_row_for(self._rows(), farm_id, record_id) is not None

    def create_if_absent(self, record: TreeRecord) -> bool:
        with self._lock:
            self._client.invalidate(TREES_SHEET)
            values = self._client.read_all_values(TREES_SHEET)
            rows = rows_with_index(values, _REQUIRED_TREE_COLUMNS, sheet_name=TREES_SHEET)
            if self._first_row_for(rows, record.farm_id, record.id) is not None:
                return False
            token = self._token_factory()
            self._client.append_rows(TREES_SHEET, [self._record_to_row(record, token, values[0])])
            self._client.invalidate(TREES_SHEET)
            winner = self._first_row_for(self._rows(), record.farm_id, record.id)
            if winner is not None and winner[1].get("write_token") == token:
                return True
            self._delete_own_row(record, token)
            return False

    def _delete_own_row(self, record: TreeRecord, token: str) -> None:
        """Borra la fila con ``token`` localizándola en una lectura recién hecha.

        Otro proceso puede borrar filas entre lecturas y desplazar los números,
        así que la fila se busca de nuevo por token antes de cada intento.
        """
        for _ in range(_DELETE_ATTEMPTS):
            self._client.invalidate(TREES_SHEET)
            own_row = self._row_number_with_token(token)
            if own_row is None:
                return
            logger.info(
                "Árbol %s/%s escrito antes por otro proceso; se elimina la fila %s",
                record.farm_id,
                record.id,
                own_row,
            )
            self._client.delete_row(TREES_SHEET, own_row)
        self._client.invalidate(TREES_SHEET)
        if self._row_number_with_token(token) is not None:
            logger.warning("No se pudo retirar la fila duplicada de %s/%s (token %s)", record.farm_id, record.id, token)

    def _row_number_with_token(self, token: str) -> int | None:
        return next((number for number, row in self._rows() if row.get("write_token") == token), None)

    def _rows(self) -> list[tuple[int, dict[str, str]]]:
        values = self._client.read_all_values(TREES_SHEET)
        return rows_with_index(values, _REQUIRED_TREE_COLUMNS, sheet_name=TREES_SHEET)

    @staticmethod
    def _first_row_for(
        rows: list[tuple[int, dict[str, str]]],
        farm_id: str,
        record_id: str,
    ) -> tuple[int, dict[str, str]] | None:
        for row_number, row in rows:
            if row["farm_id"] == farm_id and row["id"] == record_id:
                return row_number, row
        return None

    def _record_to_row(self, record: TreeRecord, token: str, header: list[str]) -> list[str]:
        updated_at = record.updated_at.isoformat().replace("+00:00", "Z") if record.updated_at else ""
        values = {
            "id": record.id,
            "farm_id": record.farm_id,
            "updated_at": updated_at,
            "fields_json": encode_fields(record.fields),
            "source_device": self._device_id,
            "write_token": token,
            "created_at": _now_iso(),
        }
        return [values.get(str(column).strip(), "") for column in header]

    @staticmethod
    def _row_to_record(row: dict[str, str]) -> TreeRecord:
        return TreeRecord(
            id=row["id"],
            farm_id=row["farm_id"],
            fields=decode_fields(row["fields_json"]),
            updated_at=parse_timestamp(row["updated_at"]),
            source_origin=SourceOrigin.CLOUD,
        )


class SheetsUserDirectory:
    def __init__(self, client: SheetsClientPort) -> None:
        self._client = client

    def display_name(self, uid: str) -> str | None:
        values = self._client.read_all_values(USERS_SHEET)
        for _, row in rows_with_index(values, USERS_HEADERS[:2], sheet_name=USERS_SHEET):
            if row["uid"] == uid:
                return row["display_name"] or None
        return None
