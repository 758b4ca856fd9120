from __future__ import annotations

import logging
from typing import Iterable

import gspread

from farmsync.domain.sheets_errors import SheetsSchemaError

logger = logging.getLogger(__name__)

TREES_SHEET = "trees"
USERS_SHEET = "users"

TREES_HEADERS = ["id", "farm_id", "updated_at", "fields_json", "source_device", "write_token", "created_at"]
USERS_HEADERS = ["uid", "display_name", "email"]

SHEETS_SCHEMA: dict[str, list[str]] = {
    TREES_SHEET: TREES_HEADERS,
    USERS_SHEET: USERS_HEADERS,
}


class SheetsRepository:
    """Crea las hojas y cabeceras que necesita el almacén de árboles."""

    def ensure_schema(
        self,
        spreadsheet: gspread.Spreadsheet,
        schema: dict[str, list[str]] | None = None,
    ) -> list[str]:
        actions: list[str] = []
        for sheet_name, headers in (schema or SHEETS_SCHEMA).items():
            worksheet = self._get_or_create(spreadsheet, sheet_name, headers, actions)
            self._ensure_headers(worksheet, headers, actions)
        for action in actions:
            logger.info(action)
        return actions

    def _get_or_create(
        self,
        spreadsheet: gspread.Spreadsheet,
        sheet_name: str,
        headers: Iterable[str],
        actions: list[str],
    ) -> gspread.Worksheet:
        try:
            return spreadsheet.worksheet(sheet_name)
        except gspread.WorksheetNotFound:
            cols = max(10, len(list(headers)) + 2)
            worksheet = spreadsheet.add_worksheet(title=sheet_name, rows=200, cols=cols)
            actions.append(f"Creada hoja '{sheet_name}'.")
            return worksheet

    def _ensure_headers(self, worksheet: gspread.Worksheet, headers: list[str], actions: list[str]) -> None:
        existing = worksheet.row_values(1)
        if not existing:
            worksheet.update(range_name="1:1", values=[headers])
            actions.append(f"Cabecera creada en '{worksheet.title}'.")
            return
        missing = [header for header in headers if header not in existing]
        if missing:
            worksheet.update(range_name="1:1", values=[existing + missing])
            actions.append(f"Cabecera actualizada en '{worksheet.title}' (añadidas {len(missing)} columnas).")


def rows_with_index(
    values: list[list[str]],
    required: Iterable[str],
    *,
    sheet_name: str,
) -> list[tuple[int, dict[str, str]]]:
    """Convierte ``get_all_values`` en ``(número de fila, registro)`` saltando filas vacías."""
    if not values:
        missing = list(required)
        raise SheetsSchemaError(f"La hoja '{sheet_name}' no tiene cabecera (faltan {', '.join(missing)})")
    headers = [str(header).strip() for header in values[0]]
    missing = [column for column in required if column not in headers]
    if missing:
        raise SheetsSchemaError(f"La hoja '{sheet_name}' no tiene las columnas: {', '.join(missing)}")
    rows: list[tuple[int, dict[str, str]]] = []
    for row_number, row in enumerate(values[1:], start=2):
        if not any(str(cell).strip() for cell in row):
            continue
        payload = {header: str(row[i]).strip() if i < len(row) else "" for i, header in enumerate(headers)}
        rows.append((row_number, payload))
    return rows
