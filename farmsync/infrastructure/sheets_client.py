from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
from google.auth.exceptions import DefaultCredentialsError

from farmsync.core.observability import log_operational_error
from farmsync.domain.sheets_errors import SheetsPermissionError, SheetsRateLimitError
from farmsync.infrastructure.sheets_errors import RATE_LIMIT_MESSAGE, map_gspread_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OPEN_ERRORS = (
    gspread.exceptions.GSpreadException,
    FileNotFoundError,
    json.JSONDecodeError,
    DefaultCredentialsError,
    OSError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff exponencial para errores de cuota (429): 1s, 2s, 4s..."""

    max_attempts: int = 5
    base_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.base_seconds * (2 ** (attempt - 1))


@dataclass
class SheetsCallStats:
    reads: int = 0
    cached_reads: int = 0
    writes: int = 0


class SheetsClient:
    """Acceso a Google Sheets con caché de lecturas y reintentos por cuota.

    Las lecturas se cachean por hoja hasta ``invalidate``; cualquier escritura
    invalida la hoja afectada para que la siguiente lectura vea datos frescos.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], None] = time.sleep,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._sleep = sleep
        self._retry = retry_policy or RetryPolicy()
        self._spreadsheet: gspread.Spreadsheet | None = None
        self._values: dict[str, list[list[str]]] = {}
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self.stats = SheetsCallStats()

    @property
    def spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            raise RuntimeError("No hay hoja de cálculo abierta; llama antes a open_spreadsheet.")
        return self._spreadsheet

    def open_spreadsheet(self, credentials_path: Path | str, spreadsheet_id: str) -> gspread.Spreadsheet:
        logger.info("Abriendo Google Sheets %s con %s", spreadsheet_id, Path(credentials_path).name)
        try:
            gc = gspread.service_account(filename=str(credentials_path))
            spreadsheet = self._call(
                "open_by_key",
                lambda: gc.open_by_key(spreadsheet_id),
                spreadsheet_id=spreadsheet_id,
            )
        except _OPEN_ERRORS as exc:
            raise map_gspread_exception(exc) from exc
        self.attach(spreadsheet)
        return spreadsheet

    def attach(self, spreadsheet: gspread.Spreadsheet) -> None:
        self._spreadsheet = spreadsheet
        self._values.clear()
        self._worksheets.clear()
        self.stats = SheetsCallStats()

    def get_worksheet(self, name: str) -> gspread.Worksheet:
        if name not in self._worksheets:
            spreadsheet = self.spreadsheet
            self._worksheets[name] = self._call("worksheet", lambda: spreadsheet.worksheet(name), worksheet=name)
        return self._worksheets[name]

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        cached = self._values.get(worksheet_name)
        if cached is not None:
            self.stats.cached_reads += 1
            return cached
        worksheet = self.get_worksheet(worksheet_name)
        values = self._call("get_all_values", worksheet.get_all_values, worksheet=worksheet_name)
        self._values[worksheet_name] = values
        self.stats.reads += 1
        return values

    def invalidate(self, worksheet_name: str) -> None:
        self._values.pop(worksheet_name, None)

    def append_rows(self, worksheet_name: str, rows: list[list[Any]]) -> None:
        if rows:
            worksheet = self.get_worksheet(worksheet_name)
            self._write(worksheet_name, "append_rows", lambda: worksheet.append_rows(rows, value_input_option="RAW"))

    def delete_row(self, worksheet_name: str, row_number: int) -> None:
        worksheet = self.get_worksheet(worksheet_name)
        self._write(worksheet_name, "delete_rows", lambda: worksheet.delete_rows(row_number))

    def _write(self, worksheet_name: str, label: str, operation: Callable[[], Any]) -> None:
        try:
            self._call(label, operation, worksheet=worksheet_name)
        finally:
            # Una escritura fallida puede haber llegado a aplicarse.
            self.invalidate(worksheet_name)
        self.stats.writes += 1

    def _call(
        self,
        label: str,
        operation: Callable[[], T],
        *,
        worksheet: str | None = None,
        spreadsheet_id: str | None = None,
    ) -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except gspread.exceptions.APIError as exc:
                error = map_gspread_exception(exc)
                if isinstance(error, SheetsPermissionError):
                    log_operational_error(
                        "Sheets failed: permisos insuficientes en Google Sheets",
                        exc=error,
                        extra={
                            "sheets_call": label,
                            "spreadsheet_id": spreadsheet_id or getattr(self._spreadsheet, "id", None),
                            "worksheet": worksheet,
                        },
                    )
                if not isinstance(error, SheetsRateLimitError):
                    raise error from exc
                if attempt >= self._retry.max_attempts:
                    logger.error("Cuota de Google Sheets agotada en %s tras %s intentos", label, attempt)
                    raise SheetsRateLimitError(RATE_LIMIT_MESSAGE) from exc
                delay = self._retry.delay(attempt)
                logger.warning(
                    "Rate limit en Google Sheets (%s/%s). intento=%s/%s espera=%.1fs",
                    label,
                    worksheet or "-",
                    attempt,
                    self._retry.max_attempts,
                    delay,
                )
                self._sleep(delay)
                attempt += 1
