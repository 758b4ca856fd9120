from __future__ import annotations

import json

import gspread
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from farmsync.domain.sheets_errors import (
    SheetsApiDisabledError,
    SheetsConfigError,
    SheetsCredentialsError,
    SheetsNotFoundError,
    SheetsPermissionError,
    SheetsRateLimitError,
)

RATE_LIMIT_MESSAGE = "Límite de Google Sheets alcanzado. Espera 1 minuto y reintenta."
_RATE_LIMIT_STATUS_CODES = frozenset({429, 500, 503})
_RATE_LIMIT_TOKENS = (
    "[429]",
    "resource_exhausted",
    "rate_limit_exceeded",
    "quota exceeded",
    "read requests per minute per user",
)


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _extract_api_error_text(ex: Exception) -> str:
    response = getattr(ex, "response", None)
    if response is not None:
        text = getattr(response, "text", "")
        if text:
            return text
    return str(ex)


def _is_rate_limited(text_lower: str, status_code: int | None) -> bool:
    if status_code in _RATE_LIMIT_STATUS_CODES:
        return True
    return any(token in text_lower for token in _RATE_LIMIT_TOKENS)


def classify_api_error(text_lower: str, status_code: int | None) -> Exception:
    if _is_rate_limited(text_lower, status_code):
        return SheetsRateLimitError(RATE_LIMIT_MESSAGE)
    if "google sheets api has not been used" in text_lower or "it is disabled" in text_lower:
        return SheetsApiDisabledError("La API de Google Sheets no está habilitada en el proyecto de Google Cloud.")
    if status_code == 404 or "[404]" in text_lower or "requested entity was not found" in text_lower:
        return SheetsNotFoundError("El Spreadsheet ID no es válido o la hoja no existe.")
    if status_code == 403 or "[403]" in text_lower or "permission_denied" in text_lower:
        return SheetsPermissionError("La hoja no está compartida con la cuenta de servicio.")
    return SheetsConfigError(text_lower)


def map_gspread_exception(ex: Exception) -> Exception:
    if isinstance(ex, SheetsConfigError | SheetsRateLimitError):
        return ex
    if isinstance(ex, gspread.exceptions.APIError):
        text = _extract_api_error_text(ex).strip().lower()
        return classify_api_error(text, extract_response_status_code(ex))
    if isinstance(ex, gspread.exceptions.SpreadsheetNotFound):
        return SheetsNotFoundError("El Spreadsheet ID no es válido o la hoja no existe.")
    if isinstance(ex, FileNotFoundError):
        path = getattr(ex, "filename", None)
        suffix = f" en {path}" if path else ""
        return SheetsCredentialsError(f"No se encuentra credentials.json{suffix}.")
    if isinstance(ex, json.JSONDecodeError | DefaultCredentialsError | RefreshError):
        return SheetsCredentialsError("El credentials.json no es válido. Revisa el contenido del archivo.")
    return SheetsConfigError(str(ex))
