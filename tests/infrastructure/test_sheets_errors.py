from __future__ import annotations

import json

import pytest
from google.auth.exceptions import DefaultCredentialsError

from farmsync.core.errors import InfraError, TransientExternalError
from farmsync.domain.sheets_errors import (
    SheetsApiDisabledError,
    SheetsConfigError,
    SheetsCredentialsError,
    SheetsNotFoundError,
    SheetsPermissionError,
    SheetsRateLimitError,
)
from farmsync.infrastructure.sheets_errors import classify_api_error, map_gspread_exception


@pytest.mark.parametrize(
    "text, status, expected",
    [
        ("resource_exhausted", None, SheetsRateLimitError),
        ("boom", 503, SheetsRateLimitError),
        ("google sheets api has not been used in project 1", 403, SheetsApiDisabledError),
        ("requested entity was not found", None, SheetsNotFoundError),
        ("permission_denied", None, SheetsPermissionError),
        ("algo raro", 400, SheetsConfigError),
    ],
)
def test_classify_api_error(text: str, status: int | None, expected: type[Exception]) -> None:
    assert type(classify_api_error(text, status)) is expected


def test_credenciales_inexistentes_o_invalidas() -> None:
    missing = map_gspread_exception(FileNotFoundError(2, "No such file", "/tmp/credentials.json"))
    invalid = map_gspread_exception(json.JSONDecodeError("x", "{", 0))
    default = map_gspread_exception(DefaultCredentialsError("bad"))

    assert isinstance(missing, SheetsCredentialsError)
    assert "/tmp/credentials.json" in str(missing)
    assert isinstance(invalid, SheetsCredentialsError)
    assert isinstance(default, SheetsCredentialsError)


def test_errores_ya_mapeados_se_devuelven_igual() -> None:
    error = SheetsRateLimitError("x")
    assert map_gspread_exception(error) is error


def test_jerarquia() -> None:
    assert issubclass(SheetsConfigError, InfraError)
    assert issubclass(SheetsRateLimitError, TransientExternalError)
