from __future__ import annotations

import gspread
import pytest

from farmsync.domain.sheets_errors import SheetsPermissionError, SheetsRateLimitError
from farmsync.infrastructure.sheets_client import RetryPolicy, SheetsClient


class _FakeResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text

    def json(self):
        return {"error": {"code": self.status_code, "message": self.text, "status": ""}}


def _api_error(status_code: int, text: str) -> gspread.exceptions.APIError:
    return gspread.exceptions.APIError(_FakeResponse(status_code, text))


class _FakeWorksheet:
    def __init__(self, values: list[list[str]]) -> None:
        self.values = values
        self.reads = 0
        self.appended: list[list[str]] = []
        self.deleted: list[int] = []

    def get_all_values(self) -> list[list[str]]:
        self.reads += 1
        return [list(row) for row in self.values]

    def append_rows(self, rows, value_input_option=None) -> None:
        self.appended.extend(rows)
        self.values.extend(rows)

    def delete_rows(self, index) -> None:
        self.deleted.append(index)


class _FakeSpreadsheet:
    id = "sheet-id"

    def __init__(self, worksheet: _FakeWorksheet) -> None:
        self._worksheet = worksheet

    def worksheet(self, name: str) -> _FakeWorksheet:
        return self._worksheet


class _FakeGspreadClient:
    def __init__(self, spreadsheet=None, errors: list[Exception] | None = None) -> None:
        self._spreadsheet = spreadsheet
        self._errors = list(errors or [])
        self.calls = 0

    def open_by_key(self, _: str):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._spreadsheet


def test_open_spreadsheet_reintenta_rate_limit_hasta_exito(monkeypatch) -> None:
    spreadsheet = _FakeSpreadsheet(_FakeWorksheet([["id"]]))
    fake_client = _FakeGspreadClient(spreadsheet, [_api_error(429, "RESOURCE_EXHAUSTED")] * 2)
    sleeps: list[float] = []
    monkeypatch.setattr("farmsync.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)

    result = SheetsClient(sleep=sleeps.append).open_spreadsheet("/tmp/credentials.json", "sheet-id")

    assert result is spreadsheet
    assert fake_client.calls == 3
    assert sleeps == [1, 2]


def test_open_spreadsheet_agota_reintentos(monkeypatch) -> None:
    fake_client = _FakeGspreadClient(None, [_api_error(429, "quota exceeded")] * 5)
    monkeypatch.setattr("farmsync.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)

    with pytest.raises(SheetsRateLimitError):
        SheetsClient(sleep=lambda _: None).open_spreadsheet("/tmp/credentials.json", "sheet-id")
    assert fake_client.calls == 5


def test_permiso_denegado_no_se_reintenta(monkeypatch) -> None:
    fake_client = _FakeGspreadClient(None, [_api_error(403, "PERMISSION_DENIED")])
    monkeypatch.setattr("farmsync.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)

    with pytest.raises(SheetsPermissionError):
        SheetsClient(sleep=lambda _: None).open_spreadsheet("/tmp/credentials.json", "sheet-id")
    assert fake_client.calls == 1


def test_lecturas_cacheadas_hasta_escribir() -> None:
    worksheet = _FakeWorksheet([["id"], ["T1"]])
    client = SheetsClient(sleep=lambda _: None)
    client.attach(_FakeSpreadsheet(worksheet))

    client.read_all_values("trees")
    client.read_all_values("trees")
    client.append_rows("trees", [["T2"]])
    values = client.read_all_values("trees")

    assert worksheet.reads == 2
    assert values[-1] == ["T2"]
    assert client.stats.cached_reads == 1
    assert client.stats.writes == 1


def test_delete_row_invalida_cache() -> None:
    worksheet = _FakeWorksheet([["id"], ["T1"]])
    client = SheetsClient(sleep=lambda _: None)
    client.attach(_FakeSpreadsheet(worksheet))
    client.read_all_values("trees")

    client.delete_row("trees", 2)
    client.read_all_values("trees")

    assert worksheet.deleted == [2]
    assert worksheet.reads == 2


def test_sin_spreadsheet_abierto_falla() -> None:
    with pytest.raises(RuntimeError):
        SheetsClient().read_all_values("trees")


def test_retry_policy_duplica_la_espera() -> None:
    assert [RetryPolicy().delay(attempt) for attempt in (1, 2, 3)] == [1, 2, 4]
    assert RetryPolicy(base_seconds=0.5).delay(3) == 2.0
