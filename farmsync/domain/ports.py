from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Protocol

from farmsync.domain.models import TreeRecord


class TreeRecordSource(Protocol):
    def fetch_trees(self, farm_id: str) -> Iterable[TreeRecord]:
        """Devuelve el conjunto completo de la granja o lanza excepción."""
        ...


class CloudTreeStore(TreeRecordSource, Protocol):
    def exists(self, farm_id: str, record_id: str) -> bool:
        ...

    def create_if_absent(self, record: TreeRecord) -> bool:
        """Crea el registro sólo si no existe. ``False`` si ya estaba."""
        ...


class UserDirectoryPort(Protocol):
    def display_name(self, uid: str) -> str | None:
        ...


class SheetsClientPort(Protocol):
    def open_spreadsheet(self, credentials_path: Path, spreadsheet_id: str) -> Any:
        ...

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        ...

    def append_rows(self, worksheet_name: str, rows: list[list[Any]]) -> None:
        ...

    def delete_row(self, worksheet_name: str, row_number: int) -> None:
        ...

    def invalidate(self, worksheet_name: str) -> None:
        ...

