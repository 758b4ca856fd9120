from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Mapping

from farmsync.core.errors import ValidationError
from farmsync.domain.models import SyncConfig

logger = logging.getLogger(__name__)

CLOUD_BACKENDS = ("sheets", "sqlite")

_ENV_OVERRIDES = {
    "FARMSYNC_SPREADSHEET_ID": "spreadsheet_id",
    "FARMSYNC_CREDENTIALS_PATH": "credentials_path",
    "FARMSYNC_MOBILE_DB": "mobile_db_path",
}


def resolve_appdata_dir() -> Path:
    override = os.environ.get("FARMSYNC_CONFIG_DIR")
    if override:
        return Path(override)
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / "farmsync"


def _optional_float(payload: Mapping[str, Any], key: str) -> float | None:
    raw = payload.get(key)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"'{key}' debe ser numérico en config.json") from exc


class SyncConfigStore:
    def __init__(self, base_dir: Path | None = None, *, environ: Mapping[str, str] | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"
        self._credentials_path = self._base_dir / "secrets" / "credentials.json"
        self._environ = os.environ if environ is None else environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SyncConfig | None:
        payload = self._read_payload()
        if payload is None:
            payload = {}
        for env_name, key in _ENV_OVERRIDES.items():
            value = str(self._environ.get(env_name, "")).strip()
            if value:
                payload[key] = value
        if not payload:
            return None

        device_id = str(payload.get("device_id", "")).strip()
        if not device_id and self._config_path.exists():
            device_id = self._generate_device_id()
            stored = self._read_payload() or {}
            stored["device_id"] = device_id
            self._write_payload(stored)

        cloud_backend = str(payload.get("cloud_backend", "sheets")).strip().lower() or "sheets"
        if cloud_backend not in CLOUD_BACKENDS:
            raise ValidationError(f"cloud_backend desconocido: '{cloud_backend}' (válidos: {', '.join(CLOUD_BACKENDS)})")
        return SyncConfig(
            spreadsheet_id=str(payload.get("spreadsheet_id", "")).strip(),
            credentials_path=str(payload.get("credentials_path", "")).strip(),
            mobile_db_path=str(payload.get("mobile_db_path", "")).strip(),
            device_id=device_id or self._generate_device_id(),
            cloud_backend=cloud_backend,
            cloud_db_path=str(payload.get("cloud_db_path", "")).strip(),
            coordinate_tolerance=_optional_float(payload, "coordinate_tolerance"),
            timestamp_tolerance_seconds=_optional_float(payload, "timestamp_tolerance_seconds"),
        )

    def save(self, config: SyncConfig) -> SyncConfig:
        payload: dict[str, Any] = {
            "spreadsheet_id": config.spreadsheet_id,
            "credentials_path": config.credentials_path,
            "mobile_db_path": config.mobile_db_path,
            "device_id": config.device_id or self._generate_device_id(),
            "cloud_backend": config.cloud_backend,
            "cloud_db_path": config.cloud_db_path,
        }
        if config.coordinate_tolerance is not None:
            payload["coordinate_tolerance"] = config.coordinate_tolerance
        if config.timestamp_tolerance_seconds is not None:
            payload["timestamp_tolerance_seconds"] = config.timestamp_tolerance_seconds
        self._write_payload(payload)
        return SyncConfig(
            spreadsheet_id=payload["spreadsheet_id"],
            credentials_path=payload["credentials_path"],
            mobile_db_path=payload["mobile_db_path"],
            device_id=payload["device_id"],
            cloud_backend=payload["cloud_backend"],
            cloud_db_path=payload["cloud_db_path"],
            coordinate_tolerance=config.coordinate_tolerance,
            timestamp_tolerance_seconds=config.timestamp_tolerance_seconds,
        )

    def credentials_path(self) -> Path:
        return self._credentials_path

    def _read_payload(self) -> dict[str, Any] | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("No se pudo leer config.json: %s", exc)
            return None
        return payload if isinstance(payload, dict) else None

    def _write_payload(self, payload: dict[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())
