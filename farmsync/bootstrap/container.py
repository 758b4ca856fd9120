from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Callable

from farmsync.application.display_names import DisplayNameCache
from farmsync.application.reconciliation_service import ReconciliationService
from farmsync.core.errors import ValidationError
from farmsync.domain.field_values import ComparisonPolicy
from farmsync.domain.models import SourceOrigin, SyncConfig
from farmsync.domain.ports import CloudTreeStore, UserDirectoryPort
from farmsync.infrastructure.db import CLOUD_DB_FILENAME, default_db_path, get_connection
from farmsync.infrastructure.local_config import SyncConfigStore
from farmsync.infrastructure.migrations import run_migrations
from farmsync.infrastructure.sheets_client import SheetsClient
from farmsync.infrastructure.sheets_repository import SheetsRepository
from farmsync.infrastructure.sheets_tree_store import SheetsTreeStore, SheetsUserDirectory
from farmsync.infrastructure.tree_store_sqlite import SQLiteTreeStore, SQLiteUserDirectory

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[Path | str | None], sqlite3.Connection]


@dataclass
class AppContainer:
    config: SyncConfig
    policy: ComparisonPolicy
    reconciliation_service: ReconciliationService
    user_directory: UserDirectoryPort
    display_names: DisplayNameCache


def build_policy(config: SyncConfig) -> ComparisonPolicy:
    policy = ComparisonPolicy()
    if config.coordinate_tolerance is not None:
        policy = replace(policy, coordinate_tolerance=config.coordinate_tolerance)
    if config.timestamp_tolerance_seconds is not None:
        policy = replace(policy, timestamp_tolerance=timedelta(seconds=config.timestamp_tolerance_seconds))
    return policy


def _open_sqlite(connection_factory: ConnectionFactory, path: str | None) -> sqlite3.Connection:
    connection = connection_factory(path or None)
    run_migrations(connection)
    return connection


def _build_cloud(
    config: SyncConfig,
    config_store: SyncConfigStore,
    connection_factory: ConnectionFactory,
    sheets_client_factory: Callable[[], SheetsClient],
) -> tuple[CloudTreeStore, UserDirectoryPort]:
    if config.cloud_backend == "sqlite":
        connection = _open_sqlite(connection_factory, config.cloud_db_path or str(default_db_path(CLOUD_DB_FILENAME)))
        store = SQLiteTreeStore(connection, SourceOrigin.CLOUD, device_id=config.device_id)
        return store, SQLiteUserDirectory(connection)

    if not config.spreadsheet_id:
        raise ValidationError("Falta spreadsheet_id en la configuración (o FARMSYNC_SPREADSHEET_ID)")
    credentials = Path(config.credentials_path) if config.credentials_path else config_store.credentials_path()
    client = sheets_client_factory()
    spreadsheet = client.open_spreadsheet(credentials, config.spreadsheet_id)
    SheetsRepository().ensure_schema(spreadsheet)
    return SheetsTreeStore(client, device_id=config.device_id), SheetsUserDirectory(client)


def build_container(
    config_store: SyncConfigStore | None = None,
    *,
    connection_factory: ConnectionFactory = get_connection,
    sheets_client_factory: Callable[[], SheetsClient] = SheetsClient,
) -> AppContainer:
    store = config_store or SyncConfigStore()
    config = store.load()
    if config is None:
        raise ValidationError(f"No hay configuración de sincronización en {store.config_path}")

    mobile_connection = _open_sqlite(connection_factory, config.mobile_db_path)
    mobile_store = SQLiteTreeStore(mobile_connection, SourceOrigin.MOBILE, device_id=config.device_id)
    cloud_store, user_directory = _build_cloud(config, store, connection_factory, sheets_client_factory)

    policy = build_policy(config)
    logger.info(
        "Contenedor listo: backend=%s tolerancia_coordenadas=%s tolerancia_fechas=%ss",
        config.cloud_backend,
        policy.coordinate_tolerance,
        policy.timestamp_tolerance.total_seconds(),
    )
    return AppContainer(
        config=config,
        policy=policy,
        reconciliation_service=ReconciliationService(mobile_store, cloud_store, policy=policy),
        user_directory=user_directory,
        display_names=DisplayNameCache(),
    )
