from __future__ import annotations

import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from farmsync.core.metrics import metrics_registry
from farmsync.domain.models import SourceOrigin
from farmsync.infrastructure.migrations import run_migrations
from farmsync.infrastructure.tree_store_sqlite import SQLiteTreeStore


def _memory_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    run_migrations(conn)
    return conn


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = _memory_connection()
    yield conn
    conn.close()


@pytest.fixture
def cloud_connection() -> sqlite3.Connection:
    conn = _memory_connection()
    yield conn
    conn.close()


@pytest.fixture
def mobile_store(connection: sqlite3.Connection) -> SQLiteTreeStore:
    return SQLiteTreeStore(connection, SourceOrigin.MOBILE, device_id="ios-device")


@pytest.fixture
def cloud_store(cloud_connection: sqlite3.Connection) -> SQLiteTreeStore:
    return SQLiteTreeStore(cloud_connection, SourceOrigin.CLOUD, device_id="web")


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics_registry.reset()
    yield
    metrics_registry.reset()
