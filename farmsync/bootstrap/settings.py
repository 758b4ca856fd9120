from __future__ import annotations

import os
import tempfile
from pathlib import Path

from farmsync.infrastructure.local_config import resolve_appdata_dir


def _is_writable(directory: Path) -> bool:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        probe = directory / ".farmsync_probe"
        probe.touch()
        probe.unlink()
    except OSError:
        return False
    return True


def resolve_log_dir() -> Path:
    """Primer directorio escribible: FARMSYNC_LOG_DIR, datos de la app o temporal."""
    override = os.environ.get("FARMSYNC_LOG_DIR")
    candidates = [Path(override)] if override else []
    candidates += [resolve_appdata_dir() / "logs", Path(tempfile.gettempdir()) / "farmsync" / "logs"]
    for candidate in candidates:
        if _is_writable(candidate):
            return candidate
    return Path.cwd()
