from __future__ import annotations

import json
import logging
from contextvars import copy_context

from farmsync.bootstrap import exception_handler
from farmsync.bootstrap.exception_handler import manejar_excepcion_global
from farmsync.bootstrap.logging import JsonLinesFormatter, configure_logging
from farmsync.bootstrap.settings import resolve_log_dir
from farmsync.core.observability import OperationContext


def test_formatter_emite_json_con_correlation_id() -> None:
    record = logging.LogRecord("farmsync.test", logging.INFO, __file__, 1, "hola %s", ("mundo",), None)
    record.extra = {"farm_id": "F1"}

    with OperationContext("reconcile") as operation:
        line = JsonLinesFormatter().format(record)

    payload = json.loads(line)
    assert payload["mensaje"] == "hola mundo"
    assert payload["correlation_id"] == operation.correlation_id
    assert payload["extra"] == {"farm_id": "F1"}


def test_configure_logging_separa_errores_operativos(tmp_path) -> None:
    root = logging.getLogger()
    previous = list(root.handlers)
    previous_level = root.level
    try:
        configure_logging(tmp_path)
        logging.getLogger("farmsync.test").info("informativo")
        logging.getLogger("farmsync.operational_error").error("fallo de lectura")
        for handler in root.handlers:
            handler.flush()

        main_lines = (tmp_path / "farmsync.log").read_text(encoding="utf-8").splitlines()
        error_lines = (tmp_path / "error_operativo.log").read_text(encoding="utf-8").splitlines()
        assert len(main_lines) == 2
        assert [json.loads(line)["mensaje"] for line in error_lines] == ["fallo de lectura"]
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous:
            root.addHandler(handler)
        root.setLevel(previous_level)


def test_resolve_log_dir_respeta_variable(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FARMSYNC_LOG_DIR", str(tmp_path / "logs"))
    assert resolve_log_dir() == tmp_path / "logs"


def test_excepcion_global_devuelve_incidente(caplog) -> None:
    try:
        raise RuntimeError("inesperado")
    except RuntimeError as exc:
        error = exc

    with caplog.at_level(logging.CRITICAL, logger="farmsync.global_exception"):
        incident_id = copy_context().run(manejar_excepcion_global, type(error), error, error.__traceback__)

    assert incident_id.startswith("INC-")
    assert caplog.records[-1].incident_id == incident_id


def test_excepcion_global_escribe_crash_directo_si_falla_logging(monkeypatch, tmp_path) -> None:
    def _roto(*args, **kwargs):
        raise OSError("disco lleno")

    monkeypatch.setattr(exception_handler.logger, "critical", _roto)
    error = ValueError("dato corrupto")

    incident_id = copy_context().run(
        manejar_excepcion_global, type(error), error, None, log_dir=tmp_path
    )

    lines = (tmp_path / "crash.log").read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert payload["incident_id"] == incident_id
    assert payload["error_type"] == "ValueError"
