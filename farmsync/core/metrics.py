from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable


@dataclass
class TimingStats:
    count: int = 0
    total: float = 0.0
    last: float = 0.0
    max: float = 0.0

    def add(self, milisegundos: float) -> None:
        self.count += 1
        self.total += milisegundos
        self.last = milisegundos
        self.max = max(self.max, milisegundos)

    def as_dict(self) -> dict[str, float]:
        data = asdict(self)
        data["avg"] = self.total / self.count if self.count else 0.0
        del data["total"]
        return data


class MetricsRegistry:
    """Contadores y latencias en memoria del proceso, seguros entre hilos."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: Counter[str] = Counter()
        self._timings: dict[str, TimingStats] = {}

    def contador(self, nombre: str) -> int:
        with self._lock:
            return self._counters[nombre]

    def incrementar(self, nombre: str, valor: int = 1) -> None:
        with self._lock:
            self._counters[nombre] += valor

    def registrar_tiempo(self, nombre: str, milisegundos: float) -> None:
        with self._lock:
            self._timings.setdefault(nombre, TimingStats()).add(milisegundos)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings_ms": {name: stats.as_dict() for name, stats in self._timings.items()},
            }


metrics_registry = MetricsRegistry()


def medir_tiempo(nombre_metrica: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Registra la duración de cada llamada, termine bien o con excepción."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            inicio = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                metrics_registry.registrar_tiempo(nombre_metrica, (perf_counter() - inicio) * 1000)

        return wrapper

    return decorator
