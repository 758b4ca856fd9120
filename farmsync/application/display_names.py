from __future__ import annotations

from typing import Callable

DisplayNameLookup = Callable[[str], str | None]


class DisplayNameCache:
    """Caché explícita uid -> nombre; la crea y la conserva el llamador."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}

    def get(self, uid: str) -> str | None:
        return self._names.get(uid)

    def put(self, uid: str, name: str) -> None:
        self._names[uid] = name

    def __contains__(self, uid: object) -> bool:
        return uid in self._names

    def __len__(self) -> int:
        return len(self._names)


def resolve_display_name(uid: str, cache: DisplayNameCache, lookup: DisplayNameLookup) -> str:
    uid = str(uid or "").strip()
    if not uid:
        return "N/D"
    cached = cache.get(uid)
    if cached is not None:
        return cached
    name = (lookup(uid) or "").strip() or uid
    cache.put(uid, name)
    return name
