"""Explicit TTL cache used instead of module-level dicts."""
from __future__ import annotations
import time
from typing import Any, Callable, Hashable


class TTLCache:
    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._items: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._items.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return default
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if self.ttl <= 0:
            return
        self._items[key] = (self._clock() + self.ttl, value)

    def pop(self, key: Hashable) -> Any:
        entry = self._items.pop(key, None)
        return entry[1] if entry else None

    def clear_where(self, predicate: Callable[[Hashable, Any], bool]) -> int:
        doomed = [k for k, (_, v) in self._items.items() if predicate(k, v)]
        for k in doomed:
            del self._items[k]
        return len(doomed)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._items)


_MISSING = object()
