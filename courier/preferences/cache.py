"""Small TTL cache owned by a single resolver instance."""

from __future__ import annotations

import time
from typing import Any, Callable, Hashable

MISSING: Any = object()


class TTLCache:
    """Entries expire ``ttl_s`` seconds after they were put.

    ``None`` is a valid cached value, which lets callers cache lookup misses.
    Readers racing on an expired key may both repopulate it; the last write wins.
    """

    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = MISSING) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return default
        return value

    def put(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock() + self._ttl_s, value)

    def invalidate_all(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
