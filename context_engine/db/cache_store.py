"""Key-value stores backing the embedding cache.

The cache owns its key scheme; stores only get, set with a TTL and delete.
Any object with these three methods can be injected (an in-process dict,
a distributed cache client, or a store that never keeps anything).
"""

import threading
from time import monotonic
from typing import Any, Protocol


class CacheStore(Protocol):
    """Minimal key-value store contract."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCacheStore:
    """Thread-safe in-process TTL store."""

    def __init__(self, clock=monotonic):
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float]] = {}
        self._clock = clock

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + max(0, ttl_seconds))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullCacheStore:
    """Store that never keeps anything (every lookup misses)."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None
