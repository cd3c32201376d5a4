"""Work queues that carry embedding rebuild requests.

Delivery guarantees belong to the queue. Rebuilds are idempotent per
entity, so at-least-once delivery is fine.
"""

import threading
from time import monotonic
from typing import Protocol

from context_engine.core.schemas_embeddings import RebuildRequest


class RebuildQueue(Protocol):
    """Accepts a rebuild request to be delivered after delay_seconds."""

    def enqueue(self, request: RebuildRequest, delay_seconds: int) -> None: ...


class InMemoryRebuildQueue:
    """In-process delayed queue; drain() hands out requests whose delay has passed."""

    def __init__(self, clock=monotonic):
        self._lock = threading.Lock()
        self._items: list[tuple[float, RebuildRequest]] = []
        self._clock = clock

    def enqueue(self, request: RebuildRequest, delay_seconds: int) -> None:
        with self._lock:
            self._items.append((self._clock() + max(0, delay_seconds), request))

    def drain(self, now: float | None = None) -> list[RebuildRequest]:
        """Remove and return due requests in enqueue order."""
        current = self._clock() if now is None else now
        with self._lock:
            due = [request for available_at, request in self._items if available_at <= current]
            self._items = [item for item in self._items if item[0] > current]
        return due

    def pending(self) -> list[RebuildRequest]:
        """All queued requests, due or not."""
        with self._lock:
            return [request for _, request in self._items]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
