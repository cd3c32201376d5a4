"""Embedding rebuild scheduling from entity mutations.

Entity create/update events are turned into RebuildRequests on a work
queue. Whether an update warrants a rebuild is a pure decision over the
before/after snapshots (see RebuildScheduler.rebuild_reason), so any
persistence layer or event bus can drive it.

Scheduling is a best-effort side channel: failures are logged and never
reach the code that persisted the mutation.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from time import monotonic
from typing import Any

from context_engine.core.config import get_settings
from context_engine.core.logging import get_logger, log_event
from context_engine.core.schemas_embeddings import RebuildRequest
from context_engine.core.schemas_pipeline import RebuildReason
from context_engine.db.rebuild_queue import RebuildQueue

logger = get_logger(__name__)

StaleMarker = Callable[[str, str], None]


def entity_field(entity: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute-style entity."""
    if entity is None:
        return None
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class RebuildScheduler:
    """Turns entity mutations into deduplicated, delayed rebuild requests."""

    def __init__(
        self,
        queue: RebuildQueue,
        *,
        debounce_seconds: int = 180,
        tracked_fields: Sequence[str] = ("system_name",),
        metadata_field: str = "metadata",
        tracked_metadata_keys: Sequence[str] = ("context_type", "primary_entity", "description"),
        id_field: str = "id",
        scope_field: str = "organization_id",
        stale_marker: StaleMarker | None = None,
        clock: Callable[[], float] = monotonic,
    ):
        self.queue = queue
        self.debounce_seconds = max(0, debounce_seconds)
        self.tracked_fields = tuple(tracked_fields)
        self.metadata_field = metadata_field
        self.tracked_metadata_keys = tuple(tracked_metadata_keys)
        self.id_field = id_field
        self.scope_field = scope_field
        self._stale_marker = stale_marker
        self._clock = clock
        self._lock = threading.Lock()
        # entity_id -> (window closes at, pending request)
        self._pending: dict[str, tuple[float, RebuildRequest]] = {}

    @classmethod
    def from_settings(
        cls, queue: RebuildQueue, stale_marker: StaleMarker | None = None
    ) -> "RebuildScheduler":
        settings = get_settings()
        return cls(
            queue,
            debounce_seconds=settings.REBUILD_DEBOUNCE_SECONDS,
            tracked_fields=settings.REBUILD_TRACKED_FIELDS,
            metadata_field=settings.REBUILD_METADATA_FIELD,
            tracked_metadata_keys=settings.REBUILD_TRACKED_METADATA_KEYS,
            stale_marker=stale_marker,
        )

    # Mutation hooks

    def on_created(self, entity: Any) -> RebuildRequest | None:
        """A new entity always gets an embedding."""
        return self.schedule(
            _as_text(entity_field(entity, self.id_field)),
            scope_id=_as_text(entity_field(entity, self.scope_field)),
            reason=RebuildReason.CREATED,
        )

    def on_updated(self, entity: Any, before: Any, after: Any) -> RebuildRequest | None:
        """Schedule a rebuild only when a rebuild-relevant field changed."""
        reason = self.rebuild_reason(before, after)
        if reason is None:
            return None
        return self.schedule(
            _as_text(entity_field(entity, self.id_field)),
            scope_id=_as_text(entity_field(entity, self.scope_field)),
            reason=reason,
        )

    # Decision

    def rebuild_reason(self, before: Any, after: Any) -> RebuildReason | None:
        """
        Decide whether an update changes the entity's embedding text.

        Any change to a tracked field is relevant. For the metadata field only
        the tracked sub-keys count, compared as trimmed strings.

        Returns:
            The reason to rebuild, or None when nothing relevant changed
        """
        for name in self.tracked_fields:
            if entity_field(before, name) != entity_field(after, name):
                return RebuildReason.NAME_CHANGED

        before_meta = entity_field(before, self.metadata_field)
        after_meta = entity_field(after, self.metadata_field)
        before_meta = before_meta if isinstance(before_meta, Mapping) else {}
        after_meta = after_meta if isinstance(after_meta, Mapping) else {}

        for key in self.tracked_metadata_keys:
            if _as_text(before_meta.get(key)) != _as_text(after_meta.get(key)):
                return RebuildReason.METADATA_CHANGED

        return None

    def should_rebuild(self, before: Any, after: Any) -> bool:
        return self.rebuild_reason(before, after) is not None

    # Scheduling

    def schedule(
        self,
        entity_id: str,
        force: bool = False,
        scope_id: str | None = "",
        reason: RebuildReason = RebuildReason.MANUAL,
    ) -> RebuildRequest | None:
        """
        Enqueue a rebuild request, delayed by the debounce window.

        A non-forced request for an entity that already has one pending in its
        window collapses into the pending one. Never raises.

        Returns:
            The enqueued request, or None if skipped, collapsed or the enqueue failed
        """
        entity_id = _as_text(entity_id)
        scope_id = _as_text(scope_id)
        if not entity_id:
            log_event(logger, logging.DEBUG, "rebuild.skipped_blank_id", reason=reason.value)
            return None

        now = self._clock()
        with self._lock:
            pending = self._pending.get(entity_id)
            if pending is not None and pending[0] > now and not force:
                log_event(
                    logger,
                    logging.DEBUG,
                    "rebuild.deduplicated",
                    entity_id=entity_id,
                    reason=reason.value,
                )
                return None

        self._mark_stale(entity_id, scope_id)

        try:
            request = RebuildRequest(
                entity_id=entity_id, reason=reason, force=force, scope_id=scope_id
            )
            self.queue.enqueue(request, self.debounce_seconds)
        except Exception as e:
            log_event(
                logger,
                logging.WARNING,
                "rebuild.schedule_failed",
                f"Could not enqueue embedding rebuild: {e}",
                entity_id=entity_id,
                reason=reason.value,
                error_type=type(e).__name__,
            )
            return None

        with self._lock:
            self._pending[entity_id] = (now + self.debounce_seconds, request)

        log_event(
            logger,
            logging.INFO,
            "rebuild.scheduled",
            entity_id=entity_id,
            scope_id=scope_id,
            reason=reason.value,
            force=force,
            delay_seconds=self.debounce_seconds,
        )
        return request

    def mark_stale_and_schedule(
        self,
        entity_ids: Iterable[str],
        scope_id: str = "",
        reason: RebuildReason = RebuildReason.BACKFILL,
    ) -> list[RebuildRequest]:
        """Schedule each distinct, non-blank id once. Returns the requests enqueued."""
        scheduled: list[RebuildRequest] = []
        for entity_id in dict.fromkeys(_as_text(i) for i in entity_ids):
            if not entity_id:
                continue
            request = self.schedule(entity_id, scope_id=scope_id, reason=reason)
            if request is not None:
                scheduled.append(request)
        return scheduled

    def release(self, entity_id: str) -> None:
        """Close the dedup window once the request has been consumed."""
        with self._lock:
            self._pending.pop(_as_text(entity_id), None)

    def pending_request(self, entity_id: str) -> RebuildRequest | None:
        """The request still inside its dedup window for this entity, if any."""
        now = self._clock()
        with self._lock:
            pending = self._pending.get(_as_text(entity_id))
            if pending is None or pending[0] <= now:
                return None
            return pending[1]

    def _mark_stale(self, entity_id: str, scope_id: str) -> None:
        if self._stale_marker is None:
            return
        try:
            self._stale_marker(entity_id, scope_id)
        except Exception as e:
            log_event(
                logger,
                logging.WARNING,
                "rebuild.mark_stale_failed",
                f"Could not mark embedding stale: {e}",
                entity_id=entity_id,
            )
