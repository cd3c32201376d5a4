"""Consumer side of embedding rebuild requests."""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel

from context_engine.core.embedding_cache import EmbeddingCache
from context_engine.core.embeddings import EmptyEmbeddingError
from context_engine.core.entity_representation import build_representation
from context_engine.core.logging import get_logger, log_event
from context_engine.core.rebuild_scheduler import RebuildScheduler
from context_engine.core.schemas_embeddings import RebuildRequest

logger = get_logger(__name__)

GLOBAL_SCOPE = "global"

EntityLoader = Callable[[str], Any | None]
SourceLoader = Callable[[str], Iterable[Mapping[str, Any]]]
EmbeddingSaver = Callable[[str, str, str, list[float]], None]


class RebuildResult(BaseModel):
    """What happened to one rebuild request."""

    entity_id: str
    status: Literal["rebuilt", "missing_entity", "empty_representation", "empty_embedding"]
    dimensions: int = 0


def process_rebuild_request(
    request: RebuildRequest,
    *,
    load_entity: EntityLoader,
    cache: EmbeddingCache,
    save_embedding: EmbeddingSaver,
    model: str,
    load_sources: SourceLoader | None = None,
    scheduler: RebuildScheduler | None = None,
) -> RebuildResult:
    """
    Rebuild one entity's embedding.

    Loads the entity, renders its representation, embeds it through the
    cache (dropping any cached vector first when the request is forced)
    and saves the vector. A missing entity, blank representation or empty
    vector ends the request without saving. Save and transport errors
    propagate so the queue can redeliver.

    Args:
        request: Request to consume
        load_entity: entity_id -> entity snapshot or None
        cache: Embedding cache
        save_embedding: (entity_id, scope_id, text, vector) -> None
        model: Embedding model id
        load_sources: Optional entity_id -> related sources for the evidence block
        scheduler: Scheduler whose dedup window is released on completion

    Returns:
        RebuildResult
    """
    result = _rebuild(request, load_entity, cache, save_embedding, model, load_sources)
    if scheduler is not None:
        scheduler.release(request.entity_id)

    log_event(
        logger,
        logging.INFO if result.status == "rebuilt" else logging.WARNING,
        f"rebuild.{result.status}",
        entity_id=request.entity_id,
        reason=request.reason.value,
        dimensions=result.dimensions,
    )
    return result


def _rebuild(
    request: RebuildRequest,
    load_entity: EntityLoader,
    cache: EmbeddingCache,
    save_embedding: EmbeddingSaver,
    model: str,
    load_sources: SourceLoader | None,
) -> RebuildResult:
    entity = load_entity(request.entity_id)
    if entity is None:
        return RebuildResult(entity_id=request.entity_id, status="missing_entity")

    sources = load_sources(request.entity_id) if load_sources is not None else ()
    text = build_representation(entity, sources)
    if not text:
        return RebuildResult(entity_id=request.entity_id, status="empty_representation")

    scope = request.scope_id or GLOBAL_SCOPE
    if request.force:
        cache.invalidate(scope, text, model)

    try:
        vector = cache.embed(scope, text, model)
    except EmptyEmbeddingError:
        return RebuildResult(entity_id=request.entity_id, status="empty_embedding")

    save_embedding(request.entity_id, request.scope_id, text, vector)
    return RebuildResult(entity_id=request.entity_id, status="rebuilt", dimensions=len(vector))
