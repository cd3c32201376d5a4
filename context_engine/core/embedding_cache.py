"""Content-addressed embedding cache.

Embeddings are expensive and deterministic for a given (model, text), so
vectors are cached under a key derived from the caller's scope, the model
id and a SHA-256 of the whitespace-normalized text. The backing store is
injected; two concurrent misses on the same key may both compute and
overwrite, which is harmless because the value only depends on the key.
"""

import hashlib
import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from context_engine.core.config import get_settings
from context_engine.core.embeddings import (
    BatchEmbeddingCapability,
    EmbeddingCapability,
    EmptyEmbeddingError,
    make_openai_batch_embedding_capability,
    make_openai_embedding_capability,
    validate_vector,
)
from context_engine.core.logging import get_logger, log_event
from context_engine.core.schemas_embeddings import CacheEntry
from context_engine.core.text_normalizer import collapse_whitespace
from context_engine.db.cache_store import CacheStore

logger = get_logger(__name__)


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the whitespace-normalized text."""
    return hashlib.sha256(collapse_whitespace(text).encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Embedding lookups that compute each distinct (scope, model, text) at most once per TTL."""

    def __init__(
        self,
        store: CacheStore,
        embedding_capability: EmbeddingCapability,
        *,
        batch_capability: BatchEmbeddingCapability | None = None,
        ttl_seconds: int = 86_400,
        key_prefix: str = "embedding",
        expected_dim: int | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.expected_dim = expected_dim
        self._embed_one = embedding_capability
        self._embed_many = batch_capability
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: CacheStore,
        embedding_capability: EmbeddingCapability | None = None,
        batch_capability: BatchEmbeddingCapability | None = None,
    ) -> "EmbeddingCache":
        """Cache wired to the OpenAI capabilities and EMBEDDING_* settings."""
        settings = get_settings()
        if embedding_capability is None:
            embedding_capability = make_openai_embedding_capability()
            batch_capability = batch_capability or make_openai_batch_embedding_capability()
        return cls(
            store,
            embedding_capability,
            batch_capability=batch_capability,
            ttl_seconds=settings.EMBEDDING_CACHE_TTL_SECONDS,
            key_prefix=settings.EMBEDDING_CACHE_PREFIX,
            expected_dim=settings.EMBEDDING_DIM,
        )

    def cache_key(self, scope: str, text: str, model: str) -> str:
        return f"{self.key_prefix}:{scope}:{model}:{content_hash(text)}"

    def embed(self, scope: str, text: str, model: str) -> list[float]:
        """
        Return the embedding for text, computing and caching it on a miss.

        Raises:
            EmptyEmbeddingError: If the capability returns an empty/malformed vector
            Exception: Whatever the capability raises, unchanged
        """
        key = self.cache_key(scope, text, model)
        cached = self._lookup(key)
        if cached is not None:
            log_event(logger, logging.DEBUG, "embedding_cache.hit", scope=scope, model=model)
            return cached

        log_event(logger, logging.DEBUG, "embedding_cache.miss", scope=scope, model=model)
        vector = self._compute(collapse_whitespace(text))
        self._store(key, vector)
        return vector

    def embed_fresh(self, text: str, model: str) -> list[float]:
        """Compute an embedding without reading or writing the cache."""
        return self._compute(collapse_whitespace(text))

    def invalidate(self, scope: str, text: str, model: str) -> None:
        """Drop the cached entry for (scope, text, model); no-op when absent."""
        self.store.delete(self.cache_key(scope, text, model))

    def embed_batch(self, scope: str, texts: Iterable[str], model: str) -> dict[str, list[float]]:
        """
        Embed many texts, computing only the distinct ones not already cached.

        With a batch capability all misses go out in one call; otherwise each
        miss is embedded individually. Each usable vector is cached as soon as
        it is validated, so a later failure does not discard earlier results.

        Returns:
            Mapping covering every input text
        """
        ordered = list(dict.fromkeys(texts))
        found: dict[str, list[float]] = {}
        # normalized text -> cache key, for texts that must be computed
        pending: dict[str, str] = {}

        for text in ordered:
            key = self.cache_key(scope, text, model)
            cached = self._lookup(key)
            if cached is not None:
                found[key] = cached
            else:
                pending.setdefault(collapse_whitespace(text), key)

        if pending:
            log_event(
                logger,
                logging.DEBUG,
                "embedding_cache.batch_miss",
                scope=scope,
                model=model,
                requested=len(ordered),
                missing=len(pending),
            )
            for key, vector in self._compute_many(pending):
                self._store(key, vector)
                found[key] = vector

        return {text: found[self.cache_key(scope, text, model)] for text in ordered}

    def _lookup(self, key: str) -> list[float] | None:
        raw = self.store.get(key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError as e:
            log_event(
                logger,
                logging.WARNING,
                "embedding_cache.corrupt_entry",
                f"Discarding unreadable cache entry: {e.error_count()} errors",
                key=key,
            )
            self.store.delete(key)
            return None

        if entry.expires_at <= self._clock():
            self.store.delete(key)
            return None
        return entry.vector

    def _store(self, key: str, vector: list[float]) -> None:
        entry = CacheEntry(
            key=key,
            vector=vector,
            expires_at=self._clock() + timedelta(seconds=self.ttl_seconds),
        )
        self.store.set(key, entry.model_dump(mode="json"), self.ttl_seconds)

    def _compute(self, text: str) -> list[float]:
        return self._validated(self._embed_one(text), text)

    def _compute_many(self, pending: dict[str, str]) -> Iterator[tuple[str, list[float]]]:
        """Yield (key, vector) per normalized text as soon as each vector is usable."""
        if self._embed_many is None:
            for text, key in pending.items():
                yield key, self._compute(text)
            return

        texts = list(pending)
        vectors = self._embed_many(texts)
        if not isinstance(vectors, list) or len(vectors) != len(texts):
            message = (
                f"Batch embedding returned {len(vectors) if isinstance(vectors, list) else 0} "
                f"vectors for {len(texts)} texts"
            )
            logger.error(message, extra={"count": len(texts)})
            raise EmptyEmbeddingError(message)

        for text, key, vector in zip(texts, pending.values(), vectors, strict=True):
            yield key, self._validated(vector, text)

    def _validated(self, vector: object, text: str) -> list[float]:
        try:
            return validate_vector(vector, self.expected_dim)
        except EmptyEmbeddingError as e:
            logger.error(
                f"Embedding generation returned no usable vector: {e}",
                extra={"text_length": len(text)},
            )
            raise
