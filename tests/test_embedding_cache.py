"""Tests for the content-addressed embedding cache."""

import hashlib
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from context_engine.core.embedding_cache import EmbeddingCache, content_hash
from context_engine.core.embeddings import EmptyEmbeddingError
from context_engine.db.cache_store import InMemoryCacheStore, NullCacheStore

EPOCH = datetime(2026, 1, 1, tzinfo=UTC)
MODEL = "text-embedding-3-small"


@pytest.fixture
def embed_one():
    return MagicMock(side_effect=lambda text: [float(len(text)), 1.0])


@pytest.fixture
def cache(cache_store, embed_one, clock) -> EmbeddingCache:
    # One fake clock drives both the store TTL and the entry expiry
    return EmbeddingCache(
        cache_store,
        embed_one,
        ttl_seconds=60,
        clock=lambda: EPOCH + timedelta(seconds=clock.now),
    )


class TestKeys:
    """Cache key derivation."""

    def test_hash_ignores_whitespace_layout(self) -> None:
        assert content_hash("  hello \n world ") == content_hash("hello world")
        assert content_hash("hello world") == hashlib.sha256(b"hello world").hexdigest()

    def test_key_layout(self, cache) -> None:
        key = cache.cache_key("org-1", "hello world", MODEL)

        assert key == f"embedding:org-1:{MODEL}:{content_hash('hello world')}"

    def test_scope_and_model_separate_keys(self, cache) -> None:
        keys = {
            cache.cache_key("org-1", "text", MODEL),
            cache.cache_key("org-2", "text", MODEL),
            cache.cache_key("org-1", "text", "other-model"),
        }
        assert len(keys) == 3


class TestEmbed:
    """Single lookups."""

    def test_miss_then_hit(self, cache, embed_one) -> None:
        first = cache.embed("org-1", "hello world", MODEL)
        second = cache.embed("org-1", "hello world", MODEL)

        assert first == second == [11.0, 1.0]
        assert embed_one.call_count == 1

    def test_equivalent_whitespace_shares_entry(self, cache, embed_one) -> None:
        cache.embed("org-1", "hello   world", MODEL)
        cache.embed("org-1", "\nhello world\n", MODEL)

        embed_one.assert_called_once_with("hello world")

    def test_entry_expires_after_ttl(self, cache, embed_one, clock) -> None:
        cache.embed("org-1", "hello", MODEL)
        clock.advance(61)
        cache.embed("org-1", "hello", MODEL)

        assert embed_one.call_count == 2

    def test_entry_expiry_checked_even_if_store_keeps_it(self, embed_one, clock) -> None:
        store = InMemoryCacheStore(clock=lambda: 0.0)
        cache = EmbeddingCache(
            store, embed_one, ttl_seconds=60, clock=lambda: EPOCH + timedelta(seconds=clock.now)
        )

        cache.embed("org-1", "hello", MODEL)
        clock.advance(120)
        cache.embed("org-1", "hello", MODEL)

        assert embed_one.call_count == 2

    def test_invalidate_forces_recompute(self, cache, embed_one) -> None:
        cache.embed("org-1", "hello", MODEL)
        cache.invalidate("org-1", "hello", MODEL)
        cache.embed("org-1", "hello", MODEL)

        assert embed_one.call_count == 2

    def test_invalidate_absent_is_noop(self, cache) -> None:
        cache.invalidate("org-1", "never cached", MODEL)

    def test_embed_fresh_bypasses_cache(self, cache, cache_store, embed_one) -> None:
        cache.embed("org-1", "hello", MODEL)

        vector = cache.embed_fresh("hello", MODEL)

        assert vector == [5.0, 1.0]
        assert embed_one.call_count == 2
        assert len(cache_store) == 1

    def test_empty_vector_is_not_cached(self, cache_store, clock) -> None:
        capability = MagicMock(return_value=[])
        cache = EmbeddingCache(cache_store, capability)

        with pytest.raises(EmptyEmbeddingError):
            cache.embed("org-1", "hello", MODEL)

        assert len(cache_store) == 0

    def test_capability_error_propagates_unchanged(self, cache_store) -> None:
        capability = MagicMock(side_effect=RuntimeError("provider down"))
        cache = EmbeddingCache(cache_store, capability)

        with pytest.raises(RuntimeError, match="provider down"):
            cache.embed("org-1", "hello", MODEL)

        assert len(cache_store) == 0

    def test_dimension_mismatch_rejected(self, cache_store, embed_one) -> None:
        cache = EmbeddingCache(cache_store, embed_one, expected_dim=3)

        with pytest.raises(EmptyEmbeddingError, match="dimension mismatch"):
            cache.embed("org-1", "hello", MODEL)

    def test_corrupt_entry_is_discarded(self, cache, cache_store, embed_one) -> None:
        key = cache.cache_key("org-1", "hello", MODEL)
        cache_store.set(key, {"vector": "garbage"}, 60)

        assert cache.embed("org-1", "hello", MODEL) == [5.0, 1.0]
        assert embed_one.call_count == 1

    def test_null_store_always_computes(self, embed_one) -> None:
        cache = EmbeddingCache(NullCacheStore(), embed_one)

        cache.embed("org-1", "hello", MODEL)
        cache.embed("org-1", "hello", MODEL)

        assert embed_one.call_count == 2

    def test_rejects_non_positive_ttl(self, cache_store, embed_one) -> None:
        with pytest.raises(ValueError):
            EmbeddingCache(cache_store, embed_one, ttl_seconds=0)


class TestEmbedBatch:
    """Batch lookups."""

    def test_covers_every_input_and_dedups(self, cache, embed_one) -> None:
        texts = ["alpha", "beta", "alpha", "beta  "]

        out = cache.embed_batch("org-1", texts, MODEL)

        assert set(out) == {"alpha", "beta", "beta  "}
        assert out["beta"] == out["beta  "] == [4.0, 1.0]
        assert embed_one.call_count == 2

    def test_only_misses_are_computed(self, cache, embed_one) -> None:
        cache.embed("org-1", "alpha", MODEL)
        embed_one.reset_mock()

        out = cache.embed_batch("org-1", ["alpha", "gamma"], MODEL)

        embed_one.assert_called_once_with("gamma")
        assert out["alpha"] == [5.0, 1.0]

    def test_batch_capability_makes_one_call(self, cache_store, embed_one) -> None:
        batch = MagicMock(side_effect=lambda texts: [[float(len(t))] for t in texts])
        cache = EmbeddingCache(cache_store, embed_one, batch_capability=batch)

        out = cache.embed_batch("org-1", ["a b", "cd", "a  b"], MODEL)

        batch.assert_called_once_with(["a b", "cd"])
        embed_one.assert_not_called()
        assert out == {"a b": [3.0], "cd": [2.0], "a  b": [3.0]}

        cache.embed_batch("org-1", ["cd"], MODEL)
        assert batch.call_count == 1

    def test_batch_count_mismatch(self, cache_store, embed_one) -> None:
        batch = MagicMock(return_value=[[1.0]])
        cache = EmbeddingCache(cache_store, embed_one, batch_capability=batch)

        with pytest.raises(EmptyEmbeddingError):
            cache.embed_batch("org-1", ["one", "two"], MODEL)

        assert len(cache_store) == 0

    def test_vectors_before_a_failure_stay_cached(self, cache_store) -> None:
        embed_one = MagicMock(side_effect=lambda text: [] if text == "bad" else [1.0])
        cache = EmbeddingCache(cache_store, embed_one)

        with pytest.raises(EmptyEmbeddingError):
            cache.embed_batch("org-1", ["good", "bad"], MODEL)

        assert len(cache_store) == 1
        assert cache.embed("org-1", "good", MODEL) == [1.0]
        assert embed_one.call_count == 2

    def test_batch_invalid_vector_is_logged(self, cache_store, embed_one, caplog) -> None:
        batch = MagicMock(return_value=[[1.0], []])
        cache = EmbeddingCache(cache_store, embed_one, batch_capability=batch)

        with caplog.at_level(logging.ERROR, logger="context_engine.core.embedding_cache"):
            with pytest.raises(EmptyEmbeddingError):
                cache.embed_batch("org-1", ["one", "two"], MODEL)

        assert "no usable vector" in caplog.text
        assert len(cache_store) == 1

    def test_empty_batch(self, cache, embed_one) -> None:
        assert cache.embed_batch("org-1", [], MODEL) == {}
        embed_one.assert_not_called()


class TestFromSettings:
    """Settings wiring."""

    def test_uses_embedding_settings(self, cache_store, embed_one, monkeypatch) -> None:
        monkeypatch.setenv("EMBEDDING_CACHE_TTL_SECONDS", "300")
        monkeypatch.setenv("EMBEDDING_CACHE_PREFIX", "research:embedding")

        cache = EmbeddingCache.from_settings(cache_store, embed_one)

        assert cache.ttl_seconds == 300
        assert cache.expected_dim == 1536
        assert cache.cache_key("org", "x", MODEL).startswith("research:embedding:org:")

    def test_defaults_to_openai_capabilities(self, cache_store) -> None:
        with patch("context_engine.core.embeddings._get_client") as mock_get_client:
            mock_client = MagicMock()
            item = MagicMock()
            item.embedding = [0.5] * 1536
            mock_client.embeddings.create.return_value = MagicMock(data=[item])
            mock_get_client.return_value = mock_client

            cache = EmbeddingCache.from_settings(cache_store)
            vector = cache.embed("org-1", "hello", MODEL)

        assert len(vector) == 1536
        mock_client.embeddings.create.assert_called_once()
