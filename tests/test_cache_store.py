"""Tests for key-value cache stores."""

from context_engine.db.cache_store import InMemoryCacheStore, NullCacheStore


class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    def test_set_get_delete(self, cache_store) -> None:
        cache_store.set("k", {"v": 1}, 10)
        assert cache_store.get("k") == {"v": 1}

        cache_store.delete("k")
        assert cache_store.get("k") is None

    def test_missing_key(self, cache_store) -> None:
        assert cache_store.get("absent") is None
        cache_store.delete("absent")

    def test_expiry(self, cache_store, clock) -> None:
        cache_store.set("k", "v", 10)

        clock.advance(9)
        assert cache_store.get("k") == "v"

        clock.advance(1)
        assert cache_store.get("k") is None
        assert len(cache_store) == 0

    def test_overwrite_resets_ttl(self, cache_store, clock) -> None:
        cache_store.set("k", "old", 10)
        clock.advance(8)
        cache_store.set("k", "new", 10)
        clock.advance(8)

        assert cache_store.get("k") == "new"

    def test_default_clock(self) -> None:
        store = InMemoryCacheStore()
        store.set("k", "v", 60)
        assert store.get("k") == "v"


class TestNullCacheStore:
    """Tests for NullCacheStore."""

    def test_never_keeps_anything(self) -> None:
        store = NullCacheStore()
        store.set("k", "v", 60)
        assert store.get("k") is None
        store.delete("k")
