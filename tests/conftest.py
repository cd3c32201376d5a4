"""Pytest configuration and fixtures."""

import os

import pytest

from context_engine.core.schemas_insights import InsightSelectorConfig
from context_engine.db.cache_store import InMemoryCacheStore
from context_engine.db.rebuild_queue import InMemoryRebuildQueue


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["CONTEXT_ENGINE_ENV"] = "test"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Re-read settings from the environment for every test."""
    from context_engine.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def isa_config() -> InsightSelectorConfig:
    """Selector config used across insight selection tests."""
    return InsightSelectorConfig(
        enabled=True,
        max_insights=3,
        max_chunk_chars=600,
        min_keyword_hits=1,
        task_keywords_max=12,
        drop_if_contains={"###", "##", "```"},
        strip_markdown=True,
        stopwords={
            "the", "a", "and", "to", "of", "for", "in", "on", "at", "by",
            "with", "is", "are", "was", "were", "it", "this", "that",
        },
    )


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_store(clock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def rebuild_queue(clock) -> InMemoryRebuildQueue:
    return InMemoryRebuildQueue(clock=clock)
