"""Shared fixtures for issue intelligence tests."""

import pytest

from issue_intelligence.cache import EmbeddingCache
from tests.fakes import FailingEmbeddings, FailingGenerator, FakeClock, FakeEmbeddings

@pytest.fixture
def fake_clock():
    """Clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def cache(fake_clock):
    """Embedding cache driven by the fake clock."""
    return EmbeddingCache(ttl_seconds=3600, max_size=100, clock=fake_clock)


@pytest.fixture
def fake_embeddings():
    """Deterministic embedding provider."""
    return FakeEmbeddings()


@pytest.fixture
def failing_embeddings():
    """Embedding provider that always fails."""
    return FailingEmbeddings()


@pytest.fixture
def failing_generator():
    """Generator that always fails."""
    return FailingGenerator()
