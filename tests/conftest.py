"""
Pytest configuration and shared fixtures.
"""

import os
from typing import Dict, List

import pytest

from context_memory.config import MemoryConfig
from context_memory.memory.embeddings import EmbeddingProvider, LocalEmbeddingProvider
from context_memory.memory.service import MemoryService
from context_memory.memory.storage import MemoryStore
from context_memory.runtime import reset_runtime


class FakeEmbeddingProvider(EmbeddingProvider):
    """Embedding provider returning fixed vectors, for deterministic scoring."""

    name = "fake"

    def __init__(self, vectors: Dict[str, List[float]] = None, dimensions: int = 3):
        self.vectors = vectors or {}
        self._dimensions = dimensions
        self.calls: List[str] = []
        self.fail = False

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend unavailable")
        return list(self.vectors.get(text, [0.0] * self._dimensions))


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep provider credentials and overrides from leaking into tests."""
    for name in list(os.environ):
        if name.startswith("CONTEXT_MEMORY_") or name in (
            "OPENAI_API_KEY", "OPENAI_BASE_URL", "OLLAMA_HOST",
        ):
            monkeypatch.delenv(name, raising=False)
    yield
    reset_runtime()


@pytest.fixture
def db_path(tmp_path):
    """Path for a temporary memory database."""
    return str(tmp_path / "memory.db")


@pytest.fixture
def store(db_path):
    """A memory store backed by a temporary file."""
    memory_store = MemoryStore(db_path)
    yield memory_store
    memory_store.close()


@pytest.fixture
def fake_embedder():
    """Embedding provider with controllable vectors."""
    return FakeEmbeddingProvider()


@pytest.fixture
def service(store):
    """Memory service using local embeddings."""
    return MemoryService(store, LocalEmbeddingProvider(), MemoryConfig())


@pytest.fixture
def fake_service(store, fake_embedder):
    """Memory service using the fake embedding provider."""
    return MemoryService(store, fake_embedder, MemoryConfig())

