"""
Embedding caches.

- EmbeddingCache: bounded, TTL-based cache of text embeddings shared by
  every provider, keyed by ``provider:model:text``.
- CachedEmbeddingProvider: wraps any provider with an EmbeddingCache.
- EmbeddingIndexCache: short-lived cache of a scope's stored embeddings,
  avoiding a blob read per memory on every recall.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .embeddings import EmbeddingProvider


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached embedding vector."""

    vector: List[float]
    created_at: float
    hits: int = 0

    def is_expired(self, ttl: float, now: Optional[float] = None) -> bool:
        """Check if the cache entry has expired."""
        return (now if now is not None else time.time()) - self.created_at > ttl


class EmbeddingCache:
    """
    In-memory embedding cache.

    Features:
    - Eviction of the oldest-inserted entry when max size is reached
    - TTL-based expiration (expired entries are treated as absent)
    - Thread-safe operations
    - Cache statistics

    Example:
        >>> cache = EmbeddingCache(max_size=2000, ttl=3600)
        >>> cache.set("local", "char-position-hash", "hello", vector)
        >>> cached = cache.get("local", "char-position-hash", "hello")
    """

    def __init__(
        self,
        max_size: int = 2000,
        ttl: float = 3600,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the embedding cache.

        Args:
            max_size: Maximum number of cached embeddings.
            ttl: Time-to-live in seconds for cached entries.
            enabled: Whether caching is enabled.
            clock: Time source, replaceable in tests.
        """
        self.max_size = max_size
        self.ttl = ttl
        self.enabled = enabled
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def make_key(provider: str, model: str, text: str) -> str:
        """Build the cache key for a text embedded by a provider/model."""
        return f"{provider}:{model}:{text}"

    def get(self, provider: str, model: str, text: str) -> Optional[List[float]]:
        """
        Get a cached embedding.

        Returns:
            The cached vector if present and not expired, None otherwise.
        """
        if not self.enabled:
            return None

        key = self.make_key(provider, model, text)

        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self.ttl, self._clock()):
                del self._cache[key]
                self._misses += 1
                return None

            entry.hits += 1
            self._hits += 1
            return list(entry.vector)

    def set(self, provider: str, model: str, text: str, vector: Sequence[float]) -> None:
        """Cache an embedding, evicting the oldest entries at capacity."""
        if not self.enabled or self.max_size <= 0:
            return

        key = self.make_key(provider, model, text)

        with self._lock:
            # Re-inserting a key makes it the newest entry
            self._cache.pop(key, None)

            while len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)
                self._evictions += 1

            self._cache[key] = CacheEntry(vector=list(vector), created_at=self._clock())

    def clear(self) -> int:
        """Remove all entries and return how many were removed."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def prune_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._cache.items()
                if entry.is_expired(self.ttl, now)
            ]
            for key in expired_keys:
                del self._cache[key]

        if expired_keys:
            logger.debug(f"Pruned {len(expired_keys)} expired embeddings")

        return len(expired_keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics.
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

            return {
                "enabled": self.enabled,
                "size": len(self._cache),
                "max_size": self.max_size,
                "ttl": self.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "evictions": self._evictions,
            }


class CachedEmbeddingProvider(EmbeddingProvider):
    """
    Embedding provider decorator that consults an EmbeddingCache first.

    Misses are computed by the wrapped provider (batched when embedding
    several texts) and then stored.
    """

    def __init__(self, provider: EmbeddingProvider, cache: Optional[EmbeddingCache] = None):
        self.provider = provider
        self.cache = cache or EmbeddingCache()
        self.name = provider.name

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    @property
    def model(self) -> str:
        return self.provider.model

    def embed(self, text: str) -> List[float]:
        cached = self.cache.get(self.name, self.model, text)
        if cached is not None:
            return cached

        vector = self.provider.embed(text)
        self.cache.set(self.name, self.model, text, vector)
        return list(vector)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        results: List[Optional[List[float]]] = []
        missing: List[int] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(self.name, self.model, text)
            results.append(cached)
            if cached is None:
                missing.append(i)

        if missing:
            vectors = self.provider.embed_batch([texts[i] for i in missing])
            for i, vector in zip(missing, vectors):
                results[i] = list(vector)
                self.cache.set(self.name, self.model, texts[i], vector)

        return results

    def close(self) -> None:
        self.provider.close()


@dataclass
class _IndexEntry:
    embeddings: Dict[str, List[float]]
    loaded_at: float = field(default_factory=time.time)


class EmbeddingIndexCache:
    """
    Per-scope cache of stored embeddings.

    Entries are keyed by ``global`` or ``project:<path>``, expire after
    ``ttl`` seconds and are dropped explicitly whenever the scope is
    written to. At most ``max_projects`` project entries are kept; the
    least recently loaded one is evicted first.

    A load that overlaps an invalidation is returned to its caller but
    not cached.
    """

    def __init__(
        self,
        ttl: float = 60.0,
        max_projects: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_projects = max_projects
        self._clock = clock
        self._entries: "OrderedDict[str, _IndexEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._generation = 0

    @staticmethod
    def scope_key(scope: str, project_path: Optional[str] = None) -> str:
        if scope == "project":
            return f"project:{project_path or ''}"
        return "global"

    def get_or_load(
        self,
        scope: str,
        project_path: Optional[str],
        loader: Callable[[], Dict[str, List[float]]],
    ) -> Dict[str, List[float]]:
        """
        Return cached embeddings for a scope, loading them when stale.

        Args:
            scope: "global" or "project"
            project_path: Project path for project scope
            loader: Callable that reads the embeddings from the store

        Returns:
            Memory id to embedding
        """
        key = self.scope_key(scope, project_path)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now - entry.loaded_at < self.ttl:
                return entry.embeddings
            generation = self._generation

        embeddings = loader()

        with self._lock:
            if generation != self._generation:
                logger.debug(f"Not caching {key} embeddings loaded across an invalidation")
                return embeddings
            self._entries.pop(key, None)
            if key != "global":
                projects = [k for k in self._entries if k != "global"]
                while len(projects) >= self.max_projects:
                    del self._entries[projects.pop(0)]
            self._entries[key] = _IndexEntry(embeddings=embeddings, loaded_at=now)

        return embeddings

    def invalidate(self, scope: Optional[str] = None, project_path: Optional[str] = None) -> None:
        """Drop the cached entry for a scope, or everything when scope is None."""
        with self._lock:
            self._generation += 1
            if scope is None:
                self._entries.clear()
            else:
                self._entries.pop(self.scope_key(scope, project_path), None)
