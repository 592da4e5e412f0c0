"""
Persistent memory for LLM requests.

Stores short facts ("memories") scoped globally or per project and
retrieves them by hybrid vector and keyword search.

Key features:
- SQLite-based persistent storage with transactional embedding writes
- Pluggable embedding providers (OpenAI, Ollama, local fallback)
- Bounded TTL cache in front of every provider
- Importance scoring, access tracking and retention cleanup
- Explicit remember, recall and forget tools for the model
"""

from .types import (
    Memory,
    MemoryCategory,
    MemoryScope,
    MemoryMetadata,
    MemorySearchResult,
    MemoryStats,
    BlobMeta,
)

from .scoring import (
    cosine_similarity,
    keyword_overlap,
    hybrid_score,
    calculate_importance,
)

from .embeddings import (
    EmbeddingProvider,
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    OllamaEmbeddingProvider,
    create_embedding_provider,
)

from .cache import (
    EmbeddingCache,
    CachedEmbeddingProvider,
    EmbeddingIndexCache,
)

from .storage import (
    MemoryStore,
)

from .service import (
    MemoryService,
    RequestMemories,
)

from .tags import (
    ParsedRememberTag,
    parse_remember_tags,
    strip_remember_tags,
)

from .tools import (
    MemoryTool,
    MemoryToolExecutor,
    get_memory_tools,
    is_memory_tool,
)


__all__ = [
    # Types
    "Memory",
    "MemoryCategory",
    "MemoryScope",
    "MemoryMetadata",
    "MemorySearchResult",
    "MemoryStats",
    "BlobMeta",
    # Scoring
    "cosine_similarity",
    "keyword_overlap",
    "hybrid_score",
    "calculate_importance",
    # Embeddings
    "EmbeddingProvider",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "create_embedding_provider",
    # Caches
    "EmbeddingCache",
    "CachedEmbeddingProvider",
    "EmbeddingIndexCache",
    # Storage
    "MemoryStore",
    # Service
    "MemoryService",
    "RequestMemories",
    # Tags
    "ParsedRememberTag",
    "parse_remember_tags",
    "strip_remember_tags",
    # Tools
    "MemoryTool",
    "MemoryToolExecutor",
    "get_memory_tools",
    "is_memory_tool",
]
