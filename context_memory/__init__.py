"""
Context Memory - persistent memory and dynamic context for LLM gateways.

Every request passing through the gateway gets relevant memories and
behavioral guidance injected into its system prompt, packed into a
fixed token budget.

Key Features:
- Global and per-project memories stored in SQLite
- Hybrid vector + keyword retrieval with OpenAI, Ollama or local embeddings
- Importance scoring, access tracking and retention cleanup
- Priority-based token budgeting with truncation of critical sections
- Graceful degradation: memory problems never fail a request
"""

from .config import (
    ContextMemoryConfig,
    MemoryConfig,
    EmbeddingConfig,
    AutoInjectConfig,
    RetentionConfig,
    ContextBuilderConfig,
    BehavioralPatternsConfig,
    load_config,
)

from .errors import (
    ErrorCode,
    ErrorSeverity,
    ContextMemoryError,
    ValidationError,
    DatabaseError,
    MemoryServiceError,
    EmbeddingError,
    ContextBuilderError,
    ConfigError,
)

from .memory import (
    Memory,
    MemoryCategory,
    MemoryScope,
    MemoryMetadata,
    MemorySearchResult,
    MemoryStore,
    MemoryService,
    MemoryToolExecutor,
    get_memory_tools,
    EmbeddingProvider,
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    OllamaEmbeddingProvider,
    create_embedding_provider,
)

from .context import (
    ContextPriority,
    ContextCategory,
    ContextSection,
    RequestAnalysis,
    ContextBuildResult,
    DynamicContextBuilder,
)

from .observability import configure_logging

from .runtime import (
    ContextMemoryRuntime,
    create_runtime,
    get_runtime,
    reset_runtime,
)

__version__ = "0.1.0"

__all__ = [
    # Config
    "ContextMemoryConfig",
    "MemoryConfig",
    "EmbeddingConfig",
    "AutoInjectConfig",
    "RetentionConfig",
    "ContextBuilderConfig",
    "BehavioralPatternsConfig",
    "load_config",
    # Errors
    "ErrorCode",
    "ErrorSeverity",
    "ContextMemoryError",
    "ValidationError",
    "DatabaseError",
    "MemoryServiceError",
    "EmbeddingError",
    "ContextBuilderError",
    "ConfigError",
    # Memory
    "Memory",
    "MemoryCategory",
    "MemoryScope",
    "MemoryMetadata",
    "MemorySearchResult",
    "MemoryStore",
    "MemoryService",
    "MemoryToolExecutor",
    "get_memory_tools",
    "EmbeddingProvider",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "create_embedding_provider",
    # Context
    "ContextPriority",
    "ContextCategory",
    "ContextSection",
    "RequestAnalysis",
    "ContextBuildResult",
    "DynamicContextBuilder",
    # Runtime
    "ContextMemoryRuntime",
    "create_runtime",
    "get_runtime",
    "reset_runtime",
    "configure_logging",
]
