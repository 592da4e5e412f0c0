"""
Runtime - wires the store, embeddings, memory service and context builder.

One runtime is created per process with ``create_runtime`` and torn
down with ``reset_runtime`` (tests) or ``shutdown``.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .config import ContextMemoryConfig, load_config
from .context import ContextBuildResult, DynamicContextBuilder
from .errors import ContextMemoryError, ErrorCode, error_message
from .memory import (
    CachedEmbeddingProvider,
    EmbeddingCache,
    MemoryService,
    MemoryStore,
    MemoryToolExecutor,
    create_embedding_provider,
    get_memory_tools,
    strip_remember_tags,
)
from .observability import configure_logging, request_context


logger = logging.getLogger(__name__)


class ContextMemoryRuntime:
    """
    Composition root for memory and context building.

    Example usage:
        runtime = create_runtime(memory={"db_path": "/tmp/memory.db"})
        result = runtime.build(
            "You are a coding assistant.",
            messages=[{"role": "user", "content": "Add a retry to the client"}],
            project_path="/path/to/project",
        )
        reply = runtime.process_response(model_output, project_path="/path/to/project")
    """

    def __init__(self, config: Optional[ContextMemoryConfig] = None):
        """
        Initialize the runtime.

        Memory initialisation failures are logged and the runtime
        continues without memory.

        Args:
            config: Complete configuration
        """
        self.config = config or ContextMemoryConfig()
        self.store: Optional[MemoryStore] = None
        self.embedding_cache: Optional[EmbeddingCache] = None
        self.embedder: Optional[CachedEmbeddingProvider] = None
        self.memory_service: Optional[MemoryService] = None

        if self.config.memory.enabled:
            self._init_memory()

        context_config = self.config.context
        if self.memory_service is None and context_config.enable_memory:
            context_config = replace(context_config, enable_memory=False)

        self.builder = DynamicContextBuilder(context_config, self.memory_service)

    def _init_memory(self) -> None:
        memory_config = self.config.memory
        try:
            self.store = MemoryStore(memory_config.db_path)
            self.embedding_cache = EmbeddingCache(
                max_size=memory_config.embedding.cache_max_size,
                ttl=memory_config.embedding.cache_ttl,
            )
            self.embedder = CachedEmbeddingProvider(
                create_embedding_provider(memory_config.embedding),
                self.embedding_cache,
            )
            self.memory_service = MemoryService(self.store, self.embedder, memory_config)
        except Exception as e:
            logger.error(f"Memory initialisation failed, continuing without memory: {error_message(e)}")
            self._close_memory()
            return

        logger.info(
            f"Memory initialised at {memory_config.db_path} "
            f"(embeddings: {self.embedder.name}/{self.embedder.model})"
        )

    @property
    def memory_enabled(self) -> bool:
        """Whether the memory service is available."""
        return self.memory_service is not None

    def build(
        self,
        system: Any,
        messages: List[Any],
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
        tools: Optional[List[Any]] = None,
    ) -> ContextBuildResult:
        """
        Build the augmented system prompt for a request.

        Raises:
            ContextBuilderError: If the final prompt cannot be assembled
        """
        with request_context(session_id=session_id, project_path=project_path):
            return self.builder.build(
                system,
                messages,
                project_path=project_path,
                session_id=session_id,
                tools=tools,
            )

    def process_response(
        self,
        text: str,
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Store memories requested in a model response and strip the tags.

        Args:
            text: Model output
            project_path: Project of the request
            session_id: Session of the request

        Returns:
            The text without ``<remember>`` blocks
        """
        if self.memory_service is not None:
            with request_context(session_id=session_id, project_path=project_path):
                stored = self.memory_service.save_remember_tags(
                    text, project_path=project_path, session_id=session_id
                )
            if stored:
                logger.info(f"Stored {len(stored)} memories from model response")
        return strip_remember_tags(text)

    def memory_tools(self) -> List[Dict[str, Any]]:
        """Tool definitions to offer the model; empty when memory is unavailable."""
        if self.memory_service is None:
            return []
        return get_memory_tools()

    def execute_memory_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Run a memory tool call from the model.

        Returns:
            JSON tool result; errors are reported in the result
        """
        with request_context(session_id=session_id, project_path=project_path):
            return MemoryToolExecutor(self.memory_service).execute(
                name, arguments, project_path=project_path, session_id=session_id
            )

    def cleanup(self) -> int:
        """Run the retention sweep; returns the number of memories deleted."""
        if self.memory_service is None:
            return 0
        return self.memory_service.cleanup()

    def _close_memory(self) -> None:
        if self.embedder is not None:
            self.embedder.close()
        if self.embedding_cache is not None:
            self.embedding_cache.clear()
        if self.store is not None:
            self.store.close()
        self.store = None
        self.embedding_cache = None
        self.embedder = None
        self.memory_service = None

    def shutdown(self) -> None:
        """Close the store and providers and clear the embedding cache."""
        self._close_memory()
        self.builder.memory_service = None
        if self.builder.config.enable_memory:
            self.builder.config = replace(self.builder.config, enable_memory=False)
        logger.info("Context memory runtime shut down")


# Process-wide runtime
_runtime: Optional[ContextMemoryRuntime] = None


def create_runtime(
    config: Optional[ContextMemoryConfig] = None,
    setup_logging: bool = False,
    **overrides: Any,
) -> ContextMemoryRuntime:
    """
    Create the process-wide runtime, replacing any existing one.

    Args:
        config: Complete configuration; loaded from files and the
            environment when omitted
        setup_logging: Whether to install the structured log handler
        **overrides: Nested overrides passed to ``load_config``

    Returns:
        The new runtime
    """
    global _runtime

    if config is None:
        config = load_config(**overrides)

    if setup_logging:
        configure_logging(config.log_level, json_output=config.json_logs)

    if _runtime is not None:
        _runtime.shutdown()

    _runtime = ContextMemoryRuntime(config)
    return _runtime


def get_runtime() -> ContextMemoryRuntime:
    """
    Get the process-wide runtime.

    Raises:
        ContextMemoryError: If ``create_runtime`` has not been called
    """
    if _runtime is None:
        raise ContextMemoryError(
            "Context memory runtime has not been created",
            code=ErrorCode.MEMORY_SERVICE_NOT_INITIALIZED,
            operation="get_runtime",
            recoverable=False,
        )
    return _runtime


def reset_runtime() -> None:
    """Shut down and forget the process-wide runtime."""
    global _runtime
    if _runtime is not None:
        _runtime.shutdown()
    _runtime = None
