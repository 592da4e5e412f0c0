"""
Memory Service - business logic on top of the memory store.

Provides creation ("remember"), hybrid search ("recall"), per-request
memory retrieval with access tracking, and the retention sweep.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..config import MemoryConfig
from ..errors import (
    ContextMemoryError,
    ErrorCode,
    MemoryServiceError,
    ValidationError,
    error_message,
    wrap_memory_error,
)
from .cache import EmbeddingIndexCache
from .embeddings import EmbeddingProvider
from .scoring import calculate_importance, rank_results, score_memories
from .storage import MemoryStore
from .tags import parse_remember_tags
from .types import (
    Memory,
    MemoryCategory,
    MemoryMetadata,
    MemoryScope,
    MemorySearchResult,
    MemoryStats,
    now_ms,
)


logger = logging.getLogger(__name__)


# Memories at or above this importance are injected even when unrelated to the query
IMPORTANCE_OVERRIDE_THRESHOLD = 0.8

# Number of trailing messages scanned for the request query
QUERY_MESSAGE_WINDOW = 5

# Memories used at least this often survive the retention sweep
CLEANUP_MIN_ACCESS_COUNT = 3

DAY_MS = 24 * 60 * 60 * 1000


def message_text(message: Any) -> str:
    """
    Extract the plain text of a chat message.

    String content is returned as-is; list content contributes the
    text of its ``type == "text"`` blocks.
    """
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]
        return " ".join(p for p in parts if p)
    return ""


def extract_query(messages: Optional[Sequence[Any]], window: int = QUERY_MESSAGE_WINDOW) -> str:
    """Join the text of the user messages among the last ``window`` messages."""
    recent = list(messages or [])[-window:]
    texts = [
        message_text(m) for m in recent
        if isinstance(m, dict) and m.get("role") == "user"
    ]
    return " ".join(t for t in texts if t).strip()


@dataclass
class RequestMemories:
    """Memories selected for one request, plus non-fatal errors."""

    global_memories: List[Memory] = field(default_factory=list)
    project_memories: List[Memory] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.global_memories) + len(self.project_memories)


class MemoryService:
    """
    High-level memory management interface.

    Example usage:
        store = MemoryStore("/tmp/memory.db")
        service = MemoryService(store, LocalEmbeddingProvider())

        service.remember(
            "Always use type hints",
            scope="global",
            category="preference",
        )

        results = service.recall("type hints", scope="both")
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        config: Optional[MemoryConfig] = None,
        index_cache: Optional[EmbeddingIndexCache] = None,
    ):
        """
        Initialize the memory service.

        Args:
            store: Storage backend
            embedder: Embedding provider, usually wrapped in a cache
            config: Memory configuration
            index_cache: Cache of per-scope stored embeddings
        """
        self._store = store
        self._embedder = embedder
        self.config = config or MemoryConfig()
        self._index_cache = index_cache or EmbeddingIndexCache()

    @property
    def store(self) -> MemoryStore:
        """Get the storage backend."""
        return self._store

    @property
    def embedder(self) -> EmbeddingProvider:
        """Get the embedding provider."""
        return self._embedder

    # ========== Core Memory Operations ==========

    def remember(
        self,
        content: str,
        scope: Union[MemoryScope, str],
        category: Union[MemoryCategory, str],
        project_path: Optional[str] = None,
        importance: Optional[float] = None,
        metadata: Optional[Union[MemoryMetadata, Dict[str, Any]]] = None,
    ) -> Memory:
        """
        Store a new memory with its embedding.

        Args:
            content: The content to remember
            scope: "global" or "project"
            category: Memory category
            project_path: Owning project, required for project scope
            importance: Explicit importance, derived from category and
                content when omitted
            metadata: Optional descriptive fields

        Returns:
            The stored memory

        Raises:
            ValidationError: If the input is invalid
            MemoryServiceError: If embedding or storage fails (recoverable)
        """
        scope, category = self._validate(content, scope, category, project_path, importance)
        content = content.strip()

        if importance is None:
            importance = calculate_importance(content, category)

        if isinstance(metadata, dict):
            metadata = MemoryMetadata.from_dict(metadata)

        memory = Memory(
            content=content,
            category=category,
            scope=scope,
            project_path=project_path if scope == MemoryScope.PROJECT else None,
            importance=float(importance),
            metadata=metadata or MemoryMetadata(),
        )

        try:
            embedding = self._embedder.embed(content)
        except Exception as e:
            raise MemoryServiceError(
                f"Failed to embed memory content: {error_message(e)}",
                code=ErrorCode.MEMORY_STORE_FAILED,
                operation="remember_embedding",
                scope=scope.value,
                project_path=memory.project_path,
                details={"content_length": len(content)},
                cause=e,
            )

        try:
            self._store.save_memory(memory, embedding)
        except Exception as e:
            raise MemoryServiceError(
                f"Failed to store memory: {error_message(e)}",
                code=ErrorCode.MEMORY_STORE_FAILED,
                operation="remember",
                scope=scope.value,
                project_path=memory.project_path,
                details={"memory_id": memory.id},
                cause=e,
            )

        self._index_cache.invalidate(scope.value, memory.project_path)
        logger.info(
            f"Remembered {scope.value} {category.value} memory {memory.id} "
            f"(importance={memory.importance})"
        )
        return memory

    def _validate(self, content, scope, category, project_path, importance):
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(
                "Memory content must not be empty",
                code=ErrorCode.VALIDATION_ERROR,
                operation="remember",
            )

        try:
            scope = MemoryScope(scope)
        except ValueError:
            raise ValidationError(
                f"Invalid memory scope: {scope!r}",
                code=ErrorCode.MEMORY_INVALID_SCOPE,
                operation="remember",
                details={"scope": scope},
            )

        try:
            category = MemoryCategory(category)
        except ValueError:
            raise ValidationError(
                f"Invalid memory category: {category!r}",
                operation="remember",
                details={"category": category},
            )

        if scope == MemoryScope.PROJECT and not (project_path and project_path.strip()):
            raise ValidationError(
                "Project memories require a project path",
                code=ErrorCode.MEMORY_MISSING_PROJECT_PATH,
                operation="remember",
            )

        if importance is not None and not 0.0 <= float(importance) <= 1.0:
            raise ValidationError(
                f"Importance must be between 0 and 1, got {importance}",
                operation="remember",
                details={"importance": importance},
            )

        return scope, category

    def recall(
        self,
        query: str,
        scope: Union[MemoryScope, str] = "both",
        project_path: Optional[str] = None,
        categories: Optional[Iterable[Union[MemoryCategory, str]]] = None,
        limit: int = 10,
        min_score: float = 0.3,
    ) -> List[MemorySearchResult]:
        """
        Search memories with hybrid vector and keyword scoring.

        A failure in one scope is logged and the other scope is still
        searched. If the query cannot be embedded, scoring falls back
        to keywords only.

        Args:
            query: Search query text
            scope: "global", "project" or "both"
            project_path: Project to search for project scope
            categories: Optional category allow-list
            limit: Maximum results
            min_score: Minimum hybrid score

        Returns:
            Results sorted by descending score
        """
        if not query or not query.strip():
            return []

        scope = scope.value if isinstance(scope, MemoryScope) else str(scope)
        if scope not in ("global", "project", "both"):
            raise ValidationError(
                f"Invalid recall scope: {scope!r}",
                code=ErrorCode.MEMORY_INVALID_SCOPE,
                operation="recall",
            )

        try:
            query_embedding = self._embedder.embed(query)
        except Exception as e:
            logger.warning(f"Query embedding failed, using keyword-only recall: {error_message(e)}")
            query_embedding = None

        results: List[MemorySearchResult] = []

        if scope in ("global", "both"):
            try:
                results.extend(self._search_scope(query, query_embedding, MemoryScope.GLOBAL, None))
            except Exception as e:
                logger.warning(f"Global memory recall failed: {error_message(e)}")

        if scope in ("project", "both"):
            if project_path:
                try:
                    results.extend(
                        self._search_scope(query, query_embedding, MemoryScope.PROJECT, project_path)
                    )
                except Exception as e:
                    logger.warning(f"Project memory recall failed for {project_path}: {error_message(e)}")
            elif scope == "project":
                logger.debug("Project recall requested without a project path")

        return rank_results(results, categories=categories, min_score=min_score, limit=limit)

    def _search_scope(
        self,
        query: str,
        query_embedding: Optional[List[float]],
        scope: MemoryScope,
        project_path: Optional[str],
    ) -> List[MemorySearchResult]:
        now = now_ms()
        memories = [
            m for m in self._store.list_memories(scope, project_path)
            if not m.is_expired(now)
        ]
        if not memories:
            return []

        embeddings: Dict[str, List[float]] = {}
        if query_embedding is not None:
            embeddings = self._index_cache.get_or_load(
                scope.value,
                project_path,
                lambda: self._store.get_embeddings(scope, project_path),
            )
            embeddings = self._fill_missing_embeddings(memories, embeddings)

        return score_memories(query, query_embedding, memories, embeddings)

    def _fill_missing_embeddings(
        self,
        memories: Sequence[Memory],
        embeddings: Dict[str, List[float]],
    ) -> Dict[str, List[float]]:
        """Read embeddings of memories written since the index was cached."""
        missing = [m.id for m in memories if m.id not in embeddings]
        if not missing:
            return embeddings

        merged = dict(embeddings)
        for memory_id in missing:
            try:
                vector = self._store.get_embedding(memory_id)
            except (ContextMemoryError, ValueError) as e:
                logger.debug(f"Unreadable embedding for {memory_id}: {error_message(e)}")
                continue
            if vector is not None:
                merged[memory_id] = vector
        return merged

    # ========== Request Context ==========

    def get_context_for_request(
        self,
        messages: Sequence[Any],
        project_path: Optional[str] = None,
        max_global: Optional[int] = None,
        max_project: Optional[int] = None,
    ) -> RequestMemories:
        """
        Select the memories to inject into a request.

        The query is the text of the recent user messages. For each
        enabled scope, the best matches are recalled and then any
        memory with importance >= 0.8 is added, up to the same cap.
        Every returned memory is touched; touch failures are logged
        and ignored.

        Args:
            messages: Chat messages of the request
            project_path: Project of the request
            max_global: Cap on global memories
            max_project: Cap on project memories

        Returns:
            RequestMemories with any non-fatal errors
        """
        auto_inject = self.config.auto_inject
        max_global = auto_inject.max_memories if max_global is None else max_global
        max_project = auto_inject.max_memories if max_project is None else max_project
        result = RequestMemories()

        try:
            query = extract_query(messages)
        except Exception as e:
            result.errors.append(f"Failed to extract query context: {error_message(e)}")
            query = ""

        if query and auto_inject.global_enabled:
            result.global_memories = self._select_for_scope(
                query, MemoryScope.GLOBAL, None, max_global, result.errors
            )

        if query and auto_inject.project_enabled and project_path:
            result.project_memories = self._select_for_scope(
                query, MemoryScope.PROJECT, project_path, max_project, result.errors
            )

        for memories, scope in (
            (result.global_memories, MemoryScope.GLOBAL),
            (result.project_memories, MemoryScope.PROJECT),
        ):
            for memory in memories:
                self._touch(memory, scope)

        if result.errors:
            logger.warning(f"Memory context retrieval errors: {result.errors}")

        return result

    def _select_for_scope(
        self,
        query: str,
        scope: MemoryScope,
        project_path: Optional[str],
        cap: int,
        errors: List[str],
    ) -> List[Memory]:
        if cap <= 0:
            return []

        try:
            recalled = self.recall(
                query,
                scope=scope,
                project_path=project_path,
                limit=cap,
            )
        except Exception as e:
            errors.append(f"Failed to recall {scope.value} memories: {error_message(e)}")
            return []

        selected = [r.memory for r in recalled]
        seen = {m.id for m in selected}

        try:
            now = now_ms()
            for memory in self._store.list_memories(scope, project_path):
                if len(selected) >= cap:
                    break
                if (
                    memory.id not in seen
                    and memory.importance >= IMPORTANCE_OVERRIDE_THRESHOLD
                    and not memory.is_expired(now)
                ):
                    selected.append(memory)
                    seen.add(memory.id)
        except Exception as e:
            errors.append(
                f"Failed to fetch high-importance {scope.value} memories: {error_message(e)}"
            )

        return selected

    def _touch(self, memory: Memory, scope: MemoryScope) -> None:
        """Record an access; failures are logged and ignored."""
        at = now_ms()
        try:
            if self._store.touch_memory(memory.id, scope, at):
                memory.touch(at)
        except Exception as e:
            logger.warning(f"Failed to touch memory {memory.id}: {error_message(e)}")

    # ========== Direct Access ==========

    def get_memory(self, memory_id: str, scope: Union[MemoryScope, str]) -> Optional[Memory]:
        """Get a memory by id."""
        scope = MemoryScope(scope)
        try:
            return self._store.get_memory(memory_id, scope)
        except Exception as e:
            raise wrap_memory_error(
                e, "get_memory", scope=scope.value, details={"memory_id": memory_id}
            )

    def list_memories(
        self,
        scope: Union[MemoryScope, str],
        project_path: Optional[str] = None,
    ) -> List[Memory]:
        """List all memories of a scope, optionally for one project."""
        scope = MemoryScope(scope)
        try:
            return self._store.list_memories(scope, project_path)
        except Exception as e:
            raise wrap_memory_error(e, "list_memories", scope=scope.value, project_path=project_path)

    def delete_memory(self, memory_id: str, scope: Union[MemoryScope, str]) -> bool:
        """
        Delete a memory and its embedding.

        Returns:
            True if the memory existed

        Raises:
            MemoryServiceError: If the deletion fails
        """
        scope = MemoryScope(scope)
        try:
            deleted = self._store.delete_memory(memory_id, scope)
        except Exception as e:
            raise MemoryServiceError(
                f"Failed to delete {scope.value} memory: {memory_id}",
                code=ErrorCode.MEMORY_DELETE_FAILED,
                operation="delete_memory",
                scope=scope.value,
                details={"memory_id": memory_id},
                cause=e,
            )
        self._index_cache.invalidate()
        return deleted

    # ========== Maintenance ==========

    def cleanup(
        self,
        min_importance: Optional[float] = None,
        max_age_days: Optional[float] = None,
    ) -> int:
        """
        Delete stale, unimportant, rarely used memories.

        A memory is deleted only when its importance is below
        ``min_importance`` AND it is older than ``max_age_days`` AND it
        was accessed fewer than 3 times. Individual delete failures are
        logged and the sweep continues.

        Args:
            min_importance: Importance threshold, from config when omitted
            max_age_days: Age threshold in days, from config when omitted

        Returns:
            Number of memories deleted
        """
        retention = self.config.retention
        min_importance = retention.min_importance if min_importance is None else min_importance
        max_age_days = retention.max_age_days if max_age_days is None else max_age_days
        cutoff = now_ms() - max_age_days * DAY_MS

        deleted = 0
        failures: List[str] = []

        for scope in (MemoryScope.GLOBAL, MemoryScope.PROJECT):
            try:
                memories = self._store.list_memories(scope)
            except Exception as e:
                failures.append(f"{scope.value}: {error_message(e)}")
                continue

            for memory in memories:
                if not (
                    memory.importance < min_importance
                    and memory.created_at < cutoff
                    and memory.access_count < CLEANUP_MIN_ACCESS_COUNT
                ):
                    continue
                try:
                    if self._store.delete_memory(memory.id, scope):
                        deleted += 1
                except Exception as e:
                    failures.append(f"{memory.id}: {error_message(e)}")

        if failures:
            logger.warning(f"Memory cleanup had {len(failures)} failures: {failures}")
        if deleted:
            self._index_cache.invalidate()

        logger.info(
            f"Memory cleanup removed {deleted} memories "
            f"(min_importance={min_importance}, max_age_days={max_age_days})"
        )
        return deleted

    def get_stats(self) -> MemoryStats:
        """Get memory counts; store failures are reported in the result."""
        try:
            return MemoryStats(
                global_count=self._store.count_memories(MemoryScope.GLOBAL),
                project_count=self._store.count_memories(MemoryScope.PROJECT),
                instance_id=self._store.instance_id(),
            )
        except Exception as e:
            logger.error(f"Failed to get memory stats: {error_message(e)}")
            return MemoryStats(
                global_count=-1,
                project_count=-1,
                instance_id="error",
                error=error_message(e),
            )

    # ========== Extraction ==========

    def save_remember_tags(
        self,
        text: str,
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> List[Memory]:
        """
        Store the memories requested by ``<remember>`` tags in model output.

        Tags with an unknown category, project tags without a project
        path and tags that fail to store are skipped with a warning.

        Returns:
            The stored memories
        """
        stored = []
        for tag in parse_remember_tags(text):
            try:
                memory = self.remember(
                    tag.content,
                    scope=tag.scope,
                    category=tag.category,
                    project_path=project_path,
                    metadata=MemoryMetadata(source="auto-extract", session_id=session_id),
                )
            except ContextMemoryError as e:
                logger.warning(f"Skipping remember tag ({tag.scope}/{tag.category}): {e}")
                continue
            stored.append(memory)
        return stored
