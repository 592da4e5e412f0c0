"""
Memory type definitions for the memory system.

Persisted records use the camelCase field names of the on-disk JSON
document so databases stay readable by other tools sharing the file.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def now_ms() -> int:
    """Get the current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def embedding_key(memory_id: str) -> str:
    """Get the blob key under which a memory's embedding is stored."""
    return f"embeddings/{memory_id}"


class MemoryCategory(str, Enum):
    """Kinds of knowledge a memory can hold."""

    PREFERENCE = "preference"
    PATTERN = "pattern"
    KNOWLEDGE = "knowledge"
    DECISION = "decision"
    ARCHITECTURE = "architecture"
    CONTEXT = "context"
    CODE = "code"
    ERROR = "error"
    WORKFLOW = "workflow"


class MemoryScope(str, Enum):
    """Visibility of a memory."""

    # Cross-project knowledge about the user
    GLOBAL = "global"

    # Knowledge tied to a single project path
    PROJECT = "project"


@dataclass
class MemoryMetadata:
    """
    Optional descriptive fields attached to a memory.

    Attributes:
        source: Where the memory came from (e.g. "user", "auto-extract")
        tags: Free-form labels
        related_files: Files the memory refers to
        session_id: Gateway session that created the memory
        expires_at: Optional expiry timestamp in milliseconds
    """

    source: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    related_files: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting unset fields."""
        result: Dict[str, Any] = {}
        if self.source is not None:
            result["source"] = self.source
        if self.tags:
            result["tags"] = list(self.tags)
        if self.related_files:
            result["relatedFiles"] = list(self.related_files)
        if self.session_id is not None:
            result["sessionId"] = self.session_id
        if self.expires_at is not None:
            result["expiresAt"] = self.expires_at
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MemoryMetadata":
        """Create from dictionary. Unknown keys are ignored."""
        data = data or {}
        return cls(
            source=data.get("source"),
            tags=list(data.get("tags") or []),
            related_files=list(data.get("relatedFiles") or data.get("related_files") or []),
            session_id=data.get("sessionId") or data.get("session_id"),
            expires_at=data.get("expiresAt") or data.get("expires_at"),
        )


@dataclass
class Memory:
    """
    A persisted fact with scope, category and importance.

    Attributes:
        content: The text of the memory
        category: What kind of knowledge it is
        scope: Global or project
        project_path: Owning project, required for project scope
        importance: Score in [0, 1] used for injection and retention
        id: Unique identifier, assigned at creation
        created_at: Creation time in milliseconds
        updated_at: Last modification time in milliseconds
        access_count: Number of times the memory was used
        last_accessed_at: Time of the last access in milliseconds
        metadata: Optional descriptive fields
    """

    content: str
    category: MemoryCategory
    scope: MemoryScope
    project_path: Optional[str] = None
    importance: float = 0.5
    id: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    access_count: int = 0
    last_accessed_at: Optional[int] = None
    metadata: MemoryMetadata = field(default_factory=MemoryMetadata)

    def __post_init__(self):
        """Initialize defaults after creation."""
        if isinstance(self.category, str):
            self.category = MemoryCategory(self.category)
        if isinstance(self.scope, str):
            self.scope = MemoryScope(self.scope)
        if isinstance(self.metadata, dict):
            self.metadata = MemoryMetadata.from_dict(self.metadata)
        if self.id is None:
            self.id = str(uuid.uuid4())
        if self.created_at is None:
            self.created_at = now_ms()
        if self.updated_at is None or self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def embedding_key(self) -> str:
        """Blob key of this memory's embedding."""
        return embedding_key(self.id)

    def is_expired(self, at: Optional[int] = None) -> bool:
        """Check whether the optional expiry timestamp has passed."""
        if self.metadata.expires_at is None:
            return False
        return (at if at is not None else now_ms()) >= self.metadata.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted JSON document shape."""
        data: Dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "category": self.category.value,
            "scope": self.scope.value,
            "importance": self.importance,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "accessCount": self.access_count,
        }
        if self.project_path is not None:
            data["projectPath"] = self.project_path
        if self.last_accessed_at is not None:
            data["lastAccessedAt"] = self.last_accessed_at
        metadata = self.metadata.to_dict()
        if metadata:
            data["metadata"] = metadata
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Memory":
        """Create from the persisted JSON document shape."""
        return cls(
            id=data.get("id"),
            content=data.get("content", ""),
            category=MemoryCategory(data.get("category", "context")),
            scope=MemoryScope(data.get("scope", "global")),
            project_path=data.get("projectPath"),
            importance=float(data.get("importance", 0.5)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            access_count=int(data.get("accessCount", 0)),
            last_accessed_at=data.get("lastAccessedAt"),
            metadata=MemoryMetadata.from_dict(data.get("metadata")),
        )

    def touch(self, at: Optional[int] = None):
        """Update access time and count."""
        self.access_count += 1
        self.last_accessed_at = at if at is not None else now_ms()


@dataclass
class MemorySearchResult:
    """
    Result of a memory search.

    Attributes:
        memory: The matching memory
        score: Hybrid relevance score (higher is better)
        match_type: "vector", "keyword" or "hybrid"
    """

    memory: Memory
    score: float = 0.0
    match_type: str = "keyword"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "memory": self.memory.to_dict(),
            "score": self.score,
            "match_type": self.match_type,
        }


@dataclass
class BlobMeta:
    """Descriptive information about a stored binary blob."""

    key: str
    size: int
    hash: str
    mime_type: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "size": self.size,
            "hash": self.hash,
            "mime_type": self.mime_type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class MemoryStats:
    """Counts reported by the memory service."""

    global_count: int = 0
    project_count: int = 0
    instance_id: str = "unknown"
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "global_count": self.global_count,
            "project_count": self.project_count,
            "instance_id": self.instance_id,
        }
        if self.error:
            result["error"] = self.error
        return result
