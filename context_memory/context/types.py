"""
Context builder types.
"""

import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


# Rough ratio used for every token estimate
CHARS_PER_TOKEN = 4


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate the token count of text as ceil(len / 4)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class ContextPriority(IntEnum):
    """Priority levels for prompt sections; higher survives budget pressure."""
    CRITICAL = 100
    HIGH = 75
    MEDIUM = 50
    LOW = 25
    OPTIONAL = 0


class ContextCategory(str, Enum):
    """Kind of content a section carries."""
    MEMORY = "memory"
    PROJECT = "project"
    SESSION = "session"
    INSTRUCTION = "instruction"
    EMPHASIS = "emphasis"
    ENGINEERING = "engineering"
    SYSTEM = "system"


class TaskType(str, Enum):
    """Heuristic classification of a request."""
    CODE = "code"
    DEBUG = "debug"
    EXPLAIN = "explain"
    REFACTOR = "refactor"
    TEST = "test"
    REVIEW = "review"
    GENERAL = "general"


class ComplexityLevel(str, Enum):
    """Bucketed complexity of a request."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


@dataclass
class ContextSection:
    """
    A renderable block of the assembled system prompt.

    ``token_count`` is estimated from the content when not given.
    """

    id: str
    name: str
    content: str
    priority: ContextPriority
    category: ContextCategory
    token_count: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.priority = ContextPriority(self.priority)
        self.category = ContextCategory(self.category)
        if self.token_count is None:
            self.token_count = estimate_tokens(self.content)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "priority": int(self.priority),
            "token_count": self.token_count,
            "category": self.category.value,
            "metadata": dict(self.metadata),
        }


@dataclass
class RequestAnalysis:
    """Per-request heuristic analysis used to select sections."""

    task_type: TaskType = TaskType.GENERAL
    complexity: ComplexityLevel = ComplexityLevel.MODERATE
    complexity_score: int = 50
    requires_memory: bool = True
    requires_project_context: bool = True
    keywords: List[str] = field(default_factory=list)
    entities: List[str] = field(default_factory=list)
    exploration_risk: bool = False
    task_count: int = 0

    @classmethod
    def default(cls) -> "RequestAnalysis":
        """Generic analysis used when the request cannot be analysed."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "task_type": self.task_type.value,
            "complexity": self.complexity.value,
            "complexity_score": self.complexity_score,
            "requires_memory": self.requires_memory,
            "requires_project_context": self.requires_project_context,
            "keywords": list(self.keywords),
            "entities": list(self.entities),
            "exploration_risk": self.exploration_risk,
            "task_count": self.task_count,
        }


@dataclass
class ContextBuildResult:
    """Outcome of one context build."""

    system_prompt: str
    sections: List[ContextSection]
    total_tokens: int
    trimmed_sections: List[ContextSection]
    analysis: RequestAnalysis
    errors: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, summarising sections by id."""
        return {
            "system_prompt": self.system_prompt,
            "sections": [s.id for s in self.sections],
            "total_tokens": self.total_tokens,
            "trimmed_sections": [s.id for s in self.trimmed_sections],
            "analysis": self.analysis.to_dict(),
            "errors": self.errors,
        }
