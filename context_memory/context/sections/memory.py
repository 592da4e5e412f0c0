"""
Memory sections - format retrieved memories for the system prompt.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from ...memory.service import MemoryService, RequestMemories
from ...memory.types import Memory, MemoryCategory, MemoryScope
from ..types import ContextCategory, ContextPriority, ContextSection


logger = logging.getLogger(__name__)


CATEGORY_DISPLAY_NAMES: Dict[MemoryCategory, str] = {
    MemoryCategory.PREFERENCE: "User Preferences",
    MemoryCategory.PATTERN: "Patterns & Conventions",
    MemoryCategory.KNOWLEDGE: "Domain Knowledge",
    MemoryCategory.DECISION: "Decisions Made",
    MemoryCategory.ARCHITECTURE: "Architecture",
    MemoryCategory.CONTEXT: "Context",
    MemoryCategory.CODE: "Code Knowledge",
    MemoryCategory.ERROR: "Past Errors & Solutions",
    MemoryCategory.WORKFLOW: "Workflow Preferences",
}

_SCOPE_HEADERS = {
    MemoryScope.GLOBAL: (
        '<global_memory scope="cross-project">',
        "Your persistent knowledge about this user across all projects:",
        "</global_memory>",
    ),
    MemoryScope.PROJECT: (
        '<project_memory scope="current-project">',
        "Your knowledge about this specific project:",
        "</project_memory>",
    ),
}


def format_memories(memories: Sequence[Memory], scope: MemoryScope) -> str:
    """
    Render memories as a tagged block grouped by category.

    Categories appear in order of first occurrence; memories keep their
    order within a category.
    """
    opening, intro, closing = _SCOPE_HEADERS[MemoryScope(scope)]

    grouped: "OrderedDict[MemoryCategory, List[Memory]]" = OrderedDict()
    for memory in memories:
        grouped.setdefault(memory.category, []).append(memory)

    lines = [opening, intro, ""]
    for category, items in grouped.items():
        lines.append(f"## {CATEGORY_DISPLAY_NAMES.get(category, category.value)}")
        lines.extend(f"- {m.content}" for m in items)
        lines.append("")
    lines.append(closing)
    return "\n".join(lines)


def format_memory_status(context: RequestMemories) -> str:
    """Short summary of how many memories were injected."""
    return "\n".join([
        "<memory_status>",
        f"Memories loaded for this request: {context.total} "
        f"({len(context.global_memories)} global, {len(context.project_memories)} project).",
        "They were selected by relevance to the recent conversation and importance.",
        "</memory_status>",
    ])


def build_memory_sections(
    memory_service: Optional[MemoryService],
    messages: Sequence[Any],
    project_path: Optional[str] = None,
    errors: Optional[List[str]] = None,
) -> List[ContextSection]:
    """
    Build the global, project and status memory sections.

    Args:
        memory_service: Service to query; no sections without one
        messages: Chat messages of the request
        project_path: Project of the request
        errors: List receiving non-fatal retrieval errors

    Returns:
        Sections for each non-empty scope, plus a status section when
        any memory was found
    """
    if memory_service is None:
        return []

    context = memory_service.get_context_for_request(messages, project_path=project_path)
    if errors is not None:
        errors.extend(context.errors)

    sections = []
    for scope, memories, section_id, name in (
        (MemoryScope.GLOBAL, context.global_memories, "global-memory", "Global Memory"),
        (MemoryScope.PROJECT, context.project_memories, "project-memory", "Project Memory"),
    ):
        if memories:
            sections.append(ContextSection(
                id=section_id,
                name=name,
                content=format_memories(memories, scope),
                priority=ContextPriority.HIGH,
                category=ContextCategory.MEMORY,
                metadata={"memory_count": len(memories)},
            ))

    if context.total:
        sections.append(ContextSection(
            id="memory-status",
            name="Memory Status",
            content=format_memory_status(context),
            priority=ContextPriority.LOW,
            category=ContextCategory.MEMORY,
            metadata={
                "global_count": len(context.global_memories),
                "project_count": len(context.project_memories),
            },
        ))

    logger.debug(f"Built {len(sections)} memory sections from {context.total} memories")
    return sections
