"""
Token budget functions.

Pure functions over plain data: estimating prompt size, fitting
prioritized sections into a budget, and truncating sections that must
be kept.
"""

from dataclasses import replace
from typing import Any, List, Sequence, Tuple

from .types import CHARS_PER_TOKEN, ContextPriority, ContextSection, estimate_tokens


# Critical sections are only truncated into a remaining allowance above this
MIN_TRUNCATION_TOKENS = 100

# Budget floor when the system prompt and response reserve leave too little
MIN_AVAILABLE_TOKENS = 100

TRUNCATION_MARKER = "\n... (truncated for token limit)"


def system_text(system: Any) -> str:
    """
    Text of an original system prompt.

    Accepts a string, or a list of content blocks of which only
    ``type == "text"`` blocks contribute (joined by blank lines).
    """
    if not system:
        return ""
    if isinstance(system, str):
        return system
    if isinstance(system, list):
        return "\n\n".join(
            block.get("text", "") for block in system
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""


def estimate_system_tokens(system: Any) -> int:
    """Estimate the tokens of a system prompt; each text block is rounded up separately."""
    if not system:
        return 0
    if isinstance(system, str):
        return estimate_tokens(system)
    if isinstance(system, list):
        return sum(
            estimate_tokens(block.get("text", ""))
            for block in system
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return 0


def sort_by_priority(sections: Sequence[ContextSection]) -> List[ContextSection]:
    """Sort by descending priority; equal priorities keep their original order."""
    return sorted(sections, key=lambda s: s.priority, reverse=True)


def truncate_section(section: ContextSection, max_tokens: int) -> ContextSection:
    """
    Cut a section down to ``max_tokens``.

    The content is sliced to ``max_tokens * 4`` characters and a marker
    is appended; the copy reports ``token_count == max_tokens`` and
    ``metadata["truncated"] = True``. The original is not modified.
    """
    content = section.content[:max_tokens * CHARS_PER_TOKEN] + TRUNCATION_MARKER
    return replace(
        section,
        content=content,
        token_count=max_tokens,
        metadata={**section.metadata, "truncated": True},
    )


def fit_to_budget(
    sections: Sequence[ContextSection],
    available_tokens: int,
) -> Tuple[List[ContextSection], List[ContextSection]]:
    """
    Greedily fit sections into a token budget, highest priority first.

    A section that does not fit is dropped, unless it is CRITICAL and
    more than 100 tokens remain, in which case it is truncated to the
    remaining allowance.

    Args:
        sections: Candidate sections
        available_tokens: Token budget

    Returns:
        Tuple of (included, trimmed), both in priority order
    """
    included: List[ContextSection] = []
    trimmed: List[ContextSection] = []
    used = 0

    for section in sort_by_priority(sections):
        if used + section.token_count <= available_tokens:
            included.append(section)
            used += section.token_count
        elif section.priority >= ContextPriority.CRITICAL:
            remaining = available_tokens - used
            if remaining > MIN_TRUNCATION_TOKENS:
                truncated = truncate_section(section, remaining)
                included.append(truncated)
                used += truncated.token_count
            else:
                trimmed.append(section)
        else:
            trimmed.append(section)

    return included, trimmed


def assemble_prompt(system: Any, sections: Sequence[ContextSection]) -> str:
    """
    Join sections in priority order, then the original system prompt.

    Parts are separated by blank lines; an empty original prompt adds
    nothing.
    """
    parts = [s.content for s in sort_by_priority(sections)]
    original = system_text(system)
    if original:
        parts.append(original)
    return "\n\n".join(parts)
