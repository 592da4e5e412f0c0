"""
Dynamic context assembly.

Turns memories and static guidance into prioritized sections and fits
them into a token budget ahead of the caller's own system prompt.
"""

from .types import (
    ContextPriority,
    ContextCategory,
    ContextSection,
    TaskType,
    ComplexityLevel,
    RequestAnalysis,
    ContextBuildResult,
    estimate_tokens,
)

from .analysis import (
    RequestAnalyzer,
)

from .budget import (
    estimate_system_tokens,
    fit_to_budget,
    truncate_section,
    assemble_prompt,
)

from .builder import (
    DynamicContextBuilder,
)


__all__ = [
    # Types
    "ContextPriority",
    "ContextCategory",
    "ContextSection",
    "TaskType",
    "ComplexityLevel",
    "RequestAnalysis",
    "ContextBuildResult",
    "estimate_tokens",
    # Analysis
    "RequestAnalyzer",
    # Budget
    "estimate_system_tokens",
    "fit_to_budget",
    "truncate_section",
    "assemble_prompt",
    # Builder
    "DynamicContextBuilder",
]
