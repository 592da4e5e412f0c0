"""
Section builders for the dynamic context.
"""

from .memory import build_memory_sections, format_memories
from .instruction import build_instruction_sections
from .emphasis import build_emphasis_sections
from .engineering import build_engineering_sections


__all__ = [
    "build_memory_sections",
    "format_memories",
    "build_instruction_sections",
    "build_emphasis_sections",
    "build_engineering_sections",
]
