"""
Parsing of ``<remember>`` tags in model output.

The model is instructed to emit blocks such as::

    <remember scope="project" category="decision">
    Use SQLite for the cache layer
    </remember>

which are extracted as memories and removed from the text shown to
the user.
"""

import re
from dataclasses import dataclass
from typing import List


TAG_PATTERN = re.compile(r"<remember\s+([^>]*)>(.*?)</remember>", re.IGNORECASE | re.DOTALL)
SCOPE_PATTERN = re.compile(r"scope\s*=\s*[\"'](global|project)[\"']", re.IGNORECASE)
CATEGORY_PATTERN = re.compile(r"category\s*=\s*[\"'](\w+)[\"']", re.IGNORECASE)


@dataclass
class ParsedRememberTag:
    """A memory requested by the model."""

    scope: str
    category: str
    content: str


def parse_remember_tags(text: str) -> List[ParsedRememberTag]:
    """
    Extract remember tags from text.

    Attribute order, quote style and surrounding whitespace are free.
    Tags missing either a valid scope or a category are ignored.

    Args:
        text: Model output

    Returns:
        Parsed tags in document order
    """
    results = []
    for match in TAG_PATTERN.finditer(text or ""):
        attrs, inner = match.group(1), match.group(2)
        scope = SCOPE_PATTERN.search(attrs)
        category = CATEGORY_PATTERN.search(attrs)
        if scope and category:
            results.append(ParsedRememberTag(
                scope=scope.group(1).lower(),
                category=category.group(1).lower(),
                content=inner.strip(),
            ))
    return results


def strip_remember_tags(text: str) -> str:
    """Remove every remember block and collapse the blank lines left behind."""
    stripped = TAG_PATTERN.sub("", text or "")
    return re.sub(r"\n{3,}", "\n\n", stripped).strip()
