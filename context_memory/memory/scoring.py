"""
Scoring functions for memory retrieval and importance.

Everything in this module is a pure function over plain data so the
ranking and importance rules can be tested without a store or an
embedding provider.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .types import Memory, MemoryCategory, MemorySearchResult


VECTOR_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3

# Query words this short are ignored by keyword matching
MIN_KEYWORD_LENGTH = 3

DEFAULT_IMPORTANCE = 0.5

CATEGORY_WEIGHTS: Dict[MemoryCategory, float] = {
    MemoryCategory.PREFERENCE: 0.8,
    MemoryCategory.DECISION: 0.7,
    MemoryCategory.ARCHITECTURE: 0.7,
    MemoryCategory.PATTERN: 0.6,
    MemoryCategory.WORKFLOW: 0.6,
    MemoryCategory.KNOWLEDGE: 0.5,
    MemoryCategory.ERROR: 0.5,
    MemoryCategory.CONTEXT: 0.4,
    MemoryCategory.CODE: 0.4,
}

IMPORTANCE_MARKERS: Dict[str, float] = {
    "important": 0.1,
    "always": 0.1,
    "never": 0.1,
    "prefer": 0.05,
    "critical": 0.15,
}

MAX_MARKER_BOOST = 0.15


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Calculate the cosine similarity of two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when the lengths differ or
        either vector has zero magnitude
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0

    return float(np.dot(va, vb) / norm)


def extract_keywords(query: str) -> List[str]:
    """Split a query into lowercase keywords longer than two characters."""
    return [word for word in query.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]


def keyword_overlap(keywords: Sequence[str], content: str) -> float:
    """
    Fraction of keywords that occur as substrings of the content.

    Args:
        keywords: Lowercase keywords from extract_keywords
        content: Memory content

    Returns:
        Overlap in [0, 1]; 0.0 when there are no keywords
    """
    if not keywords:
        return 0.0
    lower = content.lower()
    matches = sum(1 for keyword in keywords if keyword in lower)
    return matches / len(keywords)


def match_type(vector_score: float, keyword_score: float) -> str:
    """Classify how a result matched."""
    if vector_score > 0 and keyword_score > 0:
        return "hybrid"
    if vector_score > 0:
        return "vector"
    return "keyword"


def hybrid_score(vector_score: float, keyword_score: float) -> float:
    """Combine vector and keyword scores into one ranking score."""
    return VECTOR_WEIGHT * vector_score + KEYWORD_WEIGHT * keyword_score


def score_memories(
    query: str,
    query_embedding: Optional[Sequence[float]],
    memories: Iterable[Memory],
    embeddings: Dict[str, Sequence[float]],
) -> List[MemorySearchResult]:
    """
    Score every memory against a query.

    Memories without an embedding (or a missing query embedding) are
    scored on keywords alone.

    Args:
        query: Raw query text
        query_embedding: Embedding of the query, or None
        memories: Candidate memories
        embeddings: Memory id to embedding

    Returns:
        Unsorted, unfiltered search results
    """
    keywords = extract_keywords(query)
    results = []

    for memory in memories:
        vector = 0.0
        embedding = embeddings.get(memory.id)
        if query_embedding is not None and embedding is not None:
            vector = cosine_similarity(query_embedding, embedding)
        keyword = keyword_overlap(keywords, memory.content)

        results.append(MemorySearchResult(
            memory=memory,
            score=hybrid_score(vector, keyword),
            match_type=match_type(vector, keyword),
        ))

    return results


def rank_results(
    results: Iterable[MemorySearchResult],
    categories: Optional[Iterable[MemoryCategory]] = None,
    min_score: float = 0.3,
    limit: int = 10,
) -> List[MemorySearchResult]:
    """
    Filter and order search results.

    Results are filtered by the optional category allow-list, then by
    ``score >= min_score``, sorted by descending score (stable for
    equal scores) and truncated to ``limit``.
    """
    allowed = {MemoryCategory(c) for c in categories} if categories else None

    filtered = [
        r for r in results
        if (allowed is None or r.memory.category in allowed) and r.score >= min_score
    ]
    filtered.sort(key=lambda r: r.score, reverse=True)
    return filtered[:max(limit, 0)]


def marker_boost(content: str) -> Tuple[float, List[str]]:
    """
    Total importance boost from marker words in the content.

    Returns:
        Tuple of (boost capped at MAX_MARKER_BOOST, markers found)
    """
    lower = content.lower()
    found = [marker for marker in IMPORTANCE_MARKERS if marker in lower]
    boost = sum(IMPORTANCE_MARKERS[marker] for marker in found)
    return min(boost, MAX_MARKER_BOOST), found


def calculate_importance(content: str, category: MemoryCategory) -> float:
    """
    Derive an importance score from category and content.

    Args:
        content: Memory content
        category: Memory category

    Returns:
        Importance in [0, 1]
    """
    base = CATEGORY_WEIGHTS.get(MemoryCategory(category), DEFAULT_IMPORTANCE)
    boost, _ = marker_boost(content)
    return round(min(1.0, base + boost), 4)
