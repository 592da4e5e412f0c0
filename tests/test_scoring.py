"""
Tests for scoring functions.
"""

import math

import pytest

from context_memory.memory.scoring import (
    CATEGORY_WEIGHTS,
    MAX_MARKER_BOOST,
    calculate_importance,
    cosine_similarity,
    extract_keywords,
    hybrid_score,
    keyword_overlap,
    marker_boost,
    match_type,
    rank_results,
    score_memories,
)
from context_memory.memory.types import Memory, MemoryCategory, MemorySearchResult


def make_memory(content, category="knowledge"):
    return Memory(content=content, category=category, scope="global")


class TestCosineSimilarity:
    """Test cosine similarity."""

    @pytest.mark.parametrize("vector", [[1.0, 2.0, 3.0], [0.5, -0.5], [3.0]])
    def test_identical_vectors(self, vector):
        """Test a vector is fully similar to itself."""
        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-4)

    def test_orthogonal_vectors(self):
        """Test orthogonal unit vectors have zero similarity."""
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0, abs=1e-9)

    def test_opposite_vectors(self):
        """Test opposite vectors have similarity -1."""
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_mismatched_lengths(self):
        """Test vectors of different lengths give 0."""
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0

    def test_zero_vector(self):
        """Test a zero vector gives 0 instead of dividing by zero."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_empty_vectors(self):
        """Test empty vectors give 0."""
        assert cosine_similarity([], []) == 0.0


class TestKeywordOverlap:
    """Test keyword extraction and overlap."""

    def test_short_words_dropped(self):
        """Test words of two characters or fewer are ignored."""
        assert extract_keywords("Use an ORM in Go") == ["use", "orm"]

    def test_overlap_fraction(self):
        """Test overlap is matches over keywords."""
        keywords = extract_keywords("postgres migration tooling")

        assert keyword_overlap(keywords, "We run Postgres migrations with alembic") == pytest.approx(2 / 3)

    def test_substring_match(self):
        """Test keywords match as substrings."""
        assert keyword_overlap(["test"], "pytest fixtures") == 1.0

    def test_no_keywords(self):
        """Test a query with only short words scores 0."""
        assert keyword_overlap(extract_keywords("a to be"), "a to be") == 0.0


class TestHybridScore:
    """Test hybrid scoring."""

    def test_weights(self):
        """Test 0.7 vector + 0.3 keyword weighting."""
        assert hybrid_score(1.0, 1.0) == pytest.approx(1.0)
        assert hybrid_score(0.5, 0.0) == pytest.approx(0.35)
        assert hybrid_score(0.0, 1.0) == pytest.approx(0.3)

    def test_match_type(self):
        """Test match type classification."""
        assert match_type(0.4, 0.5) == "hybrid"
        assert match_type(0.4, 0.0) == "vector"
        assert match_type(0.0, 0.5) == "keyword"
        assert match_type(0.0, 0.0) == "keyword"
        assert match_type(-0.2, 0.5) == "keyword"

    def test_score_memories_with_embeddings(self):
        """Test scoring combines both components."""
        memory = make_memory("sqlite uses WAL mode")
        results = score_memories("sqlite wal", [1.0, 0.0], [memory], {memory.id: [1.0, 0.0]})

        assert len(results) == 1
        assert results[0].score == pytest.approx(0.7 + 0.3)
        assert results[0].match_type == "hybrid"

    def test_score_memories_without_query_embedding(self):
        """Test keyword-only scoring when the query embedding is missing."""
        memory = make_memory("sqlite uses WAL mode")
        results = score_memories("sqlite", None, [memory], {memory.id: [1.0, 0.0]})

        assert results[0].score == pytest.approx(0.3)
        assert results[0].match_type == "keyword"

    def test_score_memories_missing_embedding(self):
        """Test a memory without an embedding is scored on keywords."""
        memory = make_memory("sqlite uses WAL mode")
        results = score_memories("nothing matches", [1.0, 0.0], [memory], {})

        assert results[0].score == 0.0


class TestRankResults:
    """Test filtering and ordering."""

    def make_results(self):
        return [
            MemorySearchResult(make_memory("a", "code"), 0.5, "vector"),
            MemorySearchResult(make_memory("b", "preference"), 0.9, "hybrid"),
            MemorySearchResult(make_memory("c", "code"), 0.2, "keyword"),
            MemorySearchResult(make_memory("d", "code"), 0.9, "vector"),
        ]

    def test_sorted_and_filtered(self):
        """Test min score filtering and descending order."""
        ranked = rank_results(self.make_results(), min_score=0.3)

        assert [r.memory.content for r in ranked] == ["b", "d", "a"]

    def test_category_filter(self):
        """Test the category allow-list."""
        ranked = rank_results(self.make_results(), categories=["code"], min_score=0.0)

        assert [r.memory.content for r in ranked] == ["d", "a", "c"]

    def test_limit(self):
        """Test results are truncated to the limit."""
        assert len(rank_results(self.make_results(), min_score=0.0, limit=2)) == 2

    def test_lower_min_score_never_returns_fewer(self):
        """Test a lower threshold returns at least as many results."""
        results = self.make_results()

        assert len(rank_results(results, min_score=0.01)) >= len(rank_results(results, min_score=0.9))


class TestImportance:
    """Test importance calculation."""

    def test_category_base_weights(self):
        """Test base weight per category."""
        assert calculate_importance("plain fact", MemoryCategory.PREFERENCE) == 0.8
        assert calculate_importance("plain fact", MemoryCategory.CONTEXT) == 0.4
        assert set(CATEGORY_WEIGHTS) == set(MemoryCategory)

    def test_marker_boost(self):
        """Test marker words raise importance."""
        assert calculate_importance("This is important", MemoryCategory.KNOWLEDGE) == pytest.approx(0.6)

    def test_boost_capped(self):
        """Test the total marker boost never exceeds the cap."""
        boost, found = marker_boost("Critical: always do this, never that, it is important")

        assert boost == MAX_MARKER_BOOST
        assert set(found) == {"critical", "always", "never", "important"}
        assert calculate_importance(
            "critical always never important", MemoryCategory.CONTEXT
        ) == pytest.approx(0.55)

    def test_clamped_to_one(self):
        """Test importance never exceeds 1.0."""
        assert calculate_importance("I always prefer this", MemoryCategory.PREFERENCE) == pytest.approx(0.95)
        for category in MemoryCategory:
            assert calculate_importance("critical always never", category) <= 1.0

    def test_case_insensitive(self):
        """Test markers match regardless of case."""
        assert calculate_importance("NEVER commit secrets", MemoryCategory.WORKFLOW) == pytest.approx(0.7)

    def test_result_is_finite(self):
        """Test importance is a plain float."""
        assert math.isfinite(calculate_importance("x", "code"))
