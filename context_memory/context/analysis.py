"""
Request Analyzer - heuristic classification of chat requests.

Nothing here is learned: task type, complexity, exploration risk and
task count all come from fixed keyword lists and regular expressions.
"""

import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from .types import ComplexityLevel, RequestAnalysis, TaskType


logger = logging.getLogger(__name__)


# First match wins, so order matters
TASK_TYPE_KEYWORDS: List[Tuple[TaskType, Tuple[str, ...]]] = [
    (TaskType.DEBUG, ("debug", "error", "fix", "bug")),
    (TaskType.REFACTOR, ("refactor", "clean up", "improve")),
    (TaskType.TEST, ("test", "spec", "coverage")),
    (TaskType.REVIEW, ("review", "check", "audit")),
    (TaskType.EXPLAIN, ("explain", "how does", "what is")),
    (TaskType.CODE, ("implement", "create", "add", "build")),
]

TECHNICAL_KEYWORDS = (
    "architecture", "database", "migration", "concurrency", "async",
    "performance", "security", "api", "schema", "integration", "deploy",
    "algorithm", "refactor", "distributed", "cache",
)

MULTI_STEP_INDICATORS = (
    "first", "then", "after that", "finally", "step", "next", "also",
    "additionally",
)

EXPLORATION_PHRASES = (
    "explore", "walk me through", "go through", "tell me about",
    "look around", "dig into", "give me an overview", "tour of",
)

STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "to", "of", "in",
    "for", "on", "with", "at", "by", "from", "as", "into", "through",
    "and", "but", "or", "nor", "so", "yet", "both", "either", "neither",
    "not", "only", "own", "same", "than", "too", "very", "just", "also",
    "this", "that", "these", "those", "i", "you", "he", "she", "it",
    "we", "they", "me", "him", "her", "us", "them", "my", "your", "his",
})

FILE_PATH_PATTERN = re.compile(
    r"[\w\-/]+\.(?:ts|js|tsx|jsx|py|go|rs|java|cpp|c|h|css|scss|html|json|yaml|yml|md|txt)\b"
)
IDENTIFIER_PATTERN = re.compile(r"\b[A-Z][a-zA-Z0-9]+\b|\b[a-z]+[A-Z][a-zA-Z0-9]*\b")
NUMBERED_ITEM_PATTERN = re.compile(r"^\s*\d+[.)]\s+\S", re.MULTILINE)
BULLET_ITEM_PATTERN = re.compile(r"^\s*[-*•]\s+\S", re.MULTILINE)
CONNECTOR_PATTERN = re.compile(r"(?:^|[\s,;.])(?:and|then|also|next)\s+\S", re.IGNORECASE)

MAX_KEYWORDS = 10
MAX_IDENTIFIERS = 5

# Messages considered when picking the message to analyse
ANALYSIS_WINDOW = 3


def _keyword_hits(lower: str, keywords: Sequence[str]) -> int:
    return sum(1 for keyword in keywords if re.search(rf"\b{re.escape(keyword)}\b", lower))


class RequestAnalyzer:
    """
    Derives a RequestAnalysis from chat messages.

    Example:
        >>> analysis = RequestAnalyzer().analyze(
        ...     [{"role": "user", "content": "Fix the crash in parser.py"}]
        ... )
        >>> analysis.task_type
        <TaskType.DEBUG: 'debug'>
    """

    def analyze(self, messages: Optional[Sequence[Any]]) -> RequestAnalysis:
        """
        Analyse a request.

        The first user message with string content among the last three
        messages is analysed; if there is none, the analysis describes
        an empty message.

        Args:
            messages: Chat messages of the request

        Returns:
            RequestAnalysis
        """
        messages = list(messages or [])
        content = self._select_content(messages)

        score = self.complexity_score(content, len(messages))
        analysis = RequestAnalysis(
            task_type=self.detect_task_type(content),
            complexity=self.complexity_level(score),
            complexity_score=score,
            keywords=self.extract_keywords(content),
            entities=self.extract_entities(content),
            exploration_risk=self.detect_exploration_risk(content),
            task_count=self.count_tasks(content),
        )

        logger.debug(
            f"Analysed request: type={analysis.task_type.value} "
            f"complexity={analysis.complexity.value} ({score}) tasks={analysis.task_count}"
        )
        return analysis

    @staticmethod
    def _select_content(messages: List[Any]) -> str:
        for message in messages[-ANALYSIS_WINDOW:]:
            if isinstance(message, dict) and message.get("role") == "user":
                content = message.get("content")
                return content if isinstance(content, str) else ""
        return ""

    # ========== Classification ==========

    def detect_task_type(self, content: str) -> TaskType:
        """Classify by substring match; debug beats refactor beats test, and so on."""
        lower = content.lower()
        for task_type, keywords in TASK_TYPE_KEYWORDS:
            if any(keyword in lower for keyword in keywords):
                return task_type
        return TaskType.GENERAL

    def complexity_score(self, content: str, message_count: int) -> int:
        """
        Score complexity 0-100 as the sum of bucketed sub-scores.

        Sub-scores: message length (up to 30), message count (up to 20),
        distinct file mentions (up to 20), technical keywords (up to 20)
        and multi-step indicators (up to 15).
        """
        lower = content.lower()
        score = 0

        length = len(content)
        if length > 1000:
            score += 30
        elif length > 500:
            score += 20
        elif length > 200:
            score += 10

        if message_count > 10:
            score += 20
        elif message_count > 5:
            score += 10

        files = len(set(FILE_PATH_PATTERN.findall(content)))
        if files >= 5:
            score += 20
        elif files >= 2:
            score += 10
        elif files >= 1:
            score += 5

        technical = _keyword_hits(lower, TECHNICAL_KEYWORDS)
        if technical >= 5:
            score += 20
        elif technical >= 3:
            score += 15
        elif technical >= 1:
            score += 5

        steps = _keyword_hits(lower, MULTI_STEP_INDICATORS)
        if steps >= 4:
            score += 15
        elif steps >= 2:
            score += 10
        elif steps >= 1:
            score += 5

        return min(score, 100)

    @staticmethod
    def complexity_level(score: int) -> ComplexityLevel:
        if score >= 60:
            return ComplexityLevel.COMPLEX
        if score >= 30:
            return ComplexityLevel.MODERATE
        return ComplexityLevel.SIMPLE

    def detect_exploration_risk(self, content: str) -> bool:
        """True when the request invites open-ended exploration."""
        lower = content.lower()
        return any(phrase in lower for phrase in EXPLORATION_PHRASES)

    def count_tasks(self, content: str) -> int:
        """
        Estimate how many tasks a message asks for.

        The largest of: numbered list items, bulleted list items, and
        clauses led by and/then/also/next (one plus the connectors).
        An empty message has no tasks.
        """
        if not content.strip():
            return 0
        numbered = len(NUMBERED_ITEM_PATTERN.findall(content))
        bullets = len(BULLET_ITEM_PATTERN.findall(content))
        clauses = 1 + len(CONNECTOR_PATTERN.findall(content))
        return max(numbered, bullets, clauses)

    # ========== Extraction ==========

    def extract_keywords(self, content: str) -> List[str]:
        """First ten lowercase words longer than two characters that are not stop words."""
        words = content.lower().split()
        return [w for w in words if len(w) > 2 and w not in STOP_WORDS][:MAX_KEYWORDS]

    def extract_entities(self, content: str) -> List[str]:
        """File paths and up to five PascalCase/camelCase identifiers, deduplicated in order."""
        entities = [m.group(0) for m in FILE_PATH_PATTERN.finditer(content)]
        entities.extend(IDENTIFIER_PATTERN.findall(content)[:MAX_IDENTIFIERS])
        return list(dict.fromkeys(entities))
