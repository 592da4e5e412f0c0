"""
Dynamic Context Builder - builds the augmented system prompt for each request.

Every stage except final assembly degrades instead of failing: the
error is recorded, a safe default is used, and the build continues.
"""

import logging
from typing import Any, Callable, List, Optional, Sequence

from ..config import ContextBuilderConfig
from ..errors import ContextBuilderError, ErrorCode, error_message
from ..memory.service import MemoryService
from .analysis import RequestAnalyzer
from .budget import (
    MIN_AVAILABLE_TOKENS,
    assemble_prompt,
    estimate_system_tokens,
    fit_to_budget,
)
from .sections import (
    build_emphasis_sections,
    build_engineering_sections,
    build_instruction_sections,
    build_memory_sections,
)
from .types import ContextBuildResult, ContextSection, RequestAnalysis


logger = logging.getLogger(__name__)


# Budget used when the system prompt cannot be measured
FALLBACK_AVAILABLE_TOKENS = 1000


class DynamicContextBuilder:
    """
    Builds optimized context for each request.

    Example:
        >>> builder = DynamicContextBuilder(ContextBuilderConfig(), memory_service)
        >>> result = builder.build(
        ...     "You are a helpful assistant.",
        ...     messages=[{"role": "user", "content": "Fix the failing test"}],
        ...     project_path="/repo",
        ... )
        >>> print(result.system_prompt)
    """

    def __init__(
        self,
        config: Optional[ContextBuilderConfig] = None,
        memory_service: Optional[MemoryService] = None,
        analyzer: Optional[RequestAnalyzer] = None,
    ):
        """
        Initialize the builder.

        Args:
            config: Builder configuration
            memory_service: Source of memories; memory sections are
                skipped without one
            analyzer: Request analyzer
        """
        self.config = config or ContextBuilderConfig()
        self.memory_service = memory_service
        self.analyzer = analyzer or RequestAnalyzer()
        self._build_errors: List[str] = []

    def build(
        self,
        system: Any,
        messages: Sequence[Any],
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
        tools: Optional[List[Any]] = None,
    ) -> ContextBuildResult:
        """
        Build the augmented system prompt for a request.

        Args:
            system: Original system prompt, a string or a list of
                content blocks
            messages: Chat messages of the request
            project_path: Project of the request
            session_id: Session of the request
            tools: Tool definitions sent with the request

        Returns:
            ContextBuildResult with the prompt and diagnostics

        Raises:
            ContextBuilderError: If the final prompt cannot be assembled
        """
        errors: List[str] = []
        self._build_errors = errors

        # Step 1: analyse
        try:
            analysis = self.analyzer.analyze(messages)
        except Exception as e:
            errors.append(f"Analysis failed: {error_message(e)}")
            analysis = RequestAnalysis.default()

        # Step 2: collect sections
        sections: List[ContextSection] = []
        if self.config.enable_memory:
            memory_project = project_path if self.config.enable_project_context else None
            self._collect(
                "Memory", sections, errors,
                lambda: build_memory_sections(self.memory_service, messages, memory_project, errors),
            )
        self._collect(
            "Instruction", sections, errors,
            lambda: build_instruction_sections(self.config),
        )
        if self.config.enable_emphasis:
            self._collect(
                "Emphasis", sections, errors,
                lambda: build_emphasis_sections(analysis, self.config),
            )
        self._collect(
            "Engineering", sections, errors,
            lambda: build_engineering_sections(
                analysis,
                self.config.behavioral_patterns,
                enabled=self.config.enable_engineering,
            ),
        )

        # Step 3: budget
        available = self._available_tokens(system, errors)

        # Step 4: fit
        try:
            included, trimmed = fit_to_budget(sections, available)
        except Exception as e:
            errors.append(f"Budget fitting failed: {error_message(e)}")
            included, trimmed = list(sections), []

        # Step 5: assemble
        try:
            system_prompt = assemble_prompt(system, included)
        except Exception as e:
            logger.error(f"Failed to assemble system prompt: {error_message(e)}")
            raise ContextBuilderError(
                f"Failed to assemble system prompt: {error_message(e)}",
                code=ErrorCode.CONTEXT_BUILD_FAILED,
                phase="assembly",
                errors=list(errors),
                details={"section_count": len(included), "errors": list(errors)},
                cause=e,
            )

        result = ContextBuildResult(
            system_prompt=system_prompt,
            sections=included,
            total_tokens=estimate_system_tokens(system_prompt),
            trimmed_sections=trimmed,
            analysis=analysis,
            errors=list(errors) if errors else None,
        )

        if errors:
            logger.warning(f"Context built with {len(errors)} non-fatal errors: {errors}")

        logger.debug(
            f"Built context for session {session_id}: type={analysis.task_type.value} "
            f"sections={[s.id for s in included]} trimmed={[s.id for s in trimmed]} "
            f"tokens={result.total_tokens} tools={len(tools or [])}"
        )
        return result

    def last_build_errors(self) -> List[str]:
        """Get a copy of the errors recorded by the most recent build."""
        return list(self._build_errors)

    def _collect(
        self,
        label: str,
        sections: List[ContextSection],
        errors: List[str],
        builder: Callable[[], List[ContextSection]],
    ) -> None:
        try:
            sections.extend(builder())
        except Exception as e:
            message = f"{label} sections error: {error_message(e)}"
            errors.append(message)
            if self.config.debug_mode:
                logger.error(message)

    def _available_tokens(self, system: Any, errors: List[str]) -> int:
        """Tokens left for sections after the response reserve and the original prompt."""
        try:
            available = (
                self.config.max_tokens
                - self.config.reserve_tokens_for_response
                - estimate_system_tokens(system)
            )
        except Exception as e:
            errors.append(f"Token estimation failed: {error_message(e)}")
            return FALLBACK_AVAILABLE_TOKENS

        if available < MIN_AVAILABLE_TOKENS:
            errors.append(f"Token budget exhausted: only {available} tokens available")
            available = MIN_AVAILABLE_TOKENS
        return available
