"""
Tests for prompt section builders.
"""

from unittest.mock import MagicMock

from context_memory.config import BehavioralPatternsConfig, ContextBuilderConfig
from context_memory.context.sections import (
    build_emphasis_sections,
    build_engineering_sections,
    build_instruction_sections,
    build_memory_sections,
    format_memories,
)
from context_memory.context.types import (
    ComplexityLevel,
    ContextPriority,
    RequestAnalysis,
    TaskType,
)
from context_memory.memory.service import RequestMemories
from context_memory.memory.types import Memory, MemoryScope


def ids(sections):
    return [s.id for s in sections]


class TestMemorySections:
    """Test memory formatting and sections."""

    def test_format_groups_by_category(self):
        """Test categories in first-occurrence order with their memories."""
        memories = [
            Memory(content="Prefers tabs", category="preference", scope="global"),
            Memory(content="Chose SQLite", category="decision", scope="global"),
            Memory(content="Likes short PRs", category="preference", scope="global"),
        ]

        text = format_memories(memories, MemoryScope.GLOBAL)

        assert text == "\n".join([
            '<global_memory scope="cross-project">',
            "Your persistent knowledge about this user across all projects:",
            "",
            "## User Preferences",
            "- Prefers tabs",
            "- Likes short PRs",
            "",
            "## Decisions Made",
            "- Chose SQLite",
            "",
            "</global_memory>",
        ])

    def test_project_block(self):
        """Test the project block tags."""
        memories = [Memory(content="Uses Flask", category="architecture", scope="project", project_path="/r")]

        text = format_memories(memories, "project")

        assert text.startswith('<project_memory scope="current-project">')
        assert "## Architecture\n- Uses Flask" in text
        assert text.endswith("</project_memory>")

    def test_no_service(self):
        """Test no sections without a memory service."""
        assert build_memory_sections(None, [{"role": "user", "content": "hi"}]) == []

    def test_sections_from_service(self):
        """Test sections per scope plus status, with errors forwarded."""
        service = MagicMock()
        service.get_context_for_request.return_value = RequestMemories(
            global_memories=[Memory(content="Prefers tabs", category="preference", scope="global")],
            project_memories=[],
            errors=["Failed to recall project memories: locked"],
        )
        errors = []

        sections = build_memory_sections(service, [], project_path="/repo", errors=errors)

        assert ids(sections) == ["global-memory", "memory-status"]
        assert sections[0].priority == ContextPriority.HIGH
        assert sections[0].metadata["memory_count"] == 1
        assert "Memories loaded for this request: 1 (1 global, 0 project)." in sections[1].content
        assert errors == ["Failed to recall project memories: locked"]
        service.get_context_for_request.assert_called_once_with([], project_path="/repo")

    def test_no_memories_no_sections(self):
        """Test nothing is emitted when no memory was selected."""
        service = MagicMock()
        service.get_context_for_request.return_value = RequestMemories()

        assert build_memory_sections(service, []) == []

    def test_with_real_service(self, fake_service, fake_embedder):
        """Test end to end with a stored memory."""
        fake_embedder.vectors = {"Use pytest for tests": [1.0, 0.0, 0.0], "pytest": [1.0, 0.0, 0.0]}
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")

        sections = build_memory_sections(fake_service, [{"role": "user", "content": "pytest"}])

        assert "- Use pytest for tests" in sections[0].content
        assert "## Workflow Preferences" in sections[0].content


class TestInstructionSections:
    """Test instruction sections."""

    def test_defaults(self):
        """Test both instruction sections by default."""
        sections = build_instruction_sections(ContextBuilderConfig())

        assert ids(sections) == ["memory-instructions", "task-completion"]
        assert sections[0].priority == ContextPriority.MEDIUM
        assert sections[1].priority == ContextPriority.HIGH
        assert "<remember scope=" in sections[0].content

    def test_disabled(self):
        """Test sections follow their switches."""
        config = ContextBuilderConfig(
            enable_memory=False,
            behavioral_patterns=BehavioralPatternsConfig(task_completion=False),
        )

        assert build_instruction_sections(config) == []


class TestEmphasisSections:
    """Test analysis-driven sections."""

    def test_debug_request(self):
        """Test debug emphasis and scope enforcement."""
        analysis = RequestAnalysis(task_type=TaskType.DEBUG, complexity=ComplexityLevel.SIMPLE, task_count=1)

        sections = build_emphasis_sections(analysis, ContextBuilderConfig())

        assert ids(sections) == ["task-emphasis", "scope-enforcement"]
        assert "You are debugging" in sections[0].content
        assert "Current Task Type: debug" in sections[1].content
        assert "Root cause analysis" in sections[1].content

    def test_complex_multi_task_request(self):
        """Test complexity guidance and reminders."""
        analysis = RequestAnalysis(
            task_type=TaskType.CODE,
            complexity=ComplexityLevel.COMPLEX,
            complexity_score=70,
            task_count=3,
        )

        sections = build_emphasis_sections(analysis, ContextBuilderConfig())

        assert ids(sections) == ["complexity-guidance", "scope-enforcement", "system-reminders"]
        assert sections[2].content.count("<system-reminder>") == 3

    def test_exploration_risk_adds_reminders(self):
        """Test exploration requests get reminders."""
        analysis = RequestAnalysis(exploration_risk=True)

        assert "system-reminders" in ids(build_emphasis_sections(analysis, ContextBuilderConfig()))

    def test_scope_enforcement_switch(self):
        """Test nothing is added for a plain request with enforcement off."""
        config = ContextBuilderConfig(
            behavioral_patterns=BehavioralPatternsConfig(scope_enforcement=False)
        )

        assert build_emphasis_sections(RequestAnalysis(), config) == []


class TestEngineeringSections:
    """Test the engineering battery."""

    def test_general_request(self):
        """Test base and behavioral sections without a task section."""
        sections = build_engineering_sections(RequestAnalysis())

        assert ids(sections) == [
            "tool-formatting",
            "core-principles",
            "tool-guidelines",
            "system-features",
            "behavioral-focus",
            "scope-discipline",
            "tool-usage-policy",
            "professional-objectivity",
        ]
        assert sections[0].priority == ContextPriority.CRITICAL

    def test_task_specific_section(self):
        """Test code, debug, refactor, test and review get a task section."""
        for task_type in (TaskType.CODE, TaskType.DEBUG, TaskType.REFACTOR, TaskType.TEST, TaskType.REVIEW):
            sections = build_engineering_sections(RequestAnalysis(task_type=task_type))
            assert sections[-1].id == "task-engineering"
            assert sections[-1].metadata["task_type"] == task_type.value

        explain = build_engineering_sections(RequestAnalysis(task_type=TaskType.EXPLAIN))
        assert "task-engineering" not in ids(explain)

    def test_behavioral_switches(self):
        """Test behavioral sections follow their switches."""
        patterns = BehavioralPatternsConfig(
            anti_aloofness=False, scope_enforcement=False,
            tool_discipline=False, professional_tone=False,
        )

        sections = build_engineering_sections(RequestAnalysis(), patterns)

        assert ids(sections) == ["tool-formatting", "core-principles", "tool-guidelines", "system-features"]

    def test_disabled(self):
        """Test no sections when engineering is disabled."""
        assert build_engineering_sections(RequestAnalysis(), enabled=False) == []
