"""
Emphasis sections - guidance that depends on the request analysis.
"""

from typing import Dict, List

from ...config import ContextBuilderConfig
from ..types import (
    ComplexityLevel,
    ContextCategory,
    ContextPriority,
    ContextSection,
    RequestAnalysis,
    TaskType,
)


TASK_EMPHASIS: Dict[TaskType, str] = {
    TaskType.DEBUG: """<emphasis>
You are debugging. Focus on:
1. Understanding the symptom and the exact conditions that trigger it
2. Tracing the cause step by step instead of guessing
3. Confirming the fix does not break anything else
</emphasis>""",
    TaskType.REFACTOR: """<emphasis>
You are refactoring. Focus on:
1. Keeping behavior exactly as it is
2. Improving structure in small steps
3. Running the tests after every step
</emphasis>""",
    TaskType.TEST: """<emphasis>
You are writing tests. Focus on:
1. Observable behavior rather than internals
2. Edge cases and failure paths
3. Test names that say what is expected
</emphasis>""",
    TaskType.REVIEW: """<emphasis>
You are reviewing code. Focus on:
1. Correctness, including edge cases
2. Security problems
3. Performance costs
4. Readability for the next maintainer
</emphasis>""",
}

COMPLEXITY_GUIDANCE = """<complexity_guidance>
This looks like a complex task. Consider:
1. Splitting it into small steps you can verify
2. Checking assumptions before building on them
3. Testing as you go instead of at the end
4. Asking a clarifying question when the goal is unclear
</complexity_guidance>"""

TASK_FOCUS: Dict[TaskType, str] = {
    TaskType.DEBUG: "Root cause analysis, minimal changes to fix the bug",
    TaskType.REFACTOR: "Preserve behavior, improve code quality in the specified area only",
    TaskType.TEST: "Test behavior not implementation, cover the specified components",
    TaskType.REVIEW: "Security, logic, performance - analyze without modifying",
    TaskType.CODE: "Implement the requested feature, nothing more",
    TaskType.EXPLAIN: "Provide a clear explanation without proposing changes",
    TaskType.GENERAL: "Address the specific user request, avoid scope creep",
}

SCOPE_ENFORCEMENT_TEMPLATE = """<scope_enforcement>
SCOPE BOUNDARIES:

Do:
- Read the relevant code before proposing a change
- Stay on the task that was asked for
- Use the dedicated file tools for reading and editing
- Report progress as each step completes
- Check that each operation actually succeeded

Do not:
- Add features nobody asked for
- Refactor code around your change
- Add comments or docstrings to code you did not touch
- Introduce abstractions or helpers for a single use
- Design for hypothetical future requirements

Current Task Type: {task_type}
Focus: {focus}

A few repeated lines beat a premature abstraction. Prefer the smallest change that works.
</scope_enforcement>"""

SYSTEM_REMINDERS = {
    "focus": """<system-reminder>
FOCUS CHECK: Is this step part of the current task, or a detour?
If it is a detour, go back to the task in progress.
</system-reminder>""",
    "progress": """<system-reminder>
PROGRESS CHECK: Are finished tasks marked as done?
Update the task list after each task, not in batches.
</system-reminder>""",
    "scope": """<system-reminder>
SCOPE CHECK: Are you adding anything that was not requested?
Re-read the original request and do only what it asks.
</system-reminder>""",
}


def build_scope_enforcement(task_type: TaskType) -> str:
    task_type = TaskType(task_type)
    return SCOPE_ENFORCEMENT_TEMPLATE.format(
        task_type=task_type.value,
        focus=TASK_FOCUS.get(task_type, TASK_FOCUS[TaskType.GENERAL]),
    )


def build_emphasis_sections(
    analysis: RequestAnalysis,
    config: ContextBuilderConfig,
) -> List[ContextSection]:
    """
    Build the sections that depend on the request analysis.

    Args:
        analysis: Request analysis
        config: Context builder configuration

    Returns:
        Task emphasis, complexity guidance, scope enforcement and system
        reminders, each only when it applies
    """
    sections = []

    emphasis = TASK_EMPHASIS.get(analysis.task_type)
    if emphasis:
        sections.append(ContextSection(
            id="task-emphasis",
            name="Task Emphasis",
            content=emphasis,
            priority=ContextPriority.HIGH,
            category=ContextCategory.EMPHASIS,
            metadata={"task_type": analysis.task_type.value},
        ))

    if analysis.complexity == ComplexityLevel.COMPLEX:
        sections.append(ContextSection(
            id="complexity-guidance",
            name="Complexity Guidance",
            content=COMPLEXITY_GUIDANCE,
            priority=ContextPriority.MEDIUM,
            category=ContextCategory.EMPHASIS,
            metadata={"complexity_score": analysis.complexity_score},
        ))

    if config.behavioral_patterns.scope_enforcement:
        sections.append(ContextSection(
            id="scope-enforcement",
            name="Scope Enforcement",
            content=build_scope_enforcement(analysis.task_type),
            priority=ContextPriority.HIGH,
            category=ContextCategory.EMPHASIS,
            metadata={"task_type": analysis.task_type.value},
        ))

    if analysis.exploration_risk or analysis.task_count > 1:
        sections.append(ContextSection(
            id="system-reminders",
            name="System Reminders",
            content="\n\n".join(SYSTEM_REMINDERS.values()),
            priority=ContextPriority.MEDIUM,
            category=ContextCategory.EMPHASIS,
            metadata={
                "exploration_risk": analysis.exploration_risk,
                "task_count": analysis.task_count,
            },
        ))

    return sections
