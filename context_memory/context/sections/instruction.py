"""
Instruction sections - how the model should use memory and track tasks.
"""

from typing import List

from ...config import ContextBuilderConfig
from ..types import ContextCategory, ContextPriority, ContextSection


MEMORY_INSTRUCTIONS = """<memory_instructions>
Persistent memory relevant to this request has already been loaded for you.

**Loaded memories appear above in the <global_memory> and <project_memory> blocks.**

Memory is injected automatically on every request, so no tool call is needed to read it.

Save a new memory when:
- The user states a preference ("I prefer...", "Always use...", "Never...")
- An architectural or design decision is settled
- You find a project convention worth keeping
- You solve a problem that is likely to come back

To save one, include this block in your response:
<remember scope="global|project" category="preference|pattern|decision|architecture|knowledge|error|workflow">
What to remember, in one or two sentences
</remember>

Use scope="global" for facts about the user and scope="project" for facts about this codebase.
</memory_instructions>"""


TASK_COMPLETION = """<task_completion_discipline>
TASK TRACKING:

1. When to keep a task list:
   - Work with three or more steps, or a list of tasks given by the user
   - Not for single trivial changes or purely informational questions

2. Keeping it accurate:
   - Mark a task in progress before starting it
   - Keep exactly one task in progress at a time
   - Mark each task done as soon as it is finished, one at a time
   - Drop tasks that are no longer relevant

3. Showing progress:
   - After committing, check the repository status
   - After editing a file, say what changed
   - After a long operation, confirm it succeeded

Example:
User: "Rename the config loader, update its tests and bump the version"
-> Three tasks; start the first, finish it, then move on

User: "What does this function return?"
-> No task list; answer directly
</task_completion_discipline>"""


def build_instruction_sections(config: ContextBuilderConfig) -> List[ContextSection]:
    """
    Build the static instruction sections enabled by the configuration.

    Args:
        config: Context builder configuration

    Returns:
        Memory instructions (when memory is enabled) and task-completion
        discipline (when that behavioral pattern is on)
    """
    sections = []

    if config.enable_memory:
        sections.append(ContextSection(
            id="memory-instructions",
            name="Memory Instructions",
            content=MEMORY_INSTRUCTIONS,
            priority=ContextPriority.MEDIUM,
            category=ContextCategory.INSTRUCTION,
        ))

    if config.behavioral_patterns.task_completion:
        sections.append(ContextSection(
            id="task-completion",
            name="Task Completion Discipline",
            content=TASK_COMPLETION,
            priority=ContextPriority.HIGH,
            category=ContextCategory.INSTRUCTION,
        ))

    return sections
