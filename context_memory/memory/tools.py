"""
Memory tools - explicit memory operations exposed to the model.

Three tools are offered alongside the passive ``<remember>`` tags:

- ccr_remember: save a memory and return its id
- ccr_recall: search memories and return them with scores
- ccr_forget: delete a memory by id

Tool results are JSON strings. Failures are returned as
``{"success": false, "error": ...}`` with the error rendered by
``ContextMemoryError.to_llm_format()`` so the model can react to them.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import ContextMemoryError, ErrorCode, MemoryServiceError, ValidationError
from .service import MemoryService
from .types import MemoryCategory, MemoryMetadata


logger = logging.getLogger(__name__)


REMEMBER_TOOL = "ccr_remember"
RECALL_TOOL = "ccr_recall"
FORGET_TOOL = "ccr_forget"

DEFAULT_RECALL_LIMIT = 5
MAX_RECALL_LIMIT = 20

TOOL_SOURCE = "tool-explicit"


@dataclass
class MemoryTool:
    """A tool definition in the Anthropic ``tools`` format."""

    name: str
    description: str
    input_schema: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


MEMORY_TOOLS: List[MemoryTool] = [
    MemoryTool(
        name=REMEMBER_TOOL,
        description="Save info to persistent memory. Returns confirmation with memory ID.",
        input_schema={
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "What to remember - be concise and specific",
                },
                "scope": {
                    "type": "string",
                    "enum": ["global", "project"],
                    "description": "global = across all projects, project = this project only",
                },
                "category": {
                    "type": "string",
                    "enum": [c.value for c in MemoryCategory],
                    "description": "Memory category for organization",
                },
            },
            "required": ["content", "scope", "category"],
        },
    ),
    MemoryTool(
        name=RECALL_TOOL,
        description="Query memories by semantic search. Returns matching memories with relevance scores.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query - describe what you want to find",
                },
                "scope": {
                    "type": "string",
                    "enum": ["global", "project", "both"],
                    "default": "both",
                    "description": "Where to search: global, project, or both",
                },
                "limit": {
                    "type": "number",
                    "default": DEFAULT_RECALL_LIMIT,
                    "maximum": MAX_RECALL_LIMIT,
                    "description": "Maximum number of results to return",
                },
            },
            "required": ["query"],
        },
    ),
    MemoryTool(
        name=FORGET_TOOL,
        description="Delete a memory by ID. Use ccr_recall first to find the memory ID.",
        input_schema={
            "type": "object",
            "properties": {
                "memoryId": {
                    "type": "string",
                    "description": "The memory ID to delete (from ccr_recall results)",
                },
                "scope": {
                    "type": "string",
                    "enum": ["global", "project"],
                    "description": "Where the memory is stored",
                },
            },
            "required": ["memoryId", "scope"],
        },
    ),
]


def get_memory_tools() -> List[Dict[str, Any]]:
    """Get the memory tool definitions for a request's ``tools`` list."""
    return [tool.to_dict() for tool in MEMORY_TOOLS]


def is_memory_tool(name: str) -> bool:
    """Check whether a tool name belongs to the memory tools."""
    return any(tool.name == name for tool in MEMORY_TOOLS)


def _preview(content: str, length: int) -> str:
    return content[:length] + ("..." if len(content) > length else "")


def _iso_timestamp(ms: int) -> str:
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _required_string(arguments: Dict[str, Any], key: str, tool: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"Missing required argument '{key}'",
            operation=tool,
            details={"argument": key},
        )
    return value


class MemoryToolExecutor:
    """
    Runs memory tool calls against a memory service.

    Example usage:
        executor = MemoryToolExecutor(service)
        result = executor.execute(
            "ccr_recall",
            {"query": "testing conventions", "limit": 3},
            project_path="/path/to/project",
        )
    """

    def __init__(self, service: Optional[MemoryService]):
        self.service = service

    def execute(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        project_path: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Execute a memory tool call.

        Args:
            name: Tool name
            arguments: Tool input from the model
            project_path: Project of the current request
            session_id: Session of the current request

        Returns:
            JSON result for the model
        """
        arguments = arguments or {}
        try:
            if self.service is None:
                raise MemoryServiceError(
                    "Memory service not available",
                    code=ErrorCode.MEMORY_SERVICE_NOT_INITIALIZED,
                    operation=name,
                )
            if name == REMEMBER_TOOL:
                result = self._remember(arguments, project_path, session_id)
            elif name == RECALL_TOOL:
                result = self._recall(arguments, project_path)
            elif name == FORGET_TOOL:
                result = self._forget(arguments)
            else:
                raise ValidationError(
                    f"Unknown memory tool: {name}",
                    operation="execute_tool",
                    details={"tool": name},
                )
        except ContextMemoryError as e:
            logger.warning(f"Memory tool {name} failed: {e}")
            return json.dumps({"success": False, "error": e.to_llm_format()})

        return json.dumps(result)

    def _remember(
        self,
        arguments: Dict[str, Any],
        project_path: Optional[str],
        session_id: Optional[str],
    ) -> Dict[str, Any]:
        content = _required_string(arguments, "content", REMEMBER_TOOL)
        scope = _required_string(arguments, "scope", REMEMBER_TOOL)
        category = _required_string(arguments, "category", REMEMBER_TOOL)

        memory = self.service.remember(
            content,
            scope=scope,
            category=category,
            project_path=project_path,
            metadata=MemoryMetadata(source=TOOL_SOURCE, session_id=session_id),
        )

        return {
            "success": True,
            "id": memory.id,
            "scope": memory.scope.value,
            "category": memory.category.value,
            "saved": _preview(memory.content, 100),
        }

    def _recall(self, arguments: Dict[str, Any], project_path: Optional[str]) -> Dict[str, Any]:
        query = _required_string(arguments, "query", RECALL_TOOL)
        scope = arguments.get("scope") or "both"

        limit = arguments.get("limit") or DEFAULT_RECALL_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, (int, float)):
            raise ValidationError(
                f"Invalid limit: {limit!r}",
                operation=RECALL_TOOL,
                details={"argument": "limit"},
            )
        limit = max(1, min(int(limit), MAX_RECALL_LIMIT))

        results = self.service.recall(
            query,
            scope=scope,
            project_path=project_path,
            limit=limit,
        )

        return {
            "success": True,
            "count": len(results),
            "memories": [
                {
                    "id": r.memory.id,
                    "content": r.memory.content,
                    "category": r.memory.category.value,
                    "scope": r.memory.scope.value,
                    "score": round(r.score, 3),
                    "createdAt": _iso_timestamp(r.memory.created_at),
                }
                for r in results
            ],
        }

    def _forget(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        memory_id = _required_string(arguments, "memoryId", FORGET_TOOL)
        scope = _required_string(arguments, "scope", FORGET_TOOL)
        if scope not in ("global", "project"):
            raise ValidationError(
                f"Invalid memory scope: {scope!r}",
                code=ErrorCode.MEMORY_INVALID_SCOPE,
                operation=FORGET_TOOL,
                details={"scope": scope},
            )

        memory = self.service.get_memory(memory_id, scope)
        if memory is None:
            return {"success": False, "error": f"Memory not found: {memory_id}"}

        self.service.delete_memory(memory_id, scope)
        logger.info(f"Forgot {scope} memory {memory_id} on model request")

        return {
            "success": True,
            "deleted": {
                "id": memory_id,
                "content": _preview(memory.content, 50),
                "scope": scope,
            },
        }
