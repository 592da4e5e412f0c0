"""
Structured logging for observability.

Modules log through ``logging.getLogger(__name__)``; this module
provides the formatter that renders those records as structured
JSON (or text) and a request context that is attached to every
record emitted while a request is being processed.
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Optional, TextIO


PACKAGE_LOGGER = "context_memory"


class LogLevel(str, Enum):
    """Log levels matching Python logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        """Convert to Python logging level."""
        return getattr(logging, self.value)


@dataclass
class RequestContext:
    """
    Identifiers of the request currently being processed.

    Attributes:
        request_id: Unique identifier for the request
        session_id: Gateway session, if known
        project_path: Project the request belongs to, if known
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None
    project_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting unset fields."""
        result = {"request_id": self.request_id}
        if self.session_id:
            result["session_id"] = self.session_id
        if self.project_path:
            result["project_path"] = self.project_path
        return result


_current_request: ContextVar[Optional[RequestContext]] = ContextVar(
    "current_request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """Get the request context of the current task or thread."""
    return _current_request.get()


@contextmanager
def request_context(
    session_id: Optional[str] = None,
    project_path: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Iterator[RequestContext]:
    """
    Attach a request context to all log records emitted inside the block.

    Args:
        session_id: Gateway session identifier
        project_path: Project path of the request
        request_id: Explicit request id, generated if omitted

    Yields:
        The active RequestContext
    """
    context = RequestContext(session_id=session_id, project_path=project_path)
    if request_id:
        context.request_id = request_id
    token = _current_request.set(context)
    try:
        yield context
    finally:
        _current_request.reset(token)


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs structured JSON or single-line text logs."""

    def __init__(self, json_output: bool = True):
        super().__init__()
        self.json_output = json_output

    def _to_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        context = get_request_context()
        if context:
            result.update(context.to_dict())

        attributes = getattr(record, "attributes", None)
        if attributes:
            result["attributes"] = attributes

        if record.exc_info:
            result["exception"] = self.formatException(record.exc_info)

        return result

    def format(self, record: logging.LogRecord) -> str:
        """Format log record."""
        data = self._to_dict(record)

        if self.json_output:
            return json.dumps(data, default=str)

        parts = [
            datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"[{data['level']}]",
            data["logger"],
            "-",
            data["message"],
        ]
        if "request_id" in data:
            parts.append(f"(request={data['request_id'][:8]})")
        if "attributes" in data:
            attrs = " ".join(f"{k}={v}" for k, v in data["attributes"].items())
            parts.append(f"[{attrs}]")

        text = " ".join(parts)
        if "exception" in data:
            text += f"\n{data['exception']}"
        return text


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    output: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure and return the package logger.

    Calling this more than once replaces the handler installed by the
    previous call rather than adding another one.

    Args:
        level: Log level
        json_output: Whether to output JSON
        output: Output stream, stderr by default

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = LogLevel(level.upper())

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.to_python_level())

    for handler in list(package_logger.handlers):
        if getattr(handler, "_context_memory_handler", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(output or sys.stderr)
    handler.setFormatter(StructuredFormatter(json_output))
    handler._context_memory_handler = True
    package_logger.addHandler(handler)

    return package_logger
