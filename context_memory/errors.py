"""
Error types for the memory and context subsystems.

Every error carries a machine-readable code, a severity and enough
context (operation, component, details) to be logged or handed back
to an LLM as a readable diagnostic.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error identifiers."""

    # Database errors (1xxx)
    DATABASE_INIT_FAILED = "DB_1001"
    DATABASE_QUERY_FAILED = "DB_1002"
    DATABASE_WRITE_FAILED = "DB_1003"
    DATABASE_TRANSACTION_FAILED = "DB_1004"
    DATABASE_CONNECTION_LOST = "DB_1005"
    DATABASE_SCHEMA_ERROR = "DB_1006"
    DATABASE_CONNECTION_FAILED = "DB_1007"

    # Memory errors (2xxx)
    MEMORY_SERVICE_NOT_INITIALIZED = "MEM_2001"
    MEMORY_SAVE_FAILED = "MEM_2002"
    MEMORY_RECALL_FAILED = "MEM_2003"
    MEMORY_INVALID_SCOPE = "MEM_2004"
    MEMORY_MISSING_PROJECT_PATH = "MEM_2005"
    MEMORY_CONTEXT_BUILD_FAILED = "MEM_2006"
    MEMORY_CLEANUP_FAILED = "MEM_2007"
    MEMORY_STORE_FAILED = "MEM_2008"
    MEMORY_RETRIEVAL_FAILED = "MEM_2009"
    MEMORY_DELETE_FAILED = "MEM_2010"
    MEMORY_INIT_FAILED = "MEM_2011"

    # Embedding errors (3xxx)
    EMBEDDING_PROVIDER_INIT_FAILED = "EMB_3001"
    EMBEDDING_API_ERROR = "EMB_3002"
    EMBEDDING_RATE_LIMITED = "EMB_3003"
    EMBEDDING_INVALID_RESPONSE = "EMB_3004"
    EMBEDDING_NETWORK_ERROR = "EMB_3005"
    EMBEDDING_TIMEOUT = "EMB_3006"
    EMBEDDING_INVALID_INPUT = "EMB_3007"
    EMBEDDING_INIT_FAILED = "EMB_3008"
    EMBEDDING_DIMENSION_MISMATCH = "EMB_3009"

    # Context builder errors (4xxx)
    CONTEXT_BUILD_FAILED = "CTX_4001"
    CONTEXT_SECTION_FAILED = "CTX_4002"
    CONTEXT_TOKEN_LIMIT_EXCEEDED = "CTX_4003"
    CONTEXT_ANALYSIS_FAILED = "CTX_4004"

    # Config errors (9xxx)
    CONFIG_NOT_FOUND = "CFG_9001"
    CONFIG_PARSE_ERROR = "CFG_9002"
    CONFIG_VALIDATION_FAILED = "CFG_9003"
    CONFIG_MISSING_REQUIRED = "CFG_9004"

    # Generic errors
    UNKNOWN_ERROR = "ERR_0001"
    VALIDATION_ERROR = "ERR_0002"
    INTERNAL_ERROR = "ERR_0003"


class ErrorSeverity(str, Enum):
    """How badly an error affects the surrounding operation."""

    # Operation continues with degraded functionality
    LOW = "low"
    # Operation failed, system remains stable
    MEDIUM = "medium"
    # Operation failed and may affect other operations
    HIGH = "high"
    # System cannot continue
    FATAL = "fatal"


def error_message(error: BaseException) -> str:
    """Return a printable message for any exception."""
    message = str(error)
    return message or type(error).__name__


class ContextMemoryError(Exception):
    """
    Base exception for the memory and context subsystems.

    Attributes:
        message: Human-readable description
        code: Machine-readable error code
        severity: Impact of the error
        operation: Operation that was being performed
        component: Component where the error occurred
        details: Additional structured details
        recoverable: Whether the caller can continue in degraded mode
        cause: Underlying exception, if any
        timestamp: Milliseconds since epoch when the error was created
    """

    component = "core"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        operation: str = "unknown",
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.operation = operation
        if component is not None:
            self.component = component
        self.details = details or {}
        self.recoverable = recoverable
        self.cause = cause
        self.timestamp = int(time.time() * 1000)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging or serialization."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "severity": self.severity.value,
            "operation": self.operation,
            "component": self.component,
            "details": self.details,
            "recoverable": self.recoverable,
            "cause": error_message(self.cause) if self.cause else None,
            "timestamp": self.timestamp,
        }

    def to_llm_format(self) -> str:
        """
        Format the error for consumption by a language model.

        Returns:
            Multi-line description with code, operation and details
        """
        lines = [
            f"[{self.code.value}] {self.message}",
            f"Operation: {self.operation} ({self.component})",
            f"Severity: {self.severity.value}",
            f"Recoverable: {'yes' if self.recoverable else 'no'}",
        ]
        if self.details:
            lines.append("Details:")
            for key, value in self.details.items():
                lines.append(f"  - {key}: {value}")
        if self.cause is not None:
            lines.append(f"Caused by: {error_message(self.cause)}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class ValidationError(ContextMemoryError):
    """Raised when caller input is invalid. Never recoverable."""

    component = "validation"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        operation: str = "validate",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.LOW,
            operation=operation,
            details=details,
            recoverable=False,
        )


class DatabaseError(ContextMemoryError):
    """Raised when the embedded store fails."""

    component = "database"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DATABASE_QUERY_FAILED,
        operation: str = "query",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.HIGH,
            operation=operation,
            details=details,
            recoverable=True,
            cause=cause,
        )


class MemoryServiceError(ContextMemoryError):
    """Raised by the memory service."""

    component = "memory"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.MEMORY_RETRIEVAL_FAILED,
        operation: str = "memory",
        scope: Optional[str] = None,
        project_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.MEDIUM,
            operation=operation,
            details=details,
            recoverable=True,
            cause=cause,
        )
        self.scope = scope
        self.project_path = project_path

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["scope"] = self.scope
        data["project_path"] = self.project_path
        return data


class EmbeddingError(ContextMemoryError):
    """Raised when an embedding provider fails."""

    component = "embedding"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_API_ERROR,
        provider: Optional[str] = None,
        operation: str = "embed",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.LOW,
            operation=operation,
            details=details,
            recoverable=True,
            cause=cause,
        )
        self.provider = provider


class ContextBuilderError(ContextMemoryError):
    """Raised when the context assembler cannot produce a prompt."""

    component = "context"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONTEXT_BUILD_FAILED,
        phase: str = "build",
        errors: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        fatal = phase == "assembly"
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.HIGH if fatal else ErrorSeverity.MEDIUM,
            operation=f"context_{phase}",
            details=details,
            recoverable=not fatal,
            cause=cause,
        )
        self.phase = phase
        self.errors = list(errors or [])


class ConfigError(ContextMemoryError):
    """Raised when configuration cannot be loaded."""

    component = "config"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_PARSE_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            code=code,
            severity=ErrorSeverity.HIGH,
            operation="load_config",
            details=details,
            recoverable=False,
            cause=cause,
        )


def wrap_memory_error(
    error: BaseException,
    operation: str,
    scope: Optional[str] = None,
    project_path: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    code: ErrorCode = ErrorCode.MEMORY_RETRIEVAL_FAILED,
) -> ContextMemoryError:
    """
    Wrap an arbitrary exception as a MemoryServiceError.

    Errors that already belong to this package are returned unchanged
    so their original code survives.

    Args:
        error: The exception to wrap
        operation: Operation that failed
        scope: Memory scope involved, if any
        project_path: Project path involved, if any
        details: Extra details to attach
        code: Code to use for foreign exceptions

    Returns:
        A ContextMemoryError describing the failure
    """
    if isinstance(error, ContextMemoryError):
        return error

    return MemoryServiceError(
        f"Memory operation '{operation}' failed: {error_message(error)}",
        code=code,
        operation=operation,
        scope=scope,
        project_path=project_path,
        details=details,
        cause=error,
    )
