"""
Tests for the error taxonomy.
"""

import pytest

from context_memory.errors import (
    ConfigError,
    ContextBuilderError,
    ContextMemoryError,
    DatabaseError,
    EmbeddingError,
    ErrorCode,
    ErrorSeverity,
    MemoryServiceError,
    ValidationError,
    error_message,
    wrap_memory_error,
)


class TestContextMemoryError:
    """Test the base error."""

    def test_str_includes_code(self):
        """Test string form is '[code] message'."""
        error = ContextMemoryError("boom", code=ErrorCode.INTERNAL_ERROR)

        assert str(error) == "[ERR_0003] boom"

    def test_to_dict(self):
        """Test dictionary conversion."""
        cause = ValueError("bad value")
        error = ContextMemoryError(
            "boom",
            code=ErrorCode.UNKNOWN_ERROR,
            operation="op",
            details={"key": "value"},
            cause=cause,
        )

        data = error.to_dict()

        assert data["name"] == "ContextMemoryError"
        assert data["code"] == "ERR_0001"
        assert data["operation"] == "op"
        assert data["details"] == {"key": "value"}
        assert data["cause"] == "bad value"
        assert data["recoverable"] is True
        assert data["timestamp"] > 0

    def test_cause_is_chained(self):
        """Test the cause becomes __cause__."""
        cause = KeyError("missing")
        error = ContextMemoryError("boom", cause=cause)

        assert error.__cause__ is cause

    def test_to_llm_format(self):
        """Test LLM-readable formatting."""
        error = MemoryServiceError(
            "Failed to store memory",
            code=ErrorCode.MEMORY_STORE_FAILED,
            operation="remember",
            details={"memory_id": "abc"},
            cause=RuntimeError("disk full"),
        )

        text = error.to_llm_format()

        assert "[MEM_2008] Failed to store memory" in text
        assert "Operation: remember (memory)" in text
        assert "memory_id: abc" in text
        assert "Caused by: disk full" in text


class TestErrorSubclasses:
    """Test the error subclasses."""

    def test_validation_error_not_recoverable(self):
        """Test validation errors are low severity and not recoverable."""
        error = ValidationError("empty content")

        assert error.recoverable is False
        assert error.severity == ErrorSeverity.LOW
        assert error.code == ErrorCode.VALIDATION_ERROR

    def test_database_error_recoverable(self):
        """Test database errors are recoverable."""
        error = DatabaseError("locked", code=ErrorCode.DATABASE_QUERY_FAILED)

        assert error.recoverable is True
        assert error.component == "database"

    def test_memory_service_error_carries_scope(self):
        """Test memory errors carry scope and project path."""
        error = MemoryServiceError("failed", scope="project", project_path="/repo")

        assert error.scope == "project"
        assert error.project_path == "/repo"
        assert error.component == "memory"

    def test_embedding_error_carries_provider(self):
        """Test embedding errors carry the provider name."""
        error = EmbeddingError("timeout", code=ErrorCode.EMBEDDING_TIMEOUT, provider="ollama")

        assert error.provider == "ollama"
        assert error.recoverable is True

    def test_context_builder_assembly_is_fatal(self):
        """Test assembly-phase errors are not recoverable and keep earlier errors."""
        error = ContextBuilderError("cannot assemble", phase="assembly", errors=["Analysis failed: x"])

        assert error.recoverable is False
        assert error.errors == ["Analysis failed: x"]

    def test_context_builder_other_phase_recoverable(self):
        """Test non-assembly context errors are recoverable."""
        error = ContextBuilderError("section failed", phase="sections")

        assert error.recoverable is True
        assert error.errors == []

    def test_config_error(self):
        """Test config error component."""
        error = ConfigError("bad yaml", code=ErrorCode.CONFIG_PARSE_ERROR)

        assert error.component == "config"
        assert isinstance(error, ContextMemoryError)


class TestHelpers:
    """Test error helper functions."""

    def test_error_message(self):
        """Test extracting messages."""
        assert error_message(ValueError("bad")) == "bad"
        assert error_message(KeyError("k")) == "'k'"

    def test_error_message_keeps_code(self):
        """Test package errors keep their code prefix."""
        assert error_message(ValidationError("empty")) == "[ERR_0002] empty"

    def test_error_message_falls_back_to_type(self):
        """Test exceptions without a message give their type name."""
        assert error_message(RuntimeError()) == "RuntimeError"

    def test_wrap_foreign_error(self):
        """Test foreign exceptions are wrapped."""
        cause = OSError("disk")

        wrapped = wrap_memory_error(cause, "recall", scope="global")

        assert isinstance(wrapped, MemoryServiceError)
        assert wrapped.code == ErrorCode.MEMORY_RETRIEVAL_FAILED
        assert wrapped.scope == "global"
        assert wrapped.cause is cause

    def test_wrap_keeps_package_error(self):
        """Test package errors pass through unchanged."""
        original = DatabaseError("locked")

        assert wrap_memory_error(original, "recall") is original

    def test_errors_are_raisable(self):
        """Test errors can be raised and caught by base class."""
        with pytest.raises(ContextMemoryError):
            raise EmbeddingError("failed")
