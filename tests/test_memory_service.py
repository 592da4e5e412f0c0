"""
Tests for the memory service.
"""

from unittest.mock import MagicMock, patch

import pytest

from context_memory.config import AutoInjectConfig, MemoryConfig, RetentionConfig
from context_memory.errors import (
    DatabaseError,
    ErrorCode,
    MemoryServiceError,
    ValidationError,
)
from context_memory.memory.service import MemoryService, extract_query, message_text
from context_memory.memory.types import Memory, MemoryCategory, MemoryScope, now_ms


DAY_MS = 24 * 60 * 60 * 1000


@pytest.fixture
def vectors(fake_embedder):
    """Fixed vectors: pytest-related text points along x, docker along y."""
    fake_embedder.vectors = {
        "Use pytest for tests": [1.0, 0.0, 0.0],
        "Deploy with docker compose": [0.0, 1.0, 0.0],
        "pytest": [1.0, 0.0, 0.0],
        "how do I run pytest": [1.0, 0.0, 0.0],
    }
    return fake_embedder.vectors


class TestMessageText:
    """Test query extraction from chat messages."""

    def test_string_content(self):
        """Test plain string content."""
        assert message_text({"role": "user", "content": "hello"}) == "hello"

    def test_block_content(self):
        """Test text blocks are joined and other blocks ignored."""
        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": "first"},
                {"type": "image", "source": {}},
                {"type": "text", "text": "second"},
            ],
        }

        assert message_text(message) == "first second"

    def test_non_dict(self):
        """Test non-message input yields nothing."""
        assert message_text("hello") == ""

    def test_extract_query_uses_recent_user_messages(self):
        """Test only user messages in the last five are used."""
        messages = [{"role": "user", "content": "old"}] + [
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "two"},
            {"role": "assistant", "content": "reply"},
        ]

        assert extract_query(messages) == "one two"

    def test_extract_query_empty(self):
        """Test missing messages give an empty query."""
        assert extract_query(None) == ""
        assert extract_query([]) == ""


class TestRemember:
    """Test storing memories."""

    def test_remember_global(self, service, store):
        """Test a global memory is stored with its embedding."""
        memory = service.remember("  Always use type hints  ", scope="global", category="preference")

        assert memory.content == "Always use type hints"
        assert memory.scope == MemoryScope.GLOBAL
        assert memory.project_path is None
        assert memory.importance == pytest.approx(0.9)
        assert store.get_memory(memory.id, "global") == memory
        assert len(store.get_embedding(memory.id)) == 384

    def test_remember_project(self, service):
        """Test a project memory keeps its path."""
        memory = service.remember(
            "Service layer owns transactions",
            scope="project",
            category="architecture",
            project_path="/repo",
        )

        assert memory.project_path == "/repo"
        assert service.list_memories("project", "/repo") == [memory]

    def test_global_memory_drops_project_path(self, service):
        """Test a project path given for a global memory is not stored."""
        memory = service.remember("Likes dark mode", scope="global", category="preference", project_path="/repo")

        assert memory.project_path is None

    def test_explicit_importance_and_metadata(self, service):
        """Test explicit importance and dict metadata."""
        memory = service.remember(
            "Uses ruff",
            scope="global",
            category="workflow",
            importance=0.2,
            metadata={"source": "user", "tags": ["lint"]},
        )

        assert memory.importance == 0.2
        assert memory.metadata.source == "user"
        assert memory.metadata.tags == ["lint"]

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_empty_content_rejected(self, service, content):
        """Test empty content is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            service.remember(content, scope="global", category="preference")

        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_invalid_scope_rejected(self, service):
        """Test unknown scopes."""
        with pytest.raises(ValidationError) as exc_info:
            service.remember("x", scope="team", category="preference")

        assert exc_info.value.code == ErrorCode.MEMORY_INVALID_SCOPE

    def test_invalid_category_rejected(self, service):
        """Test unknown categories."""
        with pytest.raises(ValidationError):
            service.remember("x", scope="global", category="opinion")

    def test_project_scope_requires_path(self, service):
        """Test project memories without a path are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            service.remember("x", scope="project", category="decision")

        assert exc_info.value.code == ErrorCode.MEMORY_MISSING_PROJECT_PATH

    @pytest.mark.parametrize("importance", [-0.1, 1.5])
    def test_importance_out_of_range(self, service, importance):
        """Test importance must be within [0, 1]."""
        with pytest.raises(ValidationError):
            service.remember("x", scope="global", category="code", importance=importance)

    def test_embedding_failure(self, fake_service, fake_embedder, store):
        """Test embedding failures raise a recoverable error and store nothing."""
        fake_embedder.fail = True

        with pytest.raises(MemoryServiceError) as exc_info:
            fake_service.remember("x", scope="global", category="code")

        assert exc_info.value.code == ErrorCode.MEMORY_STORE_FAILED
        assert exc_info.value.recoverable is True
        assert store.count_memories("global") == 0

    def test_store_failure(self, fake_embedder):
        """Test storage failures are wrapped."""
        store = MagicMock()
        store.save_memory.side_effect = DatabaseError("disk full")
        service = MemoryService(store, fake_embedder)

        with pytest.raises(MemoryServiceError) as exc_info:
            service.remember("x", scope="global", category="code")

        assert exc_info.value.code == ErrorCode.MEMORY_STORE_FAILED
        assert isinstance(exc_info.value.cause, DatabaseError)


class TestRecall:
    """Test hybrid search."""

    def test_recall_ranks_by_hybrid_score(self, fake_service, vectors):
        """Test the matching memory is found with a hybrid score."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        fake_service.remember("Deploy with docker compose", scope="global", category="workflow")

        results = fake_service.recall("pytest", scope="global")

        assert [r.memory.content for r in results] == ["Use pytest for tests"]
        assert results[0].score == pytest.approx(1.0)
        assert results[0].match_type == "hybrid"

    def test_empty_query(self, fake_service, fake_embedder):
        """Test an empty query returns nothing without embedding."""
        assert fake_service.recall("   ") == []
        assert fake_embedder.calls == []

    def test_invalid_scope(self, fake_service):
        """Test unknown recall scopes are rejected."""
        with pytest.raises(ValidationError):
            fake_service.recall("x", scope="everything")

    def test_keyword_only_when_embedding_fails(self, fake_service, fake_embedder, vectors):
        """Test recall degrades to keyword scoring."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        fake_embedder.fail = True

        results = fake_service.recall("pytest", scope="global")

        assert len(results) == 1
        assert results[0].score == pytest.approx(0.3)
        assert results[0].match_type == "keyword"

    def test_both_scopes(self, fake_service, vectors):
        """Test global and project memories are searched together."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        fake_service.remember("Use pytest for tests", scope="project", category="workflow", project_path="/a")
        fake_service.remember("Use pytest for tests", scope="project", category="workflow", project_path="/b")

        results = fake_service.recall("pytest", scope="both", project_path="/a")

        assert sorted(r.memory.scope.value for r in results) == ["global", "project"]
        assert all(r.memory.project_path in (None, "/a") for r in results)

    def test_project_scope_without_path(self, fake_service, vectors):
        """Test project recall without a path returns nothing."""
        fake_service.remember("Use pytest for tests", scope="project", category="workflow", project_path="/a")

        assert fake_service.recall("pytest", scope="project") == []

    def test_lower_min_score_returns_superset(self, service):
        """Test lowering the threshold never returns fewer results."""
        service.remember("Use pytest fixtures for setup", scope="global", category="pattern")
        service.remember("Database migrations run with alembic", scope="global", category="workflow")
        service.remember("pytest markers for slow tests", scope="global", category="pattern")

        strict = service.recall("pytest fixtures", scope="global", min_score=0.6)
        loose = service.recall("pytest fixtures", scope="global", min_score=0.1)

        assert len(loose) >= len(strict)
        assert {r.memory.id for r in strict} <= {r.memory.id for r in loose}

    def test_category_filter(self, fake_service, vectors):
        """Test the category allow-list."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")

        assert fake_service.recall("pytest", scope="global", categories=["preference"]) == []
        assert len(fake_service.recall("pytest", scope="global", categories=[MemoryCategory.WORKFLOW])) == 1

    def test_scope_failure_isolated(self, fake_service, store, vectors):
        """Test a failing scope does not prevent the other from being searched."""
        fake_service.remember("Use pytest for tests", scope="project", category="workflow", project_path="/a")
        real_list = store.list_memories

        def failing_global(scope, project_path=None):
            if MemoryScope(scope) == MemoryScope.GLOBAL:
                raise DatabaseError("global table locked")
            return real_list(scope, project_path)

        with patch.object(store, "list_memories", side_effect=failing_global):
            results = fake_service.recall("pytest", scope="both", project_path="/a")

        assert len(results) == 1
        assert results[0].memory.scope == MemoryScope.PROJECT

    def test_expired_memories_excluded(self, fake_service, store, vectors):
        """Test memories past their expiry are not recalled."""
        expired = Memory(
            content="Use pytest for tests",
            category="workflow",
            scope="global",
            metadata={"expiresAt": now_ms() - 1000},
        )
        store.save_memory(expired, [1.0, 0.0, 0.0])

        assert fake_service.recall("pytest", scope="global") == []

    def test_write_during_index_load_is_scored_by_vector(self, fake_service, store, vectors):
        """Test a memory stored while a recall loads embeddings keeps its vector score."""
        vectors["delta epsilon zeta"] = [0.0, 0.0, 1.0]
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        real_get_embeddings = store.get_embeddings
        written = []

        def load_then_write(scope, project_path=None):
            loaded = real_get_embeddings(scope, project_path)
            if not written:
                written.append(fake_service.remember("delta epsilon zeta", scope="global", category="knowledge"))
            return loaded

        with patch.object(store, "get_embeddings", side_effect=load_then_write):
            fake_service.recall("pytest", scope="global")

        results = fake_service.recall("delta epsilon zeta", scope="global", min_score=0.0)

        assert results[0].memory.content == "delta epsilon zeta"
        assert results[0].score == pytest.approx(1.0)
        assert results[0].match_type == "hybrid"

    def test_memory_written_outside_service_uses_stored_embedding(self, fake_service, store, vectors):
        """Test memories missing from the cached index are read individually."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        fake_service.recall("pytest", scope="global")
        vectors["delta epsilon zeta"] = [0.0, 0.0, 1.0]
        external = Memory(content="delta epsilon zeta", category="knowledge", scope="global")
        store.save_memory(external, [0.0, 0.0, 1.0])

        results = fake_service.recall("delta epsilon zeta", scope="global", min_score=0.0)

        assert results[0].memory.id == external.id
        assert results[0].score == pytest.approx(1.0)
        assert results[0].match_type == "hybrid"


class TestContextForRequest:
    """Test per-request memory selection."""

    def test_relevant_and_important_memories(self, fake_service, store, vectors):
        """Test recalled memories plus high-importance ones, all touched."""
        relevant = fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        important = fake_service.remember(
            "Never force push to main", scope="global", category="preference", importance=0.9
        )
        unrelated = fake_service.remember("Deploy with docker compose", scope="global", category="workflow")

        context = fake_service.get_context_for_request(
            [{"role": "user", "content": "how do I run pytest"}]
        )

        ids = [m.id for m in context.global_memories]
        assert ids == [relevant.id, important.id]
        assert unrelated.id not in ids
        assert context.errors == []
        assert store.get_memory(relevant.id, "global").access_count == 1
        assert store.get_memory(important.id, "global").access_count == 1
        assert store.get_memory(unrelated.id, "global").access_count == 0
        assert context.global_memories[0].access_count == 1

    def test_cap_applies_to_importance_override(self, fake_service, vectors):
        """Test importance additions respect the cap."""
        for i in range(3):
            fake_service.remember(f"Rule {i}", scope="global", category="preference", importance=0.95)

        context = fake_service.get_context_for_request(
            [{"role": "user", "content": "anything"}], max_global=2
        )

        assert len(context.global_memories) == 2

    def test_project_memories_need_path(self, fake_service, vectors):
        """Test project memories are selected only with a project path."""
        fake_service.remember("Use pytest for tests", scope="project", category="workflow", project_path="/a")
        messages = [{"role": "user", "content": "pytest"}]

        assert fake_service.get_context_for_request(messages).project_memories == []
        assert len(fake_service.get_context_for_request(messages, project_path="/a").project_memories) == 1

    def test_auto_inject_disabled(self, store, fake_embedder, vectors):
        """Test disabled scopes are skipped."""
        config = MemoryConfig(auto_inject=AutoInjectConfig(global_enabled=False))
        service = MemoryService(store, fake_embedder, config)
        service.remember("Use pytest for tests", scope="global", category="workflow")

        context = service.get_context_for_request([{"role": "user", "content": "pytest"}])

        assert context.global_memories == []

    def test_no_user_text(self, fake_service, vectors):
        """Test an empty query selects nothing."""
        fake_service.remember("Never force push", scope="global", category="preference", importance=0.9)

        context = fake_service.get_context_for_request([{"role": "assistant", "content": "hi"}])

        assert context.total == 0

    def test_recall_failure_reported(self, fake_service):
        """Test recall failures become non-fatal errors."""
        with patch.object(fake_service, "recall", side_effect=DatabaseError("locked")):
            context = fake_service.get_context_for_request([{"role": "user", "content": "pytest"}])

        assert context.global_memories == []
        assert any("Failed to recall global memories" in e for e in context.errors)

    def test_touch_failure_ignored(self, fake_service, store, vectors):
        """Test touch failures do not fail the request."""
        fake_service.remember("Use pytest for tests", scope="global", category="workflow")

        with patch.object(store, "touch_memory", side_effect=DatabaseError("locked")):
            context = fake_service.get_context_for_request([{"role": "user", "content": "pytest"}])

        assert len(context.global_memories) == 1
        assert context.global_memories[0].access_count == 0


class TestDirectAccess:
    """Test get, list and delete."""

    def test_get_and_delete(self, service):
        """Test deleting a memory."""
        memory = service.remember("x marks the spot", scope="global", category="knowledge")

        assert service.get_memory(memory.id, "global") == memory
        assert service.delete_memory(memory.id, "global") is True
        assert service.get_memory(memory.id, "global") is None
        assert service.delete_memory(memory.id, "global") is False

    def test_deleted_memory_not_recalled(self, fake_service, vectors):
        """Test recall does not see a deleted memory."""
        memory = fake_service.remember("Use pytest for tests", scope="global", category="workflow")
        assert len(fake_service.recall("pytest", scope="global")) == 1

        fake_service.delete_memory(memory.id, "global")

        assert fake_service.recall("pytest", scope="global") == []

    def test_delete_failure(self, fake_embedder):
        """Test delete failures are wrapped."""
        store = MagicMock()
        store.delete_memory.side_effect = DatabaseError("locked")
        service = MemoryService(store, fake_embedder)

        with pytest.raises(MemoryServiceError) as exc_info:
            service.delete_memory("abc", "global")

        assert exc_info.value.code == ErrorCode.MEMORY_DELETE_FAILED

    def test_list_failure_wrapped(self, fake_embedder):
        """Test foreign errors from the store are wrapped."""
        store = MagicMock()
        store.list_memories.side_effect = OSError("io")
        service = MemoryService(store, fake_embedder)

        with pytest.raises(MemoryServiceError):
            service.list_memories("global")


class TestCleanup:
    """Test the retention sweep."""

    def save_aged(self, store, content, importance, age_days, access_count=0):
        memory = Memory(
            content=content,
            category="context",
            scope="global",
            importance=importance,
            created_at=now_ms() - age_days * DAY_MS,
            access_count=access_count,
        )
        store.save_memory(memory)
        return memory

    def test_deletes_only_when_all_conditions_hold(self, fake_service, store):
        """Test low importance, old age and rare use are all required."""
        stale = self.save_aged(store, "stale", 0.1, 100)
        important = self.save_aged(store, "important", 0.5, 100)
        recent = self.save_aged(store, "recent", 0.1, 10)
        used = self.save_aged(store, "used", 0.1, 100, access_count=3)

        deleted = fake_service.cleanup()

        assert deleted == 1
        assert store.get_memory(stale.id, "global") is None
        for memory in (important, recent, used):
            assert store.get_memory(memory.id, "global") is not None

    def test_frequently_used_memories_survive_any_thresholds(self, fake_service, store):
        """Test memories accessed three or more times are never swept."""
        used = self.save_aged(store, "used", 0.0, 1000, access_count=5)

        assert fake_service.cleanup(min_importance=1.0, max_age_days=0) == 0
        assert store.get_memory(used.id, "global") is not None

    def test_thresholds_from_config(self, store, fake_embedder):
        """Test configured retention thresholds are used."""
        config = MemoryConfig(retention=RetentionConfig(min_importance=0.6, max_age_days=5))
        service = MemoryService(store, fake_embedder, config)
        self.save_aged(store, "x", 0.5, 6)

        assert service.cleanup() == 1

    def test_delete_failures_continue(self, fake_service, store):
        """Test a failing delete does not stop the sweep."""
        first = self.save_aged(store, "first", 0.1, 100)
        second = self.save_aged(store, "second", 0.1, 100)
        real_delete = store.delete_memory

        def flaky_delete(memory_id, scope):
            if memory_id == first.id:
                raise DatabaseError("locked")
            return real_delete(memory_id, scope)

        with patch.object(store, "delete_memory", side_effect=flaky_delete):
            assert fake_service.cleanup() == 1

        assert store.get_memory(first.id, "global") is not None
        assert store.get_memory(second.id, "global") is None


class TestStats:
    """Test statistics."""

    def test_counts(self, service):
        """Test scope counts and instance id."""
        service.remember("a fact", scope="global", category="knowledge")
        service.remember("b fact", scope="project", category="knowledge", project_path="/a")

        stats = service.get_stats()

        assert stats.global_count == 1
        assert stats.project_count == 1
        assert stats.instance_id == service.store.instance_id()
        assert stats.error is None

    def test_failure_reported(self, fake_embedder):
        """Test store failures are reported instead of raised."""
        store = MagicMock()
        store.count_memories.side_effect = DatabaseError("locked")

        stats = MemoryService(store, fake_embedder).get_stats()

        assert stats.global_count == -1
        assert stats.project_count == -1
        assert stats.instance_id == "error"
        assert "locked" in stats.error


class TestSaveRememberTags:
    """Test storing memories from model output."""

    def test_stores_tags(self, service):
        """Test valid tags are stored with extraction metadata."""
        text = (
            'Done.\n<remember scope="global" category="preference">Prefers small commits</remember>\n'
            "<remember category='decision' scope='project'>Use SQLite for the cache</remember>\n"
            '<remember scope="global" category="opinion">ignored</remember>'
        )

        stored = service.save_remember_tags(text, project_path="/repo", session_id="s1")

        assert [m.content for m in stored] == ["Prefers small commits", "Use SQLite for the cache"]
        assert stored[1].project_path == "/repo"
        assert all(m.metadata.source == "auto-extract" for m in stored)
        assert all(m.metadata.session_id == "s1" for m in stored)

    def test_project_tag_without_path_skipped(self, service):
        """Test project tags need a project path."""
        text = '<remember scope="project" category="decision">Use SQLite</remember>'

        assert service.save_remember_tags(text) == []
