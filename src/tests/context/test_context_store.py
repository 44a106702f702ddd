"""Tests for the dependency-aware context store."""

import pytest

from conftest import make_task
from swarm_orchestrator.context.context_store import ContextStore, task_importance
from swarm_orchestrator.errors import ValidationError
from swarm_orchestrator.models.context_models import ContextCategory
from swarm_orchestrator.models.task_models import (
    RiskLevel,
    TaskComplexity,
    TaskPriority,
)


class TestContextStore:
    """Test suite for ContextStore."""

    @pytest.fixture
    def store(self, clock):
        return ContextStore(capacity=10, clock=clock)

    @pytest.mark.asyncio
    async def test_store_and_retrieve_depth_zero(self, store):
        """Test depth 0 returns the bare payload."""
        await store.store("base", ContextCategory.SYSTEM, {"value": 1})
        await store.store("child", ContextCategory.SYSTEM, {"value": 2}, ["base"])

        context = await store.retrieve("child", depth=0)

        assert context == {"value": 2}

    @pytest.mark.asyncio
    async def test_retrieve_expands_dependencies(self, store):
        """Test depth 2 resolves dependencies of dependencies."""
        await store.store("root", ContextCategory.PROJECT, {"level": 0})
        await store.store("mid", ContextCategory.TASK, {"level": 1}, ["root"])
        await store.store("leaf", ContextCategory.TASK, {"level": 2}, ["mid"])

        context = await store.retrieve("leaf", depth=2)

        assert context["_meta"]["id"] == "leaf"
        mid = context["_dependencies"]["mid"]
        assert mid["level"] == 1
        assert mid["_dependencies"]["root"] == {"level": 0}

    @pytest.mark.asyncio
    async def test_expansion_is_capped_per_level(self, store):
        """Test at most five dependencies are expanded."""
        for index in range(7):
            await store.store(f"dep-{index}", ContextCategory.SYSTEM, {"i": index})
        await store.store(
            "hub", ContextCategory.SYSTEM, {}, [f"dep-{i}" for i in range(7)]
        )

        context = await store.retrieve("hub", depth=2)

        assert list(context["_dependencies"]) == [f"dep-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_retrieve_records_access(self, store, clock):
        """Test retrieval bumps the access count and timestamp."""
        await store.store("a", ContextCategory.SYSTEM, {})
        clock.advance(hours=1)

        await store.retrieve("a")

        entry = store.peek("a")
        assert entry.access_count == 1
        assert entry.last_accessed == clock()
        assert len(store.access_patterns["a"]) == 1

    @pytest.mark.asyncio
    async def test_retrieve_unknown_returns_none(self, store):
        """Test unknown ids yield None."""
        assert await store.retrieve("nope") is None

    @pytest.mark.asyncio
    async def test_invalid_entries_rejected(self, store):
        """Test empty ids, self-dependencies and bad importance raise."""
        with pytest.raises(ValidationError):
            await store.store("", ContextCategory.SYSTEM, {})
        with pytest.raises(ValidationError):
            await store.store("a", ContextCategory.SYSTEM, {}, ["a"])
        with pytest.raises(ValidationError):
            await store.store("a", ContextCategory.SYSTEM, {}, importance=1.5)

    @pytest.mark.asyncio
    async def test_overwrite_replaces_dependencies(self, store):
        """Test re-storing an id replaces its outgoing edges."""
        await store.store("x", ContextCategory.SYSTEM, {})
        await store.store("y", ContextCategory.SYSTEM, {})
        await store.store("z", ContextCategory.SYSTEM, {}, ["x"])

        await store.store("z", ContextCategory.SYSTEM, {}, ["y"])

        assert store.graph.get_dependents("x") == set()
        assert store.graph.get_dependents("y") == {"z"}
        assert store.check_consistency() == []

    @pytest.mark.asyncio
    async def test_eviction_drops_lowest_rank(self, clock):
        """Test overflow evicts the least important entry and its edges."""
        store = ContextStore(capacity=3, eviction_fraction=0.1, clock=clock)
        await store.store("keep", ContextCategory.SYSTEM, {}, importance=0.9)
        await store.store("drop", ContextCategory.SYSTEM, {}, importance=0.2)
        await store.store("mid", ContextCategory.SYSTEM, {}, ["drop"], importance=0.5)

        await store.store("new", ContextCategory.SYSTEM, {}, importance=0.6)

        assert "drop" not in store
        assert len(store) == 3
        assert store.peek("mid").dependencies == []
        assert store.get_stats().evictions == 1
        assert store.check_consistency() == []

    @pytest.mark.asyncio
    async def test_recency_weight_favours_old_entries(self, clock):
        """Test with a positive weight an old entry outranks a fresh one."""
        store = ContextStore(capacity=2, clock=clock)
        await store.store("old", ContextCategory.SYSTEM, {}, importance=0.3)
        clock.advance(days=2)
        await store.store("fresh", ContextCategory.SYSTEM, {}, importance=0.6)

        await store.store("newest", ContextCategory.SYSTEM, {}, importance=0.7)

        assert "old" in store
        assert "fresh" not in store

    @pytest.mark.asyncio
    async def test_remove_cleans_edges(self, store):
        """Test removal leaves no dangling reverse edges."""
        await store.store("a", ContextCategory.SYSTEM, {})
        await store.store("b", ContextCategory.SYSTEM, {}, ["a"])

        assert await store.remove("a") is True
        assert await store.remove("a") is False

        assert store.peek("b").dependencies == []
        assert store.check_consistency() == []

    @pytest.mark.asyncio
    async def test_placeholder_dependency_pruned(self, store):
        """Test a dependency on an unknown id does not outlive its referrer."""
        await store.store("a", ContextCategory.SYSTEM, {}, ["ghost"])
        assert store.graph.is_placeholder("ghost")

        await store.remove("a")

        assert "ghost" not in store.graph
        assert store.check_consistency() == []

    @pytest.mark.asyncio
    async def test_search_filters_and_orders(self, store, clock):
        """Test category, keyword and importance filters combine."""
        await store.store("t1", ContextCategory.TASK, {"title": "Payment gateway"}, importance=0.4)
        await store.store("t2", ContextCategory.TASK, {"title": "Payment refunds"}, importance=0.9)
        await store.store("s1", ContextCategory.STORY, {"title": "Payment story"}, importance=0.9)

        results = await store.search(category=ContextCategory.TASK, keywords=["PAYMENT"])
        assert [entry.id for entry in results] == ["t2", "t1"]

        results = await store.search(keywords=["refunds", "story"], min_importance=0.5)
        assert {entry.id for entry in results} == {"t2", "s1"}

    @pytest.mark.asyncio
    async def test_domain_helpers_link_contexts(self, store, project):
        """Test project, task and worker contexts are chained."""
        project_context = await store.create_project_context(project)
        task = make_task("t-1")
        task_context = await store.create_task_context(task, project.id)
        worker_context = await store.create_worker_context(
            "dev-a", task, [{"success": True, "duration_ms": 100.0}]
        )

        assert project_context == "project_shop"
        assert store.peek(task_context).dependencies == ["project_shop"]
        assert store.peek(worker_context).dependencies == ["task_t-1"]

        continuity = store.peek(worker_context).payload["continuity"]
        assert continuity["previous_executions"] == 1
        assert continuity["patterns"]["success_rate"] == 1.0

    @pytest.mark.asyncio
    async def test_worker_context_keeps_recent_history_only(self, store):
        """Test long worker histories are trimmed to the most recent results."""
        history = [
            {"success": index % 2 == 0, "duration_ms": float(index), "error": None}
            for index in range(15)
        ]

        context_id = await store.create_worker_context("dev-a", make_task("t-1"), history)

        payload = store.peek(context_id).payload
        assert len(payload["previous_results"]) == 10
        assert payload["previous_results"][0]["duration_ms"] == 5.0
        assert payload["continuity"]["previous_executions"] == 10
        assert len(history) == 15

    @pytest.mark.asyncio
    async def test_stats_and_export(self, store):
        """Test statistics and export reflect the stored entries."""
        await store.store("a", ContextCategory.TASK, {})
        await store.store("b", ContextCategory.STORY, {}, ["a"])

        stats = store.get_stats()
        assert stats.total_contexts == 2
        assert stats.total_dependencies == 1
        assert stats.cache_utilization == 20.0
        assert stats.category_counts == {"task": 1, "story": 1}

        exported = store.export_data()
        assert exported["dependencies"]["b"] == ["a"]
        assert len(exported["contexts"]) == 2

        store.clear()
        assert len(store) == 0


def test_task_importance():
    """Test importance combines priority, complexity, risk and dependencies."""
    task = make_task(
        priority=TaskPriority.HIGH,
        complexity=TaskComplexity.COMPLEX,
        risk=RiskLevel.HIGH,
        dependencies=["x"],
    )
    assert task_importance(task) == 1.0
    assert task_importance(make_task(priority=TaskPriority.LOW)) == 0.3
