"""Tests for WorkerPool selection, state transitions and statistics."""

import pytest

from swarm_orchestrator.errors import ValidationError
from swarm_orchestrator.models.worker_models import WorkerRole, WorkerStatus
from swarm_orchestrator.workers.worker_pool import WorkerPool


class TestWorkerPool:
    """Test suite for WorkerPool."""

    @pytest.fixture
    def pool(self, small_roster):
        return WorkerPool(small_roster)

    def test_default_roster(self):
        """Test the default roster covers the standard roles."""
        pool = WorkerPool()

        assert len(pool) == 8
        assert pool.get_worker("architect").role == WorkerRole.ARCHITECT
        assert all(w.status == WorkerStatus.IDLE for w in pool.all_workers())

    def test_unknown_worker(self, pool):
        """Test unknown ids raise ValidationError."""
        with pytest.raises(ValidationError):
            pool.get_worker("ghost")

    def test_higher_quality_wins_at_equal_load(self, pool):
        """Test quality breaks ties between idle workers."""
        pool.workers["dev-a"].performance.quality_score = 80
        pool.workers["dev-b"].performance.quality_score = 90

        assert pool.select_for_role(WorkerRole.DEVELOPER).id == "dev-b"

    def test_load_penalises_selection(self, pool):
        """Test each pending assignment costs ten points."""
        pool.workers["dev-a"].performance.quality_score = 95
        pool.workers["dev-b"].performance.quality_score = 90
        pool.reserve(["dev-a"])

        assert pool.select_for_role(WorkerRole.DEVELOPER).id == "dev-b"

        pool.release(["dev-a"])
        assert pool.select_for_role(WorkerRole.DEVELOPER).id == "dev-a"

    def test_missing_role_returns_none(self, pool):
        """Test roles absent from the roster cannot be filled."""
        assert pool.select_for_role(WorkerRole.OPS) is None
        assert pool.select_for_roles([WorkerRole.OPS, WorkerRole.TESTER])[0].id == "qa"

    def test_duplicate_roles_pick_distinct_workers(self, pool):
        """Test a role listed twice yields two different workers."""
        selected = pool.select_for_roles([WorkerRole.DEVELOPER, WorkerRole.DEVELOPER])
        assert {w.id for w in selected} == {"dev-a", "dev-b"}

    @pytest.mark.asyncio
    async def test_occupy_marks_busy_then_active(self, pool):
        """Test occupied workers are busy inside the block and active after."""
        async with pool.occupy(["arch"], "task-1") as workers:
            assert workers[0].status == WorkerStatus.BUSY
            assert workers[0].current_task_id == "task-1"
            assert pool.select_for_role(WorkerRole.ARCHITECT) is None
            assert pool.select_for_role(WorkerRole.ARCHITECT, allow_queue=True).id == "arch"

        worker = pool.get_worker("arch")
        assert worker.status == WorkerStatus.ACTIVE
        assert worker.current_task_id is None
        assert worker.last_active is not None

    @pytest.mark.asyncio
    async def test_occupy_reverts_on_error(self, pool):
        """Test workers are released when the block raises."""
        with pytest.raises(RuntimeError):
            async with pool.occupy(["qa"], "task-1"):
                raise RuntimeError("boom")

        assert pool.get_worker("qa").status == WorkerStatus.ACTIVE

    def test_record_outcome_updates_statistics(self, pool):
        """Test success rate, duration average and quality adjust."""
        pool.record_outcome("dev-a", True, 100)
        pool.record_outcome("dev-a", False, 300)

        performance = pool.get_worker("dev-a").performance
        assert performance.tasks_completed == 2
        assert performance.average_duration_ms == 200
        assert performance.success_rate_pct == 50.0
        assert performance.quality_score == 83.5

    def test_success_rate_uses_rolling_window(self, small_roster):
        """Test old outcomes fall out of the window."""
        pool = WorkerPool(small_roster, performance_window=2)
        pool.record_outcome("qa", False, 10)
        pool.record_outcome("qa", True, 10)
        pool.record_outcome("qa", True, 10)

        assert pool.get_worker("qa").performance.success_rate_pct == 100.0

    def test_shutdown_is_terminal(self, pool):
        """Test shutdown takes every worker offline."""
        pool.shutdown()

        assert pool.is_shutdown
        assert pool.select_for_role(WorkerRole.DEVELOPER, allow_queue=True) is None
        assert pool.get_summary()["offline"] == 4

    def test_summary_and_overview(self, pool):
        """Test reporting aggregates."""
        pool.reserve(["dev-a"])
        summary = pool.get_summary()

        assert summary["total"] == 4
        assert summary["idle"] == 4
        assert summary["average_quality"] == 85.0
        assert pool.get_status_overview()["dev-a"]["load"] == 1
