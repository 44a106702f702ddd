"""Tests for Coordinator strategy selection and execution."""

import asyncio
import time

import pytest

from conftest import make_task
from swarm_orchestrator.errors import (
    CancellationError,
    ExecutionFailure,
    RoleUnavailableError,
    StepTimeoutError,
    ValidationError,
)
from swarm_orchestrator.models.coordination_models import CoordinationType
from swarm_orchestrator.models.event_models import EventKind
from swarm_orchestrator.models.task_models import TaskComplexity, TaskType
from swarm_orchestrator.models.worker_models import WorkerStatus
from swarm_orchestrator.workers.base import FunctionExecutor
from swarm_orchestrator.workers.coordinator import Coordinator
from swarm_orchestrator.workers.worker_pool import WorkerPool


class TestCoordinator:
    """Test suite for Coordinator."""

    @pytest.fixture
    def pool(self, small_roster):
        return WorkerPool(small_roster)

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def coordinator(self, pool, echo_executor, events):
        return Coordinator(pool, echo_executor, task_timeout_ms=1000, listener=events.append)

    def workers(self, pool, *worker_ids):
        return [pool.get_worker(worker_id) for worker_id in worker_ids]

    def test_single_worker_is_sequential(self, coordinator, pool):
        """Test one worker always gets the sequential strategy."""
        task = make_task(task_type=TaskType.ARCHITECTURE_DESIGN)
        assignment = coordinator.assign(task, self.workers(pool, "arch"))

        assert assignment.strategy.type == "sequential"
        assert assignment.task.assigned_worker_ids == ["arch"]
        assert pool.load["arch"] == 1

    def test_architecture_with_three_workers_is_collaborative(self, coordinator, pool):
        """Test design tasks with several workers collaborate."""
        task = make_task(task_type=TaskType.ARCHITECTURE_DESIGN)
        assignment = coordinator.assign(task, self.workers(pool, "arch", "dev-a", "qa"))

        assert assignment.strategy.type == "collaborative"
        assert all(step.action == "analyze" for step in assignment.strategy.workflow)

    def test_complex_task_is_hierarchical(self, coordinator, pool):
        """Test complex tasks are led by the architect."""
        task = make_task(complexity=TaskComplexity.COMPLEX)
        assignment = coordinator.assign(task, self.workers(pool, "dev-a", "arch"))

        assert assignment.strategy.type == "hierarchical"
        assert assignment.strategy.leader_id == "arch"
        steps = {step.worker_id: step for step in assignment.strategy.workflow}
        assert steps["dev-a"].dependencies == ["arch"]

    def test_complex_task_without_leader_fails(self, coordinator, pool):
        """Test hierarchical coordination needs a leader role."""
        task = make_task(complexity=TaskComplexity.COMPLEX)

        with pytest.raises(RoleUnavailableError):
            coordinator.assign(task, self.workers(pool, "dev-a", "dev-b"))
        assert pool.load["dev-a"] == 0

    def test_default_is_parallel_and_duplicates_dropped(self, coordinator, pool):
        """Test the fallback strategy and worker de-duplication."""
        workers = self.workers(pool, "dev-a", "dev-b", "dev-a")
        assignment = coordinator.assign(make_task(), workers)

        assert assignment.strategy.type == "parallel"
        assert assignment.worker_ids == ["dev-a", "dev-b"]

    def test_assign_without_workers(self, coordinator):
        """Test an empty worker list cannot be assigned."""
        with pytest.raises(RoleUnavailableError):
            coordinator.assign(make_task(), [])

    @pytest.mark.asyncio
    async def test_sequential_execution_records_success(self, coordinator, pool, calls, events):
        """Test a sequential run returns results and updates stats."""
        assignment = coordinator.assign(
            make_task(), self.workers(pool, "dev-a"), context={"context_id": "task_task-1"}
        )

        result = await coordinator.execute(assignment)

        assert result.strategy == CoordinationType.SEQUENTIAL
        assert result.results[0].output == {"worker": "dev-a", "action": "execute", "task": "task-1"}
        assert calls[0].context["shared"] == {"context_id": "task_task-1"}
        assert calls[0].context["previous_results"] == []

        worker = pool.get_worker("dev-a")
        assert worker.performance.tasks_completed == 1
        assert worker.status == WorkerStatus.ACTIVE
        assert pool.load["dev-a"] == 0
        assert [event.kind for event in events] == [EventKind.TASK_COMPLETED]

    @pytest.mark.asyncio
    async def test_hierarchical_delegation(self, pool, events):
        """Test subordinates receive the leader's directives by id or role."""
        seen = {}

        def execute(instruction):
            seen[instruction.worker.id] = instruction
            if instruction.action == "coordinate":
                return {
                    "delegation": {"dev-a": "Build the API", "developer": "Build the UI"},
                    "guidance": "Use REST",
                }
            return {"done": instruction.directive}

        coordinator = Coordinator(pool, FunctionExecutor(execute), task_timeout_ms=1000)
        task = make_task(complexity=TaskComplexity.COMPLEX)
        assignment = coordinator.assign(task, self.workers(pool, "arch", "dev-a", "dev-b"))

        result = await coordinator.execute(assignment)

        assert result.strategy == CoordinationType.HIERARCHICAL
        assert result.leader_plan.worker_id == "arch"
        assert seen["dev-a"].directive == "Build the API"
        assert seen["dev-b"].directive == "Build the UI"
        assert seen["dev-b"].context["guidance"] == "Use REST"
        assert "Developer A" in seen["arch"].directive

    @pytest.mark.asyncio
    async def test_collaborative_synthesis(self, pool):
        """Test analyses merge into consensus and quality-resolved conflicts."""
        outputs = {
            "arch": {"components": ["api", "db"], "database": "postgres", "style": "rest"},
            "dev-a": {"components": ["api", "cache"], "database": "mysql", "style": "rest"},
            "qa": {"components": ["api"], "database": "sqlite", "style": "rest"},
        }
        coordinator = Coordinator(
            pool,
            FunctionExecutor(lambda instruction: outputs[instruction.worker.id]),
            task_timeout_ms=1000,
        )
        pool.workers["arch"].performance.quality_score = 95

        task = make_task(task_type=TaskType.ARCHITECTURE_DESIGN)
        assignment = coordinator.assign(task, self.workers(pool, "arch", "dev-a", "qa"))
        result = await coordinator.execute(assignment)

        synthesis = result.synthesis
        assert result.strategy == CoordinationType.COLLABORATIVE
        assert synthesis.worker_count == 3
        assert synthesis.merged_output["components"] == ["api", "db", "cache"]
        assert synthesis.merged_output["database"] == "postgres"
        assert "components: api" in synthesis.consensus_points
        assert "style: rest" in synthesis.consensus_points
        assert [c.key for c in synthesis.conflict_resolutions] == ["database"]
        assert synthesis.conflict_resolutions[0].resolved_by == "arch"

    @pytest.mark.asyncio
    async def test_step_timeout(self, pool, events):
        """Test a slow step raises StepTimeoutError and counts as a failure."""

        async def slow(instruction):
            await asyncio.sleep(1)
            return {}

        coordinator = Coordinator(
            pool, FunctionExecutor(slow), task_timeout_ms=20, listener=events.append
        )
        assignment = coordinator.assign(make_task(), self.workers(pool, "qa"))

        with pytest.raises(StepTimeoutError):
            await coordinator.execute(assignment)

        performance = pool.get_worker("qa").performance
        assert performance.tasks_completed == 1
        assert performance.success_rate_pct == 0.0
        assert events[-1].kind == EventKind.TASK_FAILED
        assert events[-1].error["kind"] == "timeout"

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(self, pool):
        """Test one failing worker aborts the parallel branch."""
        started = []

        async def execute(instruction):
            started.append(instruction.worker.id)
            if instruction.worker.id == "dev-b":
                raise RuntimeError("compile error")
            await asyncio.sleep(1)
            return {}

        coordinator = Coordinator(pool, FunctionExecutor(execute), task_timeout_ms=5000)
        assignment = coordinator.assign(make_task(), self.workers(pool, "dev-a", "dev-b"))

        with pytest.raises(ExecutionFailure, match="compile error"):
            await coordinator.execute(assignment)

        assert set(started) == {"dev-a", "dev-b"}
        assert pool.get_worker("dev-a").performance.success_rate_pct == 0.0
        assert pool.get_worker("dev-a").status == WorkerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_cancel_releases_workers_without_stats(self, pool, events):
        """Test cancelling a parallel run leaves statistics untouched."""
        started = asyncio.Event()
        calls = []

        async def execute(instruction):
            calls.append(instruction.worker.id)
            if len(calls) == 2:
                started.set()
            await asyncio.Event().wait()

        coordinator = Coordinator(
            pool, FunctionExecutor(execute), task_timeout_ms=5000, listener=events.append
        )
        assignment = coordinator.assign(make_task(), self.workers(pool, "dev-a", "dev-b"))
        running = asyncio.ensure_future(coordinator.execute(assignment))

        await asyncio.wait_for(started.wait(), timeout=1)
        assert coordinator.in_flight == ["task-1"]
        assert coordinator.cancel("task-1") is True

        with pytest.raises(CancellationError):
            await running

        for worker_id in ("dev-a", "dev-b"):
            worker = pool.get_worker(worker_id)
            assert worker.status == WorkerStatus.ACTIVE
            assert worker.performance.tasks_completed == 0
            assert pool.load[worker_id] == 0
        assert coordinator.in_flight == []
        assert events[-1].kind == EventKind.TASK_CANCELLED

    def test_cancel_unknown_task(self, coordinator):
        """Test cancelling nothing reports False."""
        assert coordinator.cancel("missing") is False
        assert coordinator.cancel_all() == 0

    @pytest.mark.asyncio
    async def test_listener_errors_are_contained(self, pool, echo_executor, mocker):
        """Test a failing listener does not break execution."""
        listener = mocker.Mock(side_effect=RuntimeError("listener down"))
        coordinator = Coordinator(pool, echo_executor, task_timeout_ms=1000, listener=listener)
        assignment = coordinator.assign(make_task(), self.workers(pool, "qa"))

        result = await coordinator.execute(assignment)

        assert result.task_id == "task-1"
        listener.assert_called_once()

    @pytest.mark.asyncio
    async def test_sync_executor_is_bounded_by_step_timeout(self, pool, events):
        """Test a blocking sync callable cannot outlive its step timeout."""

        def slow(instruction):
            time.sleep(0.3)
            return {"late": True}

        coordinator = Coordinator(
            pool, FunctionExecutor(slow), task_timeout_ms=20, listener=events.append
        )
        assignment = coordinator.assign(make_task(), self.workers(pool, "qa"))

        start = time.monotonic()
        with pytest.raises(StepTimeoutError):
            await coordinator.execute(assignment)

        assert time.monotonic() - start < 0.25
        assert pool.load["qa"] == 0
        assert events[-1].error["kind"] == "timeout"

    @pytest.mark.asyncio
    async def test_sync_executor_does_not_block_the_loop(self, pool):
        """Test other coroutines keep running while a sync step works."""
        ticks = []

        def slow(instruction):
            time.sleep(0.1)
            return {}

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        coordinator = Coordinator(pool, FunctionExecutor(slow), task_timeout_ms=1000)
        assignment = coordinator.assign(make_task(), self.workers(pool, "qa"))

        await asyncio.gather(coordinator.execute(assignment), ticker())

        assert len(ticks) == 3
        assert ticks[-1] - ticks[0] < 0.09

    @pytest.mark.asyncio
    async def test_duplicate_execution_releases_load(self, pool):
        """Test rejecting a task that is already running frees its reservation."""
        release = asyncio.Event()

        async def execute(instruction):
            await release.wait()
            return {}

        coordinator = Coordinator(pool, FunctionExecutor(execute), task_timeout_ms=5000)
        first = coordinator.assign(make_task("same"), self.workers(pool, "qa"))
        second = coordinator.assign(make_task("same"), self.workers(pool, "qa"))
        assert pool.load["qa"] == 2

        running = asyncio.ensure_future(coordinator.execute(first))
        await asyncio.sleep(0)

        with pytest.raises(ValidationError, match="already executing"):
            await coordinator.execute(second)
        assert pool.load["qa"] == 1

        release.set()
        await running
        assert pool.load["qa"] == 0

    @pytest.mark.asyncio
    async def test_shared_worker_runs_one_assignment_at_a_time(self, pool):
        """Test queued assignments on one worker execute one after the other."""
        active = []
        peak = []

        async def execute(instruction):
            active.append(instruction.task.id)
            peak.append(len(active))
            await asyncio.sleep(0.02)
            active.remove(instruction.task.id)
            return {}

        coordinator = Coordinator(pool, FunctionExecutor(execute), task_timeout_ms=5000)
        first = coordinator.assign(make_task("first"), self.workers(pool, "qa"))
        second = coordinator.assign(make_task("second"), self.workers(pool, "qa"))
        assert pool.load["qa"] == 2

        results = await asyncio.gather(coordinator.execute(first), coordinator.execute(second))

        assert [r.task_id for r in results] == ["first", "second"]
        assert max(peak) == 1
        worker = pool.get_worker("qa")
        assert worker.status == WorkerStatus.ACTIVE
        assert worker.performance.tasks_completed == 2
        assert pool.load["qa"] == 0
