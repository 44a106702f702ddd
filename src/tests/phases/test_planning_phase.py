"""Tests for the planning phase and the shared task execution path."""

import pytest

from conftest import make_task
from swarm_orchestrator.context.context_store import ContextStore
from swarm_orchestrator.decomposition.task_sharder import TaskSharder
from swarm_orchestrator.errors import RoleUnavailableError
from swarm_orchestrator.models.task_models import TaskComplexity, TaskStatus, TaskType
from swarm_orchestrator.models.worker_models import WorkerRole
from swarm_orchestrator.phases import PlanningPhase, roles_for_task
from swarm_orchestrator.phases.planning_phase import merge_unique
from swarm_orchestrator.services.cost_tracking_service import CostTracker
from swarm_orchestrator.workers.base import FunctionExecutor
from swarm_orchestrator.workers.coordinator import Coordinator
from swarm_orchestrator.workers.worker_pool import WorkerPool


def build_phase(execute, config, clock, roster=None, gate=None):
    pool = WorkerPool(roster)
    coordinator = Coordinator(pool, FunctionExecutor(execute), task_timeout_ms=config.task_timeout_ms)
    return PlanningPhase(
        pool,
        coordinator,
        ContextStore.from_config(config, clock=clock),
        TaskSharder(config.shard_time_box_hours),
        CostTracker(config, clock=clock),
        gate=gate,
    )


def planning_output(instruction):
    if instruction.task.type == TaskType.REQUIREMENTS_ANALYSIS:
        return {
            "functional_requirements": [{"id": "FR004", "title": "Wishlist"}],
            "constraints": ["GDPR"],
            "artifacts": ["requirements.md"],
        }
    return {
        "components": [{"name": "API"}, {"name": "Storefront"}],
        "patterns": ["MVC"],
    }


class TestPlanningPhase:
    """Test suite for PlanningPhase."""

    def test_build_tasks(self, config, clock, project):
        """Test requirements analysis precedes architecture design."""
        phase = build_phase(planning_output, config, clock)
        requirements, architecture = phase.build_tasks(project)

        assert requirements.id == "req_analysis_shop"
        assert requirements.effort.estimated_hours == 4
        assert architecture.id == "arch_design_shop"
        assert architecture.dependencies == ["req_analysis_shop"]
        assert architecture.effort.estimated_hours == 6

    @pytest.mark.asyncio
    async def test_outputs_absorbed_into_project(self, config, clock, project):
        """Test requirements and architecture outputs enrich the project."""
        calls = []

        def execute(instruction):
            calls.append(instruction)
            return planning_output(instruction)

        phase = build_phase(execute, config, clock)

        result = await phase.execute(project)

        assert result.success
        updated = result.project
        assert [r["id"] for r in updated.functional_requirements] == [
            "FR001", "FR002", "FR003", "FR004"
        ]
        assert updated.requirements["constraints"] == ["PostgreSQL", "GDPR"]
        assert [c["name"] for c in updated.architecture["components"]] == ["Storefront", "API"]
        assert updated.architecture["patterns"] == ["MVC"]
        assert result.metrics == {"functional_requirements": 4, "components": 2, "artifacts": 2}
        assert len(project.functional_requirements) == 3

        design_call = next(c for c in calls if c.task.type == TaskType.ARCHITECTURE_DESIGN)
        project_context = design_call.context["shared"]["context"]["_dependencies"]["project_shop"]
        assert len(project_context["requirements"]["functional"]) == 4

    @pytest.mark.asyncio
    async def test_collaborative_staffing_and_cost(self, config, clock, project):
        """Test planning tasks are staffed collaboratively and costed once."""
        phase = build_phase(planning_output, config, clock)

        result = await phase.execute(project)

        requirements = result.executions["req_analysis_shop"]
        assert requirements.strategy.value == "collaborative"
        assert requirements.worker_ids == ["analyst", "product-manager"]
        assert result.executions["arch_design_shop"].worker_ids[0] == "architect"
        assert all(task.status == TaskStatus.DONE for task in result.tasks)

        history = phase.cost_tracker.history
        assert [entry.operation for entry in history] == ["planning"]
        assert history[0].raw_usage >= history[0].optimized_usage > 0
        assert result.context_ids == ["project_shop"]

    @pytest.mark.asyncio
    async def test_failed_requirements_block_design(self, config, clock, project):
        """Test a failing prerequisite blocks the dependent planning task."""

        def execute(instruction):
            raise RuntimeError("analysis unavailable")

        phase = build_phase(execute, config, clock)

        result = await phase.execute(project)

        assert not result.success
        assert result.failed_tasks["req_analysis_shop"]["kind"] == "execution_failure"
        assert result.blocked_tasks == ["arch_design_shop"]
        assert result.tasks[1].status == TaskStatus.BLOCKED
        assert phase.cost_tracker.history == []

    @pytest.mark.asyncio
    async def test_missing_roles_fail_without_raising(self, config, clock, project, small_roster):
        """Test an unstaffable task is reported as failed."""
        phase = build_phase(planning_output, config, clock, roster=small_roster)

        result = await phase.execute(project)

        assert result.failed_tasks["req_analysis_shop"]["kind"] == "role_unavailable"
        assert not result.success

    @pytest.mark.asyncio
    async def test_gate_awaited_per_task(self, config, clock, project):
        """Test the checkpoint runs before each planning task."""
        gates = []

        async def gate():
            gates.append(len(gates))

        phase = build_phase(planning_output, config, clock, gate=gate)
        await phase.execute(project)

        assert gates == [0, 1]

    @pytest.mark.asyncio
    async def test_worker_history_is_bounded(self, config, clock):
        """Test per-worker history keeps only the most recent outcomes."""
        phase = build_phase(lambda instruction: {"ok": True}, config, clock)
        phase.history_limit = 2

        for index in range(3):
            await phase.run_task(make_task(f"run-{index}", task_type=TaskType.TESTING))

        assert [h["task_id"] for h in phase.worker_history["tester"]] == ["run-1", "run-2"]

    @pytest.mark.asyncio
    async def test_run_task_records_worker_history(self, config, clock):
        """Test the execution path stores worker contexts and history."""
        phase = build_phase(lambda instruction: {"ok": True}, config, clock)
        task = make_task("solo", task_type=TaskType.TESTING)

        await phase.run_task(task)
        result, raw, optimized = await phase.run_task(task)

        assert result.worker_ids == ["tester"]
        assert raw >= optimized > 0
        assert [h["success"] for h in phase.worker_history["tester"]] == [True, True]
        workers = await phase.context_store.search(category="worker")
        continuity = max(
            (w.payload["continuity"] for w in workers), key=lambda c: c["previous_executions"]
        )
        assert continuity["previous_executions"] == 1

    @pytest.mark.asyncio
    async def test_run_task_without_workers(self, config, clock, small_roster):
        """Test staffing failure raises RoleUnavailableError."""
        phase = build_phase(lambda instruction: {}, config, clock, roster=small_roster)

        with pytest.raises(RoleUnavailableError):
            await phase.run_task(make_task(task_type=TaskType.DEPLOYMENT))


def test_roles_for_complex_task_add_leader():
    """Test complex non-design tasks gain a coordinator."""
    complex_dev = make_task(complexity=TaskComplexity.COMPLEX)
    complex_design = make_task(task_type=TaskType.ARCHITECTURE_DESIGN, complexity=TaskComplexity.COMPLEX)

    assert roles_for_task(complex_dev) == [WorkerRole.COORDINATOR, WorkerRole.DEVELOPER]
    assert roles_for_task(complex_design)[0] == WorkerRole.ARCHITECT
    assert roles_for_task(make_task()) == [WorkerRole.DEVELOPER]


def test_merge_unique_matches_by_identity():
    """Test dicts match by id or name, scalars by value."""
    merged = merge_unique(
        [{"id": "FR1", "title": "Old"}, "GDPR"],
        [{"id": "FR1", "title": "New"}, {"name": "API"}, "GDPR"],
    )
    assert merged == [{"id": "FR1", "title": "Old"}, "GDPR", {"name": "API"}]
