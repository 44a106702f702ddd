"""Base phase class and the task execution path shared by every phase."""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from ..context.compression import serialize
from ..context.context_store import ContextStore
from ..decomposition.complexity_scorer import estimate_tokens
from ..decomposition.task_sharder import TaskSharder
from ..errors import ExecutionFailure, OrchestrationError, RoleUnavailableError
from ..models.coordination_models import ExecutionResult
from ..models.pipeline_models import PhaseResult
from ..models.task_models import ProjectContext, Task, TaskComplexity, TaskType
from ..models.worker_models import WorkerRole
from ..services.cost_tracking_service import CostTracker
from ..workers.coordinator import COLLABORATIVE_TASK_TYPES, LEADER_ROLES, Coordinator
from ..workers.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

Gate = Callable[[], Awaitable[None]]

ROLE_MATRIX: Dict[TaskType, List[WorkerRole]] = {
    TaskType.REQUIREMENTS_ANALYSIS: [WorkerRole.ANALYST, WorkerRole.PRODUCT_MANAGER],
    TaskType.ARCHITECTURE_DESIGN: [
        WorkerRole.ARCHITECT,
        WorkerRole.ANALYST,
        WorkerRole.PRODUCT_MANAGER,
    ],
    TaskType.STORY_CREATION: [WorkerRole.COORDINATOR, WorkerRole.PRODUCT_MANAGER],
    TaskType.DEVELOPMENT: [WorkerRole.DEVELOPER],
    TaskType.TESTING: [WorkerRole.TESTER],
    TaskType.DEPLOYMENT: [WorkerRole.OPS],
    TaskType.DOCUMENTATION: [WorkerRole.ANALYST],
    TaskType.REVIEW: [WorkerRole.REVIEWER, WorkerRole.ARCHITECT],
}


def roles_for_task(task: Task) -> List[WorkerRole]:
    """
    Roles to staff for a task.

    Complex tasks outside the collaborative types get a coordinator in front
    so hierarchical coordination has a leader.
    """
    roles = list(ROLE_MATRIX.get(task.type, [WorkerRole.DEVELOPER]))
    if (
        task.effort.complexity == TaskComplexity.COMPLEX
        and task.type not in COLLABORATIVE_TASK_TYPES
        and not any(role in LEADER_ROLES for role in roles)
    ):
        roles.insert(0, WorkerRole.COORDINATOR)
    return roles


async def open_gate() -> None:
    """Gate that never blocks."""
    return None


async def gather_or_cancel(coroutines: Iterable[Awaitable[Any]]) -> List[Any]:
    """Run concurrently; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for pending in tasks:
            if not pending.done():
                pending.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass
class TaskRun:
    """Outcome of running one task through the coordinator."""

    task: Task
    result: Optional[ExecutionResult] = None
    error: Optional[OrchestrationError] = None
    raw_usage: int = 0
    optimized_usage: int = 0

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class BasePhase(ABC):
    """
    Abstract base class for pipeline phases.

    PATTERN: Phases share the orchestrator's components; nothing is global
    CRITICAL: gate() is awaited between steps so pause and cancel take effect
    """

    name: str = "phase"

    def __init__(
        self,
        pool: WorkerPool,
        coordinator: Coordinator,
        context_store: ContextStore,
        sharder: TaskSharder,
        cost_tracker: CostTracker,
        gate: Optional[Gate] = None,
        worker_history: Optional[Dict[str, Deque[Dict[str, Any]]]] = None,
        history_limit: int = 100,
    ):
        """
        Initialize phase.

        Args:
            pool: Worker pool
            coordinator: Coordinator executing assignments
            context_store: Context store
            sharder: Task sharder
            cost_tracker: Cost tracker
            gate: Awaited between steps (pause/cancel checkpoint)
            worker_history: Per-worker outcome history, shared across phases
            history_limit: Outcomes kept per worker
        """
        self.pool = pool
        self.coordinator = coordinator
        self.context_store = context_store
        self.sharder = sharder
        self.cost_tracker = cost_tracker
        self.gate = gate or open_gate
        self.worker_history = worker_history if worker_history is not None else {}
        self.history_limit = history_limit
        self.logger = logging.getLogger(__name__)

    @abstractmethod
    async def execute(self, project: ProjectContext, *args: Any, **kwargs: Any) -> PhaseResult:
        """
        Run the phase for a project.

        Args:
            project: Project being worked on

        Returns:
            Phase result
        """
        pass

    async def run_task(
        self,
        task: Task,
        roles: Optional[Sequence[WorkerRole]] = None,
        project_id: Optional[str] = None,
    ) -> Tuple[ExecutionResult, int, int]:
        """
        Staff, assign and execute one task with its context.

        PATTERN: Task context stored first, retrieved with dependencies and
            handed to every worker through the assignment
        CRITICAL: Worker history is updated for success and failure alike

        Args:
            task: Task to execute
            roles: Roles to staff (role matrix if None)
            project_id: Project the task belongs to

        Returns:
            (execution result, raw usage, optimized usage)

        Raises:
            RoleUnavailableError: No worker could be staffed
            ExecutionFailure: The assignment failed
        """
        roles = list(roles) if roles else roles_for_task(task)
        workers = self.pool.select_for_roles(roles, allow_queue=True)
        if not workers:
            raise RoleUnavailableError(
                "No worker available for roles: " + ", ".join(WorkerRole(r).value for r in roles),
                entity_id=task.id,
            )

        context_id = await self.context_store.create_task_context(task, project_id)
        shared = await self.context_store.retrieve(context_id, depth=2) or {}
        raw, optimized = self.usage_for(context_id)

        assignment = self.coordinator.assign(
            task, workers, context={"context_id": context_id, "context": shared}
        )

        start = time.monotonic()
        try:
            result = await self.coordinator.execute(assignment)
        except ExecutionFailure as e:
            self._remember(
                assignment.worker_ids,
                task,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error=e.message,
            )
            raise

        for worker_id in assignment.worker_ids:
            await self.context_store.create_worker_context(
                worker_id, task, self.worker_history.get(worker_id, [])
            )
        self._remember(assignment.worker_ids, task, success=True, duration_ms=result.duration_ms)

        workers_used = len(assignment.worker_ids)
        return result, raw * workers_used, optimized * workers_used

    async def attempt_task(
        self,
        task: Task,
        roles: Optional[Sequence[WorkerRole]] = None,
        project_id: Optional[str] = None,
    ) -> TaskRun:
        """run_task() with staffing and execution failures captured instead of raised."""
        try:
            result, raw, optimized = await self.run_task(task, roles, project_id)
        except (ExecutionFailure, RoleUnavailableError) as e:
            self.logger.error(f"Task {task.id} did not complete: {e}")
            return TaskRun(task=task, error=e)
        return TaskRun(task=task, result=result, raw_usage=raw, optimized_usage=optimized)

    def usage_for(self, context_id: str) -> Tuple[int, int]:
        """Token-equivalents of a context entry before and after compression."""
        entry = self.context_store.peek(context_id)
        if entry is None:
            return 0, 0
        optimized = estimate_tokens(serialize(entry.payload))
        if entry.compression_level <= 0:
            return optimized, optimized
        return math.ceil(optimized / entry.compression_level), optimized

    def _remember(
        self,
        worker_ids: Iterable[str],
        task: Task,
        success: bool,
        duration_ms: float,
        error: Optional[str] = None,
    ) -> None:
        for worker_id in worker_ids:
            self.worker_history.setdefault(worker_id, deque(maxlen=self.history_limit)).append(
                {
                    "task_id": task.id,
                    "success": success,
                    "duration_ms": duration_ms,
                    "error": error,
                }
            )
