"""Orchestrator: wires the core components and runs the two-phase pipeline."""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Union

from .cost_tracking_service import CostTracker
from ..config.orchestrator_config import OrchestratorConfig
from ..context.context_store import ContextStore
from ..decomposition.task_sharder import TaskSharder
from ..errors import CancellationError, OrchestrationError, ValidationError
from ..models.coordination_models import ExecutionResult
from ..models.event_models import EventKind, EventListener, OrchestrationEvent
from ..models.pipeline_models import PhaseResult, PipelineResult, PipelineStatus
from ..models.task_models import ProjectContext, Task
from ..models.worker_models import WorkerDefinition, WorkerRole
from ..phases.development_phase import DevelopmentPhase
from ..phases.planning_phase import PlanningPhase
from ..validation import validate_project, validate_task
from ..workers.base import ExecuteFn, FunctionExecutor, WorkExecutor
from ..workers.coordinator import Coordinator
from ..workers.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

ACTIVE_STATES = {PipelineStatus.RUNNING, PipelineStatus.PAUSED}


class Orchestrator:
    """
    High-level orchestration service.

    Owns one context store, task sharder, worker pool, coordinator and cost
    tracker, and drives the planning and development phases over them.

    PATTERN: Explicit construction; every component is injected or built here
    CRITICAL: One notification channel; coordinator and tracker events are
        forwarded to the listener registered at construction
    GOTCHA: shutdown() is terminal
    """

    def __init__(
        self,
        executor: Union[WorkExecutor, ExecuteFn],
        config: Optional[OrchestratorConfig] = None,
        roster: Optional[Iterable[WorkerDefinition]] = None,
        listener: Optional[EventListener] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            executor: Work executor, or a sync/async callable taking a WorkInstruction
            config: Orchestrator configuration (environment defaults if None)
            roster: Worker definitions (default roster if None)
            listener: Callback receiving every OrchestrationEvent
            clock: Time source, injectable for tests
        """
        self.config = config or OrchestratorConfig()
        self.listener = listener
        self._clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

        if not isinstance(executor, WorkExecutor):
            executor = FunctionExecutor(executor)

        self.context_store = ContextStore.from_config(self.config, clock=self._clock)
        self.sharder = TaskSharder(time_box_hours=self.config.shard_time_box_hours)
        self.pool = WorkerPool(roster, performance_window=self.config.performance_window)
        self.coordinator = Coordinator(
            self.pool,
            executor,
            task_timeout_ms=self.config.task_timeout_ms,
            max_concurrency=self.config.max_concurrent_tasks,
            listener=self._on_event,
        )
        self.cost_tracker = CostTracker(self.config, listener=self._on_event, clock=self._clock)

        self.worker_history: Dict[str, Deque[Dict[str, Any]]] = {}
        phase_args = (
            self.pool,
            self.coordinator,
            self.context_store,
            self.sharder,
            self.cost_tracker,
        )
        self.planning = PlanningPhase(
            *phase_args,
            gate=self._checkpoint,
            worker_history=self.worker_history,
            history_limit=self.config.performance_window,
        )
        self.development = DevelopmentPhase(
            *phase_args,
            gate=self._checkpoint,
            worker_history=self.worker_history,
            history_limit=self.config.performance_window,
        )

        self.status = PipelineStatus.IDLE
        self.current_project: Optional[ProjectContext] = None
        self.current_phase: Optional[str] = None
        self.run_history: List[PipelineResult] = []
        self.started_at = self._clock()

        self._resume = asyncio.Event()
        self._resume.set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._active = 0
        self._cancelled = False
        self._closing = False

        self._executions = {"completed": 0, "failed": 0, "cancelled": 0}
        self._execution_durations: Deque[float] = deque(maxlen=self.config.performance_window)

        self.logger.info(
            f"Orchestrator initialized with {len(self.pool)} workers, "
            f"context capacity {self.context_store.capacity}"
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run(
        self,
        project: ProjectContext,
        tasks: Optional[Sequence[Task]] = None,
    ) -> PipelineResult:
        """
        Run planning then development for a project.

        Args:
            project: Project to deliver
            tasks: Additional tasks for the development phase

        Returns:
            PipelineResult; success is False when any task failed or was blocked

        Raises:
            ValidationError: Malformed project or tasks, or a run already in progress
            CancellationError: cancel() was called during the run
        """
        self._ensure_open()
        validate_project(project)
        if self.status in ACTIVE_STATES:
            raise ValidationError("A pipeline run is already in progress", entity_id=project.id)

        self._cancelled = False
        self._resume.set()
        self.status = PipelineStatus.RUNNING
        self.current_project = project
        start = time.monotonic()
        result = PipelineResult(project_id=project.id, success=False, started_at=self._clock())

        self.logger.info(f"Pipeline started for project {project.name}")
        self._emit(EventKind.EXECUTION_STARTED, data={"project_id": project.id, "name": project.name})

        self._begin()
        try:
            self.current_phase = "planning"
            result.planning = await self.planning.execute(project)
            self._emit(EventKind.PLANNING_COMPLETED, data=self._phase_summary(result.planning))

            if result.planning.success:
                self.current_phase = "development"
                result.development = await self.development.execute(
                    result.planning.project or project, tasks
                )
                self._emit(
                    EventKind.DEVELOPMENT_COMPLETED, data=self._phase_summary(result.development)
                )
            else:
                self.logger.warning("Planning failed, development phase skipped")

        except (CancellationError, asyncio.CancelledError) as e:
            self.status = PipelineStatus.CANCELLED
            self.coordinator.cancel_all()
            self.logger.warning(f"Pipeline for project {project.id} cancelled")
            self._emit(
                EventKind.EXECUTION_CANCELLED,
                error=e.to_dict() if isinstance(e, OrchestrationError) else None,
                data={"project_id": project.id, "phase": self.current_phase},
            )
            raise

        except Exception as e:
            self.status = PipelineStatus.FAILED
            self.logger.error(f"Pipeline for project {project.id} failed: {e}")
            self._emit(
                EventKind.EXECUTION_FAILED,
                error=e.to_dict() if isinstance(e, OrchestrationError) else {"message": str(e)},
                data={"project_id": project.id, "phase": self.current_phase},
            )
            raise

        finally:
            self.current_phase = None
            self._end()

        result.success = result.planning.success and (
            result.development is not None and result.development.success
        )
        result.duration_ms = (time.monotonic() - start) * 1000
        result.completed_at = self._clock()
        self.run_history.append(result)

        if result.success:
            self.status = PipelineStatus.COMPLETED
            self.logger.info(f"Pipeline completed for {project.name} in {result.duration_ms:.0f}ms")
            self._emit(EventKind.EXECUTION_COMPLETED, data=self._pipeline_summary(result))
        else:
            self.status = PipelineStatus.FAILED
            self.logger.error(f"Pipeline finished with failures for project {project.name}")
            self._emit(EventKind.EXECUTION_FAILED, data=self._pipeline_summary(result))

        return result

    def pause(self) -> bool:
        """Hold the pipeline at its next step boundary. Returns False when not running."""
        if self.status != PipelineStatus.RUNNING:
            return False
        self._resume.clear()
        self.status = PipelineStatus.PAUSED
        self.logger.info("Pipeline paused")
        self._emit(EventKind.EXECUTION_PAUSED, data={"phase": self.current_phase})
        return True

    def resume(self) -> bool:
        """Release a paused pipeline. Returns False when not paused."""
        if self.status != PipelineStatus.PAUSED:
            return False
        self.status = PipelineStatus.RUNNING
        self._resume.set()
        self.logger.info("Pipeline resumed")
        self._emit(EventKind.EXECUTION_RESUMED, data={"phase": self.current_phase})
        return True

    def cancel(self) -> bool:
        """
        Cancel the running pipeline and every in-flight execution.

        Returns:
            False when nothing was running
        """
        if self.status not in ACTIVE_STATES and not self.coordinator.in_flight:
            return False

        self._cancelled = True
        self._resume.set()
        cancelled = self.coordinator.cancel_all()
        self.logger.info(f"Cancellation requested, {cancelled} in-flight executions cancelled")
        return True

    async def _checkpoint(self) -> None:
        """Step boundary: honour cancel, wait while paused."""
        if self._cancelled:
            raise CancellationError("Pipeline cancelled", entity_id=self._project_id())
        if not self._resume.is_set():
            self.logger.debug("Pipeline paused at step boundary")
            await self._resume.wait()
        if self._cancelled:
            raise CancellationError("Pipeline cancelled", entity_id=self._project_id())

    # ------------------------------------------------------------------
    # Single task
    # ------------------------------------------------------------------

    async def execute_task(
        self,
        task: Task,
        roles: Optional[Sequence[WorkerRole]] = None,
    ) -> ExecutionResult:
        """
        Execute one task outside the pipeline.

        Args:
            task: Task to execute
            roles: Roles to staff (role matrix for the task type if None)

        Returns:
            Execution result

        Raises:
            ValidationError: Malformed task
            RoleUnavailableError: No worker could be staffed
            ExecutionFailure: A step failed or timed out
            CancellationError: cancel() was called
        """
        self._ensure_open()
        validate_task(task)

        self._begin()
        try:
            result, raw, optimized = await self.development.run_task(task, roles)
        finally:
            self._end()

        self.cost_tracker.record(
            task.type.value, result.duration_ms, raw, optimized, result.worker_ids
        )
        return result

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Current execution status."""
        return {
            "status": self.status.value,
            "is_running": self.status in ACTIVE_STATES,
            "current_project": (
                {
                    "id": self.current_project.id,
                    "name": self.current_project.name,
                    "phase": self.current_phase,
                }
                if self.current_project and self.status in ACTIVE_STATES
                else None
            ),
            "in_flight_tasks": self.coordinator.in_flight,
            "workers": self.pool.get_summary(),
            "cost": self.cost_tracker.get_current_stats(),
            "context": self.context_store.get_stats().model_dump(),
        }

    def get_metrics(self) -> Dict[str, Any]:
        """Detailed metrics across every component."""
        finished = self._executions["completed"] + self._executions["failed"]
        durations = self._execution_durations

        return {
            "workers": {
                "summary": self.pool.get_summary(),
                "detailed": self.pool.get_status_overview(),
            },
            "cost": self.cost_tracker.report().model_dump(mode="json"),
            "context": self.context_store.get_stats().model_dump(),
            "sharding": self.sharder.get_stats().model_dump(),
            "orchestration": {
                "runs": len(self.run_history),
                "successful_runs": sum(1 for run in self.run_history if run.success),
                "task_executions": dict(self._executions),
                "success_rate": (
                    round(self._executions["completed"] / finished * 100, 2) if finished else 0.0
                ),
                "average_execution_ms": (
                    round(sum(durations) / len(durations), 2) if durations else 0.0
                ),
            },
        }

    def health_check(self) -> Dict[str, Any]:
        """
        Health of the orchestrator and its components.

        Returns:
            Dict with overall status (healthy|degraded|unhealthy) and per-service details
        """
        workers = self.pool.get_summary()
        available = workers["total"] - workers["offline"]
        problems = self.context_store.check_consistency()
        context = self.context_store.get_stats()
        cost = self.cost_tracker.get_current_stats()
        sharding = self.sharder.get_stats()

        if self.status == PipelineStatus.SHUTDOWN or available == 0:
            overall = "unhealthy"
        elif problems:
            overall = "degraded"
        else:
            overall = "healthy"

        return {
            "status": overall,
            "orchestrator": {
                "state": self.status.value,
                "uptime_seconds": round((self._clock() - self.started_at).total_seconds(), 2),
            },
            "services": {
                "worker_pool": {"workers": workers["total"], "available": available},
                "context_store": {
                    "total_contexts": context.total_contexts,
                    "cache_utilization": context.cache_utilization,
                    "consistency_problems": problems,
                },
                "cost_tracker": {
                    "total_operations": cost["total_operations"],
                    "total_savings": cost["total_savings"],
                },
                "task_sharder": {
                    "total_tasks_sharded": sharding.total_tasks_sharded,
                    "average_shards_per_task": sharding.average_shards_per_task,
                },
            },
        }

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Drain in-flight work, mark workers offline and clear caches and history.

        A paused pipeline is cancelled rather than waited for.

        Args:
            timeout: Seconds to wait for in-flight work before cancelling it
        """
        if self.status == PipelineStatus.SHUTDOWN:
            return

        self._closing = True
        self.logger.info("Shutting down orchestrator")

        if self._active:
            if self.status == PipelineStatus.PAUSED:
                self.cancel()
            try:
                await asyncio.wait_for(self._idle.wait(), timeout)
            except asyncio.TimeoutError:
                self.logger.warning(f"Work still in flight after {timeout}s, cancelling")
                self.cancel()
                await self._idle.wait()

        self.pool.shutdown()
        self.context_store.clear()
        self.sharder.clear_history()
        self.cost_tracker.clear_history()
        self.worker_history.clear()
        self.status = PipelineStatus.SHUTDOWN
        self.logger.info("Orchestrator shutdown complete")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closing or self.status == PipelineStatus.SHUTDOWN:
            raise ValidationError("Orchestrator is shut down")

    def _begin(self) -> None:
        self._active += 1
        self._idle.clear()

    def _end(self) -> None:
        self._active -= 1
        if self._active == 0:
            self._idle.set()

    def _project_id(self) -> Optional[str]:
        return self.current_project.id if self.current_project else None

    def _phase_summary(self, phase: PhaseResult) -> Dict[str, Any]:
        return {
            "phase": phase.phase,
            "success": phase.success,
            "duration_ms": phase.duration_ms,
            "executed": len(phase.executions),
            "failed": list(phase.failed_tasks),
            "blocked": list(phase.blocked_tasks),
            "metrics": phase.metrics,
        }

    def _pipeline_summary(self, result: PipelineResult) -> Dict[str, Any]:
        return {
            "project_id": result.project_id,
            "success": result.success,
            "duration_ms": result.duration_ms,
            "planning_success": result.planning.success if result.planning else None,
            "development_success": result.development.success if result.development else None,
        }

    def _on_event(self, event: OrchestrationEvent) -> None:
        """Count coordinator outcomes, then forward to the listener."""
        if event.kind == EventKind.TASK_COMPLETED:
            self._executions["completed"] += 1
            if event.result:
                self._execution_durations.append(float(event.result.get("duration_ms", 0.0)))
        elif event.kind == EventKind.TASK_FAILED:
            self._executions["failed"] += 1
        elif event.kind == EventKind.TASK_CANCELLED:
            self._executions["cancelled"] += 1

        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            self.logger.error(f"Event listener failed on {event.kind.value}: {e}")

    def _emit(self, kind: EventKind, **fields: Any) -> None:
        if self.listener is None:
            return
        event = OrchestrationEvent(kind=kind, timestamp=self._clock(), **fields)
        try:
            self.listener(event)
        except Exception as e:
            self.logger.error(f"Event listener failed on {kind.value}: {e}")
