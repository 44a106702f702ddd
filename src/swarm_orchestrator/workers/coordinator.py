"""Coordinator: strategy selection and execution for multi-worker assignments."""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Set

from .base import WorkExecutor
from .worker_pool import WorkerPool
from ..errors import (
    CancellationError,
    ExecutionFailure,
    OrchestrationError,
    RoleUnavailableError,
    StepTimeoutError,
    ValidationError,
)
from ..models.coordination_models import (
    Assignment,
    CollaborativeStrategy,
    ConflictResolution,
    CoordinationType,
    ExecutionResult,
    HierarchicalStrategy,
    ParallelStrategy,
    SequentialStrategy,
    Synthesis,
    WorkInstruction,
    WorkerResult,
    WorkflowStep,
)
from ..models.event_models import EventKind, EventListener, OrchestrationEvent
from ..models.task_models import Task, TaskComplexity, TaskType
from ..models.worker_models import Worker, WorkerRole
from ..validation import validate_task

logger = logging.getLogger(__name__)

COLLABORATIVE_TASK_TYPES = {TaskType.REQUIREMENTS_ANALYSIS, TaskType.ARCHITECTURE_DESIGN}
LEADER_ROLES = {WorkerRole.ARCHITECT, WorkerRole.COORDINATOR}
IDENTITY_KEYS = {"worker_id", "worker_name", "role", "task_id", "success", "artifacts"}


def _fingerprint(value: Any) -> str:
    return json.dumps(value, default=str, sort_keys=True)


class Coordinator:
    """
    Assigns workers to tasks and runs the chosen coordination strategy.

    PATTERN: Strategy is a tagged union dispatched exhaustively in _dispatch
    CRITICAL: Every executor call runs under asyncio.wait_for and a shared
        semaphore; a failing branch cancels its siblings
    CRITICAL: Cancelled executions release workers without touching their stats
    GOTCHA: assign() reserves load; execute() or discard() must follow
    """

    def __init__(
        self,
        pool: WorkerPool,
        executor: WorkExecutor,
        task_timeout_ms: int = 30 * 60 * 1000,
        max_concurrency: int = 5,
        listener: Optional[EventListener] = None,
    ):
        """
        Initialize coordinator.

        Args:
            pool: Worker pool owning the workers
            executor: Collaborator performing each unit of work
            task_timeout_ms: Timeout applied to every workflow step
            max_concurrency: Maximum concurrent executor calls
            listener: Notification callback for task events
        """
        if task_timeout_ms <= 0:
            raise ValueError("task_timeout_ms must be positive")

        self.pool = pool
        self.executor = executor
        self.task_timeout_ms = task_timeout_ms
        self.max_concurrency = max_concurrency
        self.listener = listener

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def determine_strategy(self, task: Task, workers: Sequence[Worker]):
        """
        Choose a coordination strategy.

        Rules, first match wins:
        1. one worker -> sequential
        2. requirements analysis / architecture design -> collaborative
        3. complex effort -> hierarchical, led by the first architect or coordinator
        4. otherwise -> parallel

        Raises:
            RoleUnavailableError: Hierarchical strategy with no eligible leader
        """
        timeout = self.task_timeout_ms

        if len(workers) == 1:
            return SequentialStrategy(
                workflow=[WorkflowStep(worker_id=workers[0].id, timeout_ms=timeout)]
            )

        if task.type in COLLABORATIVE_TASK_TYPES:
            return CollaborativeStrategy(
                workflow=[
                    WorkflowStep(worker_id=worker.id, action="analyze", timeout_ms=timeout)
                    for worker in workers
                ]
            )

        if task.effort.complexity == TaskComplexity.COMPLEX:
            leader = next((w for w in workers if w.role in LEADER_ROLES), None)
            if leader is None:
                raise RoleUnavailableError(
                    "Hierarchical coordination needs an architect or coordinator",
                    entity_id=task.id,
                )
            return HierarchicalStrategy(
                leader_id=leader.id,
                workflow=[
                    WorkflowStep(
                        worker_id=worker.id,
                        action="coordinate" if worker.id == leader.id else "execute",
                        dependencies=[] if worker.id == leader.id else [leader.id],
                        timeout_ms=timeout,
                    )
                    for worker in workers
                ],
            )

        return ParallelStrategy(
            workflow=[WorkflowStep(worker_id=worker.id, timeout_ms=timeout) for worker in workers]
        )

    def assign(
        self,
        task: Task,
        workers: Sequence[Worker],
        context: Optional[Dict[str, Any]] = None,
    ) -> Assignment:
        """
        Bind workers to a task under a coordination strategy.

        Args:
            task: Task to execute
            workers: Workers to involve (duplicates are dropped)
            context: Shared context handed to every worker

        Returns:
            Assignment with the chosen strategy

        Raises:
            ValidationError: Malformed task or unknown worker
            RoleUnavailableError: No workers, or no hierarchical leader
        """
        validate_task(task)

        unique: List[Worker] = []
        for worker in workers:
            self.pool.get_worker(worker.id)
            if worker.id not in {w.id for w in unique}:
                unique.append(worker)

        if not unique:
            raise RoleUnavailableError("No workers available for task", entity_id=task.id)

        strategy = self.determine_strategy(task, unique)
        worker_ids = [worker.id for worker in unique]

        self.pool.reserve(worker_ids)

        assignment = Assignment(
            task=task.model_copy(update={"assigned_worker_ids": worker_ids}),
            worker_ids=worker_ids,
            strategy=strategy,
            context=context or {},
        )

        self.logger.info(
            f"Assigned {len(worker_ids)} workers to task {task.id} "
            f"using {strategy.type} coordination"
        )
        return assignment

    def discard(self, assignment: Assignment) -> None:
        """Release the load of an assignment that will not be executed."""
        self.pool.release(assignment.worker_ids)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, assignment: Assignment) -> ExecutionResult:
        """
        Execute an assignment.

        Args:
            assignment: Assignment from assign()

        Returns:
            Combined execution result

        Raises:
            ValidationError: The same task id is already executing; the
                assignment's load is released
            ExecutionFailure: A step raised or timed out (StepTimeoutError)
            CancellationError: cancel() was called for this task
            asyncio.CancelledError: The calling task itself was cancelled
        """
        task_id = assignment.task.id
        if task_id in self._in_flight:
            self.pool.release(assignment.worker_ids)
            raise ValidationError("Task is already executing", entity_id=task_id)

        inner = asyncio.ensure_future(self._run(assignment))
        self._in_flight[task_id] = inner

        try:
            return await inner
        except asyncio.CancelledError:
            self.logger.warning(f"Task {task_id} cancelled, releasing workers")
            self._emit(
                OrchestrationEvent(
                    kind=EventKind.TASK_CANCELLED,
                    task_id=task_id,
                    worker_ids=assignment.worker_ids,
                )
            )
            current = asyncio.current_task()
            if task_id in self._cancel_requested and not (current and current.cancelling()):
                raise CancellationError("Execution cancelled on request", entity_id=task_id) from None
            raise
        finally:
            self.pool.release(assignment.worker_ids)
            self._in_flight.pop(task_id, None)
            self._cancel_requested.discard(task_id)

    def cancel(self, task_id: str) -> bool:
        """
        Request cancellation of an in-flight execution.

        Returns:
            True if an execution was cancelled
        """
        inner = self._in_flight.get(task_id)
        if inner is None or inner.done():
            return False
        self._cancel_requested.add(task_id)
        inner.cancel()
        self.logger.info(f"Cancellation requested for task {task_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight execution. Returns how many were cancelled."""
        return sum(1 for task_id in list(self._in_flight) if self.cancel(task_id))

    @property
    def in_flight(self) -> List[str]:
        return list(self._in_flight)

    async def _run(self, assignment: Assignment) -> ExecutionResult:
        task = assignment.task
        worker_ids = assignment.worker_ids
        start = time.monotonic()

        self.logger.info(f"Executing task {task.id} with workers {', '.join(worker_ids)}")

        try:
            async with self.pool.occupy(worker_ids, task.id) as workers:
                result = await self._dispatch(assignment, workers)

        except ExecutionFailure as e:
            duration_ms = (time.monotonic() - start) * 1000
            for worker_id in worker_ids:
                self.pool.record_outcome(worker_id, False, duration_ms)

            self.logger.error(f"Task {task.id} failed: {e}")
            self._emit(
                OrchestrationEvent(
                    kind=EventKind.TASK_FAILED,
                    task_id=task.id,
                    worker_ids=worker_ids,
                    error=e.to_dict(),
                )
            )
            raise

        duration_ms = (time.monotonic() - start) * 1000
        for worker_id in worker_ids:
            self.pool.record_outcome(worker_id, True, duration_ms)

        result.duration_ms = duration_ms
        self.logger.info(f"Task {task.id} completed in {duration_ms:.0f}ms")
        self._emit(
            OrchestrationEvent(
                kind=EventKind.TASK_COMPLETED,
                task_id=task.id,
                worker_ids=worker_ids,
                result=result.model_dump(mode="json"),
            )
        )
        return result

    async def _dispatch(self, assignment: Assignment, workers: List[Worker]) -> ExecutionResult:
        strategy = assignment.strategy
        shared = assignment.context
        steps = {step.worker_id: step for step in strategy.workflow}

        if isinstance(strategy, ParallelStrategy):
            return await self._execute_parallel(assignment.task, workers, steps, shared)
        elif isinstance(strategy, SequentialStrategy):
            return await self._execute_sequential(assignment.task, workers, steps, shared)
        elif isinstance(strategy, HierarchicalStrategy):
            return await self._execute_hierarchical(
                assignment.task, workers, steps, shared, strategy.leader_id
            )
        elif isinstance(strategy, CollaborativeStrategy):
            return await self._execute_collaborative(assignment.task, workers, steps, shared)
        else:
            raise ValidationError(
                f"Unsupported coordination strategy: {strategy!r}",
                entity_id=assignment.task.id,
            )

    def _step(self, steps: Dict[str, WorkflowStep], worker: Worker, action: str) -> WorkflowStep:
        return steps.get(worker.id) or WorkflowStep(
            worker_id=worker.id, action=action, timeout_ms=self.task_timeout_ms
        )

    async def _call_worker(
        self,
        worker: Worker,
        step: WorkflowStep,
        instruction: WorkInstruction,
    ) -> WorkerResult:
        """
        Run one executor call under the concurrency bound and step timeout.

        Raises:
            StepTimeoutError: The step exceeded its timeout
            ExecutionFailure: The executor raised
        """
        task_id = instruction.task.id

        async with self._semaphore:
            start = time.monotonic()
            try:
                output = await asyncio.wait_for(
                    self.executor.execute(instruction), timeout=step.timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                raise StepTimeoutError(
                    f"Worker {worker.id} timed out after {step.timeout_ms}ms",
                    entity_id=task_id,
                ) from None
            except OrchestrationError:
                raise
            except Exception as e:
                raise ExecutionFailure(
                    f"Worker {worker.id} failed: {e}", entity_id=task_id
                ) from e

        return WorkerResult(
            worker_id=worker.id,
            role=worker.role.value,
            action=step.action,
            output=output if isinstance(output, dict) else {"output": output},
            duration_ms=(time.monotonic() - start) * 1000,
        )

    async def _gather_or_cancel(self, coroutines: Iterable[Awaitable[WorkerResult]]) -> List[WorkerResult]:
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

    async def _execute_parallel(
        self,
        task: Task,
        workers: List[Worker],
        steps: Dict[str, WorkflowStep],
        shared: Dict[str, Any],
    ) -> ExecutionResult:
        results = await self._gather_or_cancel(
            self._call_worker(
                worker,
                self._step(steps, worker, "execute"),
                WorkInstruction(
                    task=task,
                    worker=worker,
                    action=self._step(steps, worker, "execute").action,
                    context={
                        "focus": worker.role.value,
                        "capabilities": worker.capabilities,
                        "shared": shared,
                    },
                    step_index=index,
                ),
            )
            for index, worker in enumerate(workers)
        )

        return ExecutionResult(
            task_id=task.id,
            strategy=CoordinationType.PARALLEL,
            worker_ids=[worker.id for worker in workers],
            results=results,
            artifacts=self._combine_artifacts(results),
            summary=f"{len(results)} workers executed {task.title} in parallel",
        )

    async def _execute_sequential(
        self,
        task: Task,
        workers: List[Worker],
        steps: Dict[str, WorkflowStep],
        shared: Dict[str, Any],
    ) -> ExecutionResult:
        results: List[WorkerResult] = []
        running_context: Dict[str, Any] = {}

        for index, worker in enumerate(workers):
            step = self._step(steps, worker, "execute")
            instruction = WorkInstruction(
                task=task,
                worker=worker,
                action=step.action,
                context={
                    "focus": worker.role.value,
                    "previous_results": [result.output for result in results],
                    "running_context": dict(running_context),
                    "shared": shared,
                },
                step_index=index,
            )
            result = await self._call_worker(worker, step, instruction)
            results.append(result)
            running_context.update(result.output)

        return ExecutionResult(
            task_id=task.id,
            strategy=CoordinationType.SEQUENTIAL,
            worker_ids=[worker.id for worker in workers],
            results=results,
            artifacts=self._combine_artifacts(results),
            summary=f"{len(results)} sequential steps completed for {task.title}",
        )

    async def _execute_hierarchical(
        self,
        task: Task,
        workers: List[Worker],
        steps: Dict[str, WorkflowStep],
        shared: Dict[str, Any],
        leader_id: str,
    ) -> ExecutionResult:
        leader = next((worker for worker in workers if worker.id == leader_id), None)
        if leader is None:
            raise RoleUnavailableError("Leader is not part of the assignment", entity_id=leader_id)
        subordinates = [worker for worker in workers if worker.id != leader_id]

        leader_step = self._step(steps, leader, "coordinate")
        leader_result = await self._call_worker(
            leader,
            leader_step,
            WorkInstruction(
                task=task,
                worker=leader,
                action=leader_step.action,
                directive=(
                    "Coordinate the following workers: "
                    + ", ".join(worker.name for worker in subordinates)
                ),
                context={
                    "subordinates": [
                        {"id": w.id, "name": w.name, "role": w.role.value} for w in subordinates
                    ],
                    "shared": shared,
                },
            ),
        )

        plan = leader_result.output
        delegation = plan.get("delegation")
        guidance = plan.get("guidance", "Follow the leader's plan")

        results = await self._gather_or_cancel(
            self._call_worker(
                worker,
                self._step(steps, worker, "execute"),
                WorkInstruction(
                    task=task,
                    worker=worker,
                    action=self._step(steps, worker, "execute").action,
                    directive=self._delegated_directive(delegation, worker, index),
                    context={
                        "leader_id": leader.id,
                        "leader_plan": plan,
                        "guidance": guidance,
                        "shared": shared,
                    },
                    step_index=index + 1,
                ),
            )
            for index, worker in enumerate(subordinates)
        )

        return ExecutionResult(
            task_id=task.id,
            strategy=CoordinationType.HIERARCHICAL,
            worker_ids=[worker.id for worker in workers],
            leader_plan=leader_result,
            results=results,
            artifacts=self._combine_artifacts([leader_result, *results]),
            summary=f"{leader.name} coordinated {len(results)} workers on {task.title}",
        )

    def _delegated_directive(self, delegation: Any, worker: Worker, index: int) -> str:
        """Find the leader's directive for a subordinate by id, role or position."""
        if isinstance(delegation, dict):
            for key in (worker.id, worker.role.value, str(index)):
                if key in delegation:
                    return str(delegation[key])
        elif isinstance(delegation, list) and index < len(delegation):
            return str(delegation[index])
        return f"Execute {worker.role.value} responsibilities"

    async def _execute_collaborative(
        self,
        task: Task,
        workers: List[Worker],
        steps: Dict[str, WorkflowStep],
        shared: Dict[str, Any],
    ) -> ExecutionResult:
        analyses = await self._gather_or_cancel(
            self._call_worker(
                worker,
                self._step(steps, worker, "analyze"),
                WorkInstruction(
                    task=task,
                    worker=worker,
                    action=self._step(steps, worker, "analyze").action,
                    directive=f"Provide your expert analysis from a {worker.role.value} perspective",
                    context={
                        "focus": worker.role.value,
                        "capabilities": worker.capabilities,
                        "shared": shared,
                    },
                    step_index=index,
                ),
            )
            for index, worker in enumerate(workers)
        )

        synthesis = self.synthesize(analyses, workers)

        return ExecutionResult(
            task_id=task.id,
            strategy=CoordinationType.COLLABORATIVE,
            worker_ids=[worker.id for worker in workers],
            results=analyses,
            synthesis=synthesis,
            artifacts=self._combine_artifacts(analyses),
            summary=(
                f"Collaborative effort by {', '.join(w.name for w in workers)} "
                f"produced {len(analyses)} analyses"
            ),
        )

    def synthesize(self, analyses: List[WorkerResult], workers: List[Worker]) -> Synthesis:
        """
        Merge independent analyses.

        PATTERN: Values shared by every analysis become consensus points;
            differing scalar/dict values are conflicts kept from the
            highest-quality worker; list values are merged as a union

        Args:
            analyses: One result per worker
            workers: The workers that produced them

        Returns:
            Synthesis with consensus points and conflict resolutions
        """
        quality = {worker.id: worker.performance.quality_score for worker in workers}
        outputs = {result.worker_id: result.output for result in analyses}

        keys: List[str] = []
        for output in outputs.values():
            for key in output:
                if key not in IDENTITY_KEYS and key not in keys:
                    keys.append(key)

        consensus: List[str] = []
        conflicts: List[ConflictResolution] = []
        merged: Dict[str, Any] = {}

        for key in keys:
            values = {worker_id: output[key] for worker_id, output in outputs.items() if key in output}

            if all(isinstance(value, list) for value in values.values()):
                union: List[Any] = []
                seen = set()
                for value in values.values():
                    for item in value:
                        fingerprint = _fingerprint(item)
                        if fingerprint not in seen:
                            seen.add(fingerprint)
                            union.append(item)
                merged[key] = union
                if len(values) == len(outputs) and len(outputs) > 1:
                    for item in union:
                        if all(
                            _fingerprint(item) in {_fingerprint(v) for v in value}
                            for value in values.values()
                        ):
                            consensus.append(f"{key}: {item}")
                continue

            distinct = {_fingerprint(value) for value in values.values()}
            if len(distinct) == 1:
                merged[key] = next(iter(values.values()))
                if len(values) == len(outputs) and len(outputs) > 1:
                    consensus.append(f"{key}: {merged[key]}")
                continue

            winner = max(values, key=lambda worker_id: quality.get(worker_id, 0.0))
            merged[key] = values[winner]
            conflicts.append(
                ConflictResolution(
                    key=key,
                    values=values,
                    resolved_value=values[winner],
                    resolved_by=winner,
                    rationale=(
                        f"Kept {winner}'s value (quality {quality.get(winner, 0.0):.1f})"
                    ),
                )
            )

        return Synthesis(
            worker_count=len(outputs),
            consensus_points=consensus,
            conflict_resolutions=conflicts,
            merged_output=merged,
            recommendation=(
                f"Synthesized {len(outputs)} analyses with {len(consensus)} consensus "
                f"points and {len(conflicts)} resolved conflicts"
            ),
        )

    def _combine_artifacts(self, results: List[WorkerResult]) -> List[Any]:
        artifacts: List[Any] = []
        for result in results:
            produced = result.output.get("artifacts", [])
            if isinstance(produced, list):
                artifacts.extend(produced)
        return artifacts

    def _emit(self, event: OrchestrationEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            self.logger.error(f"Event listener failed on {event.kind.value}: {e}")
