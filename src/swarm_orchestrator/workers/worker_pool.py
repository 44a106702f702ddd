"""Registry of typed workers with load-aware selection and performance tracking."""

import asyncio
import logging
import threading
from collections import deque
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Deque, Dict, Iterable, List, Optional, Sequence

from ..errors import ValidationError
from ..models.worker_models import (
    DEFAULT_ROSTER,
    Worker,
    WorkerDefinition,
    WorkerRole,
    WorkerStatus,
)
from ..validation import validate_worker_definitions

logger = logging.getLogger(__name__)

LOAD_PENALTY = 10
QUALITY_REWARD = 0.5
QUALITY_PENALTY = 2.0


class WorkerPool:
    """
    Owns the worker roster and every worker state transition.

    PATTERN: Load counters and stats change only under a threading.Lock;
        a per-worker asyncio.Lock guards the busy flag
    CRITICAL: A worker holds at most one busy assignment at a time, further
        assignments queue on its lock while the load counter tracks them
    GOTCHA: Offline is terminal; shutdown cannot be undone
    """

    def __init__(
        self,
        definitions: Optional[Iterable[WorkerDefinition]] = None,
        performance_window: int = 100,
    ):
        """
        Initialize worker pool.

        Args:
            definitions: Roster (default roster if None)
            performance_window: Outcomes kept for the rolling success rate
        """
        roster = validate_worker_definitions(
            DEFAULT_ROSTER if definitions is None else definitions
        )

        self.workers: Dict[str, Worker] = {
            definition.id: Worker.from_definition(definition) for definition in roster
        }
        self.load: Dict[str, int] = {worker_id: 0 for worker_id in self.workers}
        self.performance_window = performance_window
        self._outcomes: Dict[str, Deque[bool]] = {
            worker_id: deque(maxlen=performance_window) for worker_id in self.workers
        }
        self._busy_locks: Dict[str, asyncio.Lock] = {
            worker_id: asyncio.Lock() for worker_id in self.workers
        }
        self._state_lock = threading.Lock()
        self.is_shutdown = False
        self.logger = logging.getLogger(__name__)

        self.logger.info(f"Worker pool initialized with {len(self.workers)} workers")

    def __len__(self) -> int:
        return len(self.workers)

    def get_worker(self, worker_id: str) -> Worker:
        """
        Get a worker by id.

        Raises:
            ValidationError: Unknown worker id
        """
        worker = self.workers.get(worker_id)
        if worker is None:
            raise ValidationError("Unknown worker", entity_id=worker_id)
        return worker

    def all_workers(self) -> List[Worker]:
        return list(self.workers.values())

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def selection_score(self, worker: Worker) -> float:
        """quality_score - load * 10."""
        return worker.performance.quality_score - self.load[worker.id] * LOAD_PENALTY

    def select_for_role(
        self,
        role: WorkerRole,
        exclude: Iterable[str] = (),
        allow_queue: bool = False,
    ) -> Optional[Worker]:
        """
        Pick the best available worker for a role.

        PATTERN: Idle or active candidates ranked by quality minus load
        GOTCHA: With allow_queue, busy workers are considered when nobody
            else is free; the assignment waits for the worker's lock

        Args:
            role: Required role
            exclude: Worker ids already picked
            allow_queue: Fall back to busy workers

        Returns:
            Selected worker, or None when the role cannot be filled
        """
        excluded = set(exclude)
        with self._state_lock:
            candidates = [
                worker
                for worker in self.workers.values()
                if worker.role == role and worker.id not in excluded
            ]
            available = [
                worker
                for worker in candidates
                if worker.status in (WorkerStatus.IDLE, WorkerStatus.ACTIVE)
            ]
            if not available and allow_queue:
                available = [
                    worker for worker in candidates if worker.status == WorkerStatus.BUSY
                ]
            if not available:
                return None

            # max() keeps the first of equal scores, i.e. roster order
            return max(available, key=self.selection_score)

    def select_for_roles(
        self,
        roles: Sequence[WorkerRole],
        allow_queue: bool = False,
    ) -> List[Worker]:
        """
        Pick one worker per requested role.

        Unfilled roles are skipped with a warning; the caller decides whether
        a partially staffed assignment is acceptable.

        Args:
            roles: Requested roles; a role listed twice yields two workers
            allow_queue: Fall back to busy workers

        Returns:
            Selected workers, in role order
        """
        selected: List[Worker] = []
        for role in roles:
            worker = self.select_for_role(
                role, exclude=[w.id for w in selected], allow_queue=allow_queue
            )
            if worker is None:
                self.logger.warning(f"No worker available for role: {WorkerRole(role).value}")
                continue
            selected.append(worker)
        return selected

    # ------------------------------------------------------------------
    # Load and state transitions
    # ------------------------------------------------------------------

    def reserve(self, worker_ids: Iterable[str]) -> None:
        """Count a pending assignment against each worker."""
        with self._state_lock:
            for worker_id in worker_ids:
                self.get_worker(worker_id)
                self.load[worker_id] += 1

    def release(self, worker_ids: Iterable[str]) -> None:
        """Drop a pending assignment from each worker's load."""
        with self._state_lock:
            for worker_id in worker_ids:
                self.load[worker_id] = max(0, self.load.get(worker_id, 0) - 1)

    @asynccontextmanager
    async def occupy(self, worker_ids: Sequence[str], task_id: str) -> AsyncIterator[List[Worker]]:
        """
        Hold workers busy for the duration of a block.

        PATTERN: Locks taken in sorted id order so concurrent assignments
            sharing workers cannot deadlock
        CRITICAL: Workers revert to active on exit, whatever the outcome

        Args:
            worker_ids: Workers to occupy
            task_id: Task being worked on

        Yields:
            The occupied workers
        """
        workers = [self.get_worker(worker_id) for worker_id in worker_ids]

        async with AsyncExitStack() as stack:
            for worker_id in sorted(set(worker_ids)):
                await stack.enter_async_context(self._busy_locks[worker_id])

            with self._state_lock:
                for worker in workers:
                    if worker.status != WorkerStatus.OFFLINE:
                        worker.status = WorkerStatus.BUSY
                    worker.current_task_id = task_id

            try:
                yield workers
            finally:
                with self._state_lock:
                    for worker in workers:
                        if worker.status != WorkerStatus.OFFLINE:
                            worker.status = WorkerStatus.ACTIVE
                        worker.current_task_id = None
                        worker.last_active = datetime.now()

    def record_outcome(self, worker_id: str, success: bool, duration_ms: float) -> None:
        """
        Fold one finished execution into a worker's statistics.

        PATTERN: Rolling window of outcomes drives the success rate
        CRITICAL: Never called for cancelled executions

        Args:
            worker_id: Worker id
            success: Whether the execution succeeded
            duration_ms: Execution time
        """
        with self._state_lock:
            worker = self.get_worker(worker_id)
            performance = worker.performance
            outcomes = self._outcomes[worker_id]

            outcomes.append(success)
            performance.success_rate_pct = round(sum(outcomes) / len(outcomes) * 100, 2)

            total_duration = performance.average_duration_ms * performance.tasks_completed
            performance.tasks_completed += 1
            performance.average_duration_ms = (
                total_duration + duration_ms
            ) / performance.tasks_completed

            if success:
                performance.quality_score = min(100.0, performance.quality_score + QUALITY_REWARD)
            else:
                performance.quality_score = max(0.0, performance.quality_score - QUALITY_PENALTY)

        self.logger.debug(
            f"Worker {worker_id} outcome={'success' if success else 'failure'} "
            f"quality={performance.quality_score:.1f}"
        )

    def shutdown(self) -> None:
        """Mark every worker offline. Terminal."""
        with self._state_lock:
            for worker in self.workers.values():
                worker.status = WorkerStatus.OFFLINE
                worker.current_task_id = None
            self.is_shutdown = True
        self.logger.info("Worker pool shut down, all workers offline")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """Counts per status plus average quality and success rate."""
        workers = list(self.workers.values())
        total = len(workers)

        def count(status: WorkerStatus) -> int:
            return sum(1 for worker in workers if worker.status == status)

        return {
            "total": total,
            "active": count(WorkerStatus.ACTIVE),
            "busy": count(WorkerStatus.BUSY),
            "idle": count(WorkerStatus.IDLE),
            "offline": count(WorkerStatus.OFFLINE),
            "average_quality": (
                round(sum(w.performance.quality_score for w in workers) / total, 2)
                if total
                else 0.0
            ),
            "average_success_rate": (
                round(sum(w.performance.success_rate_pct for w in workers) / total, 2)
                if total
                else 0.0
            ),
            "total_tasks_completed": sum(w.performance.tasks_completed for w in workers),
        }

    def get_status_overview(self) -> Dict[str, Dict[str, Any]]:
        """Per-worker status, current task, performance and load."""
        return {
            worker_id: {
                "name": worker.name,
                "role": worker.role.value,
                "status": worker.status.value,
                "current_task_id": worker.current_task_id,
                "performance": worker.performance.model_dump(),
                "load": self.load[worker_id],
            }
            for worker_id, worker in self.workers.items()
        }
