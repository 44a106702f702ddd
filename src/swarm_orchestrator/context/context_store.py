"""Dependency-aware, importance-weighted context cache."""

import asyncio
import copy
import logging
import math
from collections import Counter, deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Union

from .compression import PayloadCompressor, serialize
from ..config.orchestrator_config import OrchestratorConfig
from ..decomposition.dependency_graph import DependencyGraph
from ..errors import ValidationError
from ..models.context_models import (
    ContextCategory,
    ContextEntry,
    ContextStats,
    SearchCriteria,
)
from ..models.task_models import ProjectContext, RiskLevel, Task, TaskComplexity, TaskPriority

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
ACCESS_PATTERN_LIMIT = 100
WORKER_CONTEXT_HISTORY = 10

PRIORITY_IMPORTANCE: Dict[TaskPriority, float] = {
    TaskPriority.CRITICAL: 1.0,
    TaskPriority.HIGH: 0.8,
    TaskPriority.MEDIUM: 0.5,
    TaskPriority.LOW: 0.3,
}


def task_importance(task: Task) -> float:
    """
    Importance of a task's context entry.

    Priority weight, +0.2 when complex, +0.1 for high risk,
    +0.1 when it has dependencies, capped at 1.0.
    """
    importance = PRIORITY_IMPORTANCE.get(task.priority, 0.5)
    if task.effort.complexity == TaskComplexity.COMPLEX:
        importance += 0.2
    if task.effort.risk_level == RiskLevel.HIGH:
        importance += 0.1
    if task.dependencies:
        importance += 0.1
    return min(1.0, round(importance, 4))


class ContextStore:
    """
    Directed graph of context entries with bounded capacity.

    PATTERN: Single asyncio.Lock serialises every graph mutation
    CRITICAL: Removal always goes through DependencyGraph.remove_node so no
        reverse edge can outlive its entry
    GOTCHA: Eviction rank = importance + recency_weight * age_in_days, lowest
        first, so with the default weight fresh low-importance entries go first
    """

    def __init__(
        self,
        capacity: int = 1000,
        eviction_fraction: float = 0.1,
        recency_weight: float = 1.0,
        max_dependency_expansion: int = 5,
        compressor: Optional[PayloadCompressor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize context store.

        Args:
            capacity: Maximum number of entries
            eviction_fraction: Share of entries removed on overflow
            recency_weight: Weight of the age term in the rank
            max_dependency_expansion: Dependencies expanded per retrieval level
            compressor: Payload compressor (default thresholds if None)
            clock: Time source, injectable for tests
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.capacity = capacity
        self.eviction_fraction = eviction_fraction
        self.recency_weight = recency_weight
        self.max_dependency_expansion = max_dependency_expansion
        self.compressor = compressor or PayloadCompressor()
        self._clock = clock or datetime.now

        self.entries: Dict[str, ContextEntry] = {}
        self.graph = DependencyGraph()
        self.access_patterns: Dict[str, Deque[datetime]] = {}
        self.evictions = 0
        self._worker_context_counter = 0

        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: OrchestratorConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "ContextStore":
        """Build a store from orchestrator configuration."""
        compressor = PayloadCompressor(
            size_threshold=config.compression_size_threshold,
            redundancy_threshold=config.compression_redundancy_threshold,
            description_max_length=config.description_max_length,
            array_threshold=config.array_compression_threshold,
            array_keep=config.array_keep_items,
        )
        return cls(
            capacity=config.context_cache_capacity,
            eviction_fraction=config.context_eviction_fraction,
            recency_weight=config.context_recency_weight,
            max_dependency_expansion=config.max_dependency_expansion,
            compressor=compressor,
            clock=clock,
        )

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, context_id: object) -> bool:
        return context_id in self.entries

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def store(
        self,
        context_id: str,
        category: Union[ContextCategory, str],
        payload: Dict[str, Any],
        dependencies: Iterable[str] = (),
        importance: float = 0.5,
    ) -> ContextEntry:
        """
        Insert or overwrite a context entry.

        PATTERN: Compress, replace outgoing edges, then evict if over capacity

        Args:
            context_id: Entry id
            category: Entry category
            payload: Structured payload
            dependencies: Ids of entries this one depends on
            importance: Retention weight in [0, 1]

        Returns:
            Copy of the stored entry

        Raises:
            ValidationError: Empty id, self-dependency or importance out of range
        """
        if not context_id:
            raise ValidationError("Context id must not be empty")
        if not 0.0 <= importance <= 1.0:
            raise ValidationError(
                f"Importance must be within [0, 1], got {importance}",
                entity_id=context_id,
            )

        deps = list(dict.fromkeys(dependencies))
        if context_id in deps:
            raise ValidationError("Context entry cannot depend on itself", entity_id=context_id)

        stored_payload, compressed, ratio = self.compressor.compress(copy.deepcopy(payload))

        async with self._lock:
            now = self._clock()
            previous = self.entries.get(context_id)
            previous_deps = self.graph.get_dependencies(context_id)

            entry = ContextEntry(
                id=context_id,
                category=ContextCategory(category),
                payload=stored_payload,
                dependencies=deps,
                importance=importance,
                created_at=previous.created_at if previous else now,
                last_accessed=now,
                access_count=previous.access_count if previous else 0,
                compression_level=ratio,
                compressed=compressed,
            )

            self.graph.add_node(context_id)
            self.graph.set_dependencies(context_id, deps)
            self.entries[context_id] = entry
            self._prune_placeholders(previous_deps)

            self.logger.debug(
                f"Context stored: {context_id} ({entry.category.value}) "
                f"with {len(deps)} dependencies"
                + (f", compressed to {ratio:.2f}" if compressed else "")
            )

            self._evict_locked()

            return entry.model_copy(deep=True)

    async def retrieve(self, context_id: str, depth: int = 2) -> Optional[Dict[str, Any]]:
        """
        Retrieve an entry's payload with its dependencies resolved.

        CRITICAL: depth 0 returns the bare payload, never `_dependencies`
        GOTCHA: At most max_dependency_expansion dependencies per level

        Args:
            context_id: Entry id
            depth: Levels of dependency expansion

        Returns:
            Payload copy, with `_meta` and `_dependencies` for depth >= 1,
            or None if the entry is unknown
        """
        async with self._lock:
            entry = self.entries.get(context_id)
            if entry is None:
                self.logger.warning(f"Context not found: {context_id}")
                return None

            self._record_access(entry)
            context = self._build_context(entry, depth)

        self.logger.debug(f"Context retrieved: {context_id} with depth {depth}")
        return context

    def peek(self, context_id: str) -> Optional[ContextEntry]:
        """Copy of an entry without recording an access."""
        entry = self.entries.get(context_id)
        return entry.model_copy(deep=True) if entry else None

    async def evict_if_over_capacity(self) -> List[str]:
        """
        Evict the lowest-ranked entries when over capacity.

        Returns:
            Ids of evicted entries
        """
        async with self._lock:
            return self._evict_locked()

    async def search(
        self,
        criteria: Optional[SearchCriteria] = None,
        **filters: Any,
    ) -> List[ContextEntry]:
        """
        Search entries.

        PATTERN: Filters combine with AND, keywords match if any keyword is
            a substring of the serialized payload

        Args:
            criteria: Search criteria
            **filters: SearchCriteria fields, as an alternative to criteria

        Returns:
            Entry copies ordered by rank, highest first
        """
        criteria = criteria or SearchCriteria(**filters)
        keywords = [keyword.lower() for keyword in criteria.keywords]

        async with self._lock:
            now = self._clock()
            results = []

            for entry in self.entries.values():
                if criteria.category and entry.category != criteria.category:
                    continue
                if keywords:
                    haystack = serialize(entry.payload).lower()
                    if not any(keyword in haystack for keyword in keywords):
                        continue
                if criteria.accessed_after and entry.last_accessed < criteria.accessed_after:
                    continue
                if criteria.accessed_before and entry.last_accessed > criteria.accessed_before:
                    continue
                if criteria.min_importance is not None and entry.importance < criteria.min_importance:
                    continue
                if criteria.max_importance is not None and entry.importance > criteria.max_importance:
                    continue
                results.append(entry)

            results.sort(key=lambda entry: self._rank(entry, now), reverse=True)
            return [entry.model_copy(deep=True) for entry in results]

    async def remove(self, context_id: str) -> bool:
        """
        Remove one entry and its edges.

        Returns:
            True if the entry existed
        """
        async with self._lock:
            if context_id not in self.entries:
                return False
            self._remove_locked(context_id)
            return True

    # ------------------------------------------------------------------
    # Domain helpers
    # ------------------------------------------------------------------

    async def create_project_context(self, project: ProjectContext) -> str:
        """Store a project's requirements and architecture. Returns its context id."""
        context_id = f"project_{project.id}"
        payload = {
            "project": {
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "created_at": project.created_at.isoformat(),
            },
            "requirements": project.requirements,
            "architecture": project.architecture,
            "metadata": project.metadata,
        }
        await self.store(context_id, ContextCategory.PROJECT, payload, [], 1.0)
        return context_id

    async def create_task_context(
        self,
        task: Task,
        project_id: Optional[str] = None,
        technical: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Store a task with links to its project and prerequisite tasks."""
        context_id = f"task_{task.id}"
        dependencies = [f"project_{project_id}"] if project_id else []
        dependencies += [f"task_{dependency}" for dependency in task.dependencies]

        payload = {
            "task": task.model_dump(
                mode="json",
                include={"id", "title", "description", "type", "priority", "status", "effort"},
            ),
            "technical": technical or {},
            "dependencies": list(task.dependencies),
            "acceptance_criteria": list(task.acceptance_criteria),
        }
        await self.store(
            context_id,
            ContextCategory.TASK,
            payload,
            dependencies,
            task_importance(task),
        )
        return context_id

    async def create_story_context(self, story: Task, project_id: str) -> str:
        """Store a story with its acceptance criteria and technical context."""
        context_id = f"story_{story.id}"
        payload = {
            "story": {
                "id": story.id,
                "title": story.title,
                "description": story.description,
                "acceptance_criteria": list(story.acceptance_criteria),
            },
            "technical": story.metadata.get("technical", {}),
            "dependencies": list(story.dependencies),
            "effort": story.effort.model_dump(mode="json"),
        }
        await self.store(
            context_id,
            ContextCategory.STORY,
            payload,
            [f"project_{project_id}"],
            0.8,
        )
        return context_id

    async def create_worker_context(
        self,
        worker_id: str,
        task: Task,
        previous_results: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """
        Store a worker's execution context with continuity from earlier runs.

        Args:
            worker_id: Worker id
            task: Task being executed
            previous_results: Earlier result dicts (success, duration_ms, error);
                only the last WORKER_CONTEXT_HISTORY are kept

        Returns:
            Context id
        """
        previous_results = list(previous_results or [])[-WORKER_CONTEXT_HISTORY:]
        self._worker_context_counter += 1
        context_id = f"worker_{worker_id}_{self._worker_context_counter}"

        dependencies = [f"task_{task.id}"] if f"task_{task.id}" in self.entries else []
        payload = {
            "worker": {
                "id": worker_id,
                "executed_at": self._clock().isoformat(),
                "task_id": task.id,
                "task_title": task.title,
            },
            "previous_results": previous_results,
            "continuity": self._build_continuity(worker_id, previous_results),
        }
        await self.store(context_id, ContextCategory.WORKER, payload, dependencies, 0.6)
        return context_id

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> ContextStats:
        """Get context store statistics."""
        total = len(self.entries)
        ratios = [entry.compression_level for entry in self.entries.values()]
        average_ratio = sum(ratios) / total if total else 1.0

        return ContextStats(
            total_contexts=total,
            total_dependencies=self.graph.edge_count(),
            compressed_contexts=sum(1 for entry in self.entries.values() if entry.compressed),
            average_compression_ratio=round(average_ratio, 2),
            context_preservation=round(average_ratio * 100, 2),
            cache_utilization=round(total / self.capacity * 100, 2),
            capacity=self.capacity,
            evictions=self.evictions,
            category_counts=dict(Counter(entry.category.value for entry in self.entries.values())),
        )

    def check_consistency(self) -> List[str]:
        """
        Check the graph and entry table agree.

        Returns:
            Problems found, empty when consistent
        """
        problems = self.graph.check_consistency()
        for context_id in self.entries:
            if context_id not in self.graph or self.graph.is_placeholder(context_id):
                problems.append(f"{context_id}: entry without registered node")
        for node_id in self.graph.nodes():
            if node_id not in self.entries and not self.graph.is_placeholder(node_id):
                problems.append(f"{node_id}: registered node without entry")
        return problems

    def export_data(self) -> Dict[str, Any]:
        """Export entries, edges and access patterns for analysis."""
        return {
            "contexts": [entry.model_dump(mode="json") for entry in self.entries.values()],
            "dependencies": {
                node_id: self.graph.get_dependencies(node_id) for node_id in self.graph.nodes()
            },
            "access_patterns": {
                context_id: [ts.isoformat() for ts in pattern]
                for context_id, pattern in self.access_patterns.items()
            },
            "metrics": self.get_stats().model_dump(),
            "exported_at": self._clock().isoformat(),
        }

    def clear(self) -> None:
        """Drop every entry, edge and access pattern."""
        self.entries.clear()
        self.graph.clear()
        self.access_patterns.clear()
        self.logger.info("Context cache cleared")

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    def _rank(self, entry: ContextEntry, now: datetime) -> float:
        age_days = (now - entry.last_accessed).total_seconds() / SECONDS_PER_DAY
        return entry.importance + self.recency_weight * age_days

    def _record_access(self, entry: ContextEntry) -> None:
        now = self._clock()
        entry.last_accessed = now
        entry.access_count += 1
        pattern = self.access_patterns.setdefault(
            entry.id, deque(maxlen=ACCESS_PATTERN_LIMIT)
        )
        pattern.append(now)

    def _build_context(self, entry: ContextEntry, depth: int) -> Dict[str, Any]:
        context = copy.deepcopy(entry.payload)
        if depth <= 0:
            return context

        context["_meta"] = {
            "id": entry.id,
            "category": entry.category.value,
            "importance": entry.importance,
            "last_accessed": entry.last_accessed.isoformat(),
            "access_count": entry.access_count,
            "compressed": entry.compressed,
            "compression_level": entry.compression_level,
        }

        dependencies = [
            dependency
            for dependency in self.graph.get_dependencies(entry.id)
            if dependency in self.entries
        ][: self.max_dependency_expansion]

        if dependencies:
            context["_dependencies"] = {
                dependency: self._build_context(self.entries[dependency], depth - 1)
                for dependency in dependencies
            }

        return context

    def _evict_locked(self) -> List[str]:
        if len(self.entries) <= self.capacity:
            return []

        now = self._clock()
        ranked = sorted(self.entries.values(), key=lambda entry: self._rank(entry, now))
        count = max(1, math.ceil(len(self.entries) * self.eviction_fraction))
        evicted = [entry.id for entry in ranked[:count]]

        for context_id in evicted:
            self._remove_locked(context_id)

        self.evictions += len(evicted)
        self.logger.warning(
            f"Context cache over capacity ({self.capacity}): evicted {len(evicted)} entries"
        )
        return evicted

    def _remove_locked(self, context_id: str) -> None:
        dependencies = self.graph.get_dependencies(context_id)
        dependents = self.graph.remove_node(context_id)

        del self.entries[context_id]
        self.access_patterns.pop(context_id, None)

        for dependent in dependents:
            if dependent in self.entries:
                self.entries[dependent].dependencies = self.graph.get_dependencies(dependent)

        self._prune_placeholders(dependencies)

    def _prune_placeholders(self, candidates: Iterable[str]) -> None:
        """Drop placeholder nodes nothing refers to any more."""
        for node_id in candidates:
            if self.graph.is_placeholder(node_id) and self.graph.is_isolated(node_id):
                self.graph.remove_node(node_id)

    def _build_continuity(
        self, worker_id: str, previous_results: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        if not previous_results:
            return {"worker_id": worker_id, "previous_executions": 0, "patterns": {}}

        successes = [result for result in previous_results if result.get("success")]
        errors = [
            str(result["error"])
            for result in previous_results
            if not result.get("success") and result.get("error")
        ]
        durations = [float(result.get("duration_ms", 0.0)) for result in previous_results]

        return {
            "worker_id": worker_id,
            "previous_executions": len(previous_results),
            "patterns": {
                "success_rate": len(successes) / len(previous_results),
                "average_duration_ms": sum(durations) / len(durations),
                "common_errors": list(dict.fromkeys(errors))[:5],
            },
        }
