"""Task sharder selecting a strategy by task shape."""

import logging
from collections import Counter
from typing import Dict, List, Optional

from .base import BaseShardingStrategy
from .complexity_scorer import score_task, should_shard
from .dependency_graph import DependencyGraph
from .strategies import (
    ComplexityBasedStrategy,
    FeatureDecompositionStrategy,
    LayeredArchitectureStrategy,
    TimeBoxedStrategy,
    UserStoryStrategy,
)
from ..errors import ValidationError
from ..models.sharding_models import ShardingRecord, ShardingStats
from ..models.task_models import Task
from ..validation import validate_task


logger = logging.getLogger(__name__)


class TaskSharder:
    """
    Decomposes tasks into ordered, dependent sub-tasks.

    PATTERN: First matching strategy wins, time-boxed is the fallback
    CRITICAL: Sub-task ids are {parent_id}_shard_{index}, so re-sharding is idempotent
    GOTCHA: History keeps only the latest sharding per parent id
    """

    def __init__(self, time_box_hours: float = 4.0):
        """
        Initialize task sharder.

        Args:
            time_box_hours: Chunk size for the time-boxed fallback
        """
        self.strategies: List[BaseShardingStrategy] = [
            LayeredArchitectureStrategy(),
            FeatureDecompositionStrategy(),
            UserStoryStrategy(),
            ComplexityBasedStrategy(),
            TimeBoxedStrategy(max_hours=time_box_hours),
        ]
        self.history: Dict[str, ShardingRecord] = {}
        self.logger = logging.getLogger(__name__)

    def select_strategy(self, task: Task, score: Optional[int] = None) -> BaseShardingStrategy:
        """
        Pick the strategy for a task.

        Args:
            task: Task to shard
            score: Complexity score, computed when omitted

        Returns:
            The first strategy whose rule matches
        """
        if score is None:
            score = score_task(task)
        for strategy in self.strategies:
            if strategy.applies_to(task, score):
                return strategy
        return self.strategies[-1]

    def should_shard(self, task: Task) -> bool:
        return should_shard(task)

    def shard(self, task: Task) -> List[Task]:
        """
        Shard a task into sub-tasks.

        Args:
            task: Task to shard

        Returns:
            Ordered list of sub-tasks

        Raises:
            ValidationError: If the task is malformed, has no extractable
                structure, or the strategy produced an invalid shard set
        """
        validate_task(task)

        score = score_task(task)
        strategy = self.select_strategy(task, score)

        self.logger.info(f"Sharding task {task.id} with {strategy.name.value} (score {score})")

        subtasks = strategy.split(task)

        if not strategy.validate_subtasks(task, subtasks):
            raise ValidationError(
                f"Strategy {strategy.name.value} produced invalid sub-tasks",
                entity_id=task.id,
            )
        self._validate_dag(task, subtasks)

        self.history[task.id] = ShardingRecord(
            parent_id=task.id,
            strategy=strategy.name,
            subtasks=subtasks,
            complexity_score=score,
        )

        self.logger.info(f"Task {task.id} sharded into {len(subtasks)} sub-tasks")
        return subtasks

    def _validate_dag(self, task: Task, subtasks: List[Task]) -> None:
        """Reject shard sets whose dependencies form a cycle."""
        graph = DependencyGraph()
        for subtask in subtasks:
            graph.add_node(subtask.id)
        for subtask in subtasks:
            for dependency in subtask.dependencies:
                graph.add_dependency(subtask.id, dependency)

        validation = graph.validate()
        if not validation.is_valid:
            raise ValidationError(
                f"Sharding produced circular dependencies: {validation.cycles}",
                entity_id=task.id,
            )

    def get_history(self, task_id: str) -> Optional[ShardingRecord]:
        """Get the latest sharding record for a parent task."""
        return self.history.get(task_id)

    def get_stats(self) -> ShardingStats:
        """
        Get aggregate sharding statistics.

        Returns:
            ShardingStats with totals, averages and strategy usage
        """
        total_tasks = len(self.history)
        total_subtasks = sum(len(record.subtasks) for record in self.history.values())
        usage = Counter(record.strategy.value for record in self.history.values())

        return ShardingStats(
            total_tasks_sharded=total_tasks,
            total_subtasks=total_subtasks,
            average_shards_per_task=(
                round(total_subtasks / total_tasks, 2) if total_tasks else 0.0
            ),
            strategy_usage=dict(usage),
            available_strategies=[strategy.name.value for strategy in self.strategies],
        )

    def clear_history(self) -> None:
        self.history.clear()
