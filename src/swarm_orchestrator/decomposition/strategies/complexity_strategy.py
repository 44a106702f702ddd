"""Complexity-based sharding into fixed concern areas."""

import logging
from typing import List

from ..base import BaseShardingStrategy, shard_id
from ..complexity_scorer import SHARD_SCORE_THRESHOLD
from ...models.sharding_models import ShardingStrategyName
from ...models.task_models import Task, TaskComplexity, TaskType


logger = logging.getLogger(__name__)

# (area, description, complexity, relative weight, task type or None for parent's)
CONCERN_AREAS = [
    ("Core Logic", "Main functionality implementation", TaskComplexity.COMPLEX, 6, None),
    ("Error Handling", "Exception and edge case handling", TaskComplexity.MEDIUM, 3, None),
    ("Testing", "Unit and integration tests", TaskComplexity.MEDIUM, 4, TaskType.TESTING),
    ("Documentation", "Code documentation and usage notes", TaskComplexity.SIMPLE, 2, TaskType.DOCUMENTATION),
]


class ComplexityBasedStrategy(BaseShardingStrategy):
    """
    Split a complex task into core logic, error handling, testing and documentation.

    PATTERN: Every area after the first depends on the core-logic shard
    GOTCHA: Without an estimate the raw weights are used as hours
    """

    name = ShardingStrategyName.COMPLEXITY_BASED

    def applies_to(self, task: Task, score: int) -> bool:
        return score > SHARD_SCORE_THRESHOLD

    def split(self, task: Task) -> List[Task]:
        total_weight = sum(area[3] for area in CONCERN_AREAS)
        total_hours = task.effort.estimated_hours
        core_id = shard_id(task.id, 0)

        subtasks = []
        for index, (area, summary, complexity, weight, task_type) in enumerate(
            CONCERN_AREAS
        ):
            hours = total_hours * weight / total_weight if total_hours > 0 else weight
            subtasks.append(
                self._create_subtask(
                    parent_task=task,
                    index=index,
                    title=f"{task.title} - {area}",
                    description=f"{summary} for: {task.description}",
                    estimated_hours=hours,
                    dependencies=None if index == 0 else [core_id],
                    task_type=task_type,
                    complexity=complexity,
                    concern_area=area.lower().replace(" ", "-"),
                )
            )

        return subtasks
