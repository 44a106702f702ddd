"""Default time-boxed sharding."""

import logging
import math
from typing import List

from ..base import BaseShardingStrategy, shard_id
from ...models.sharding_models import ShardingStrategyName
from ...models.task_models import Task


logger = logging.getLogger(__name__)

SHARD_FOCUS = [
    "initial setup and foundation",
    "core implementation",
    "advanced features",
    "testing and refinement",
    "optimization and cleanup",
]


class TimeBoxedStrategy(BaseShardingStrategy):
    """
    Divide the estimate into fixed-size chunks chained in order.

    PATTERN: Chunk k depends on chunk k-1, the last chunk takes the remainder
    """

    name = ShardingStrategyName.TIME_BOXED

    def __init__(self, max_hours: float = 4.0):
        super().__init__()
        if max_hours <= 0:
            raise ValueError("max_hours must be positive")
        self.max_hours = max_hours

    def applies_to(self, task: Task, score: int) -> bool:
        return True

    def split(self, task: Task) -> List[Task]:
        total = task.effort.estimated_hours
        count = max(1, math.ceil(round(total / self.max_hours, 6)))

        subtasks = []
        for index in range(count):
            hours = min(self.max_hours, total - index * self.max_hours)
            focus = SHARD_FOCUS[min(index, len(SHARD_FOCUS) - 1)]
            subtasks.append(
                self._create_subtask(
                    parent_task=task,
                    index=index,
                    title=f"{task.title} - Part {index + 1}/{count}",
                    description=f"{task.description}\n\nShard {index + 1}: focus on {focus}",
                    estimated_hours=hours,
                    dependencies=None if index == 0 else [shard_id(task.id, index - 1)],
                    time_box_hours=self.max_hours,
                )
            )

        return subtasks
