"""Layered-architecture sharding for large design tasks."""

import logging
from typing import List

from ..base import BaseShardingStrategy, shard_id
from ...models.sharding_models import ShardingStrategyName
from ...models.task_models import Task, TaskType


logger = logging.getLogger(__name__)

LAYERED_SCORE_THRESHOLD = 8

LAYERS = [
    ("presentation", "Presentation Layer", "user interfaces and interaction flows"),
    ("business-logic", "Business Logic Layer", "core business rules and workflows"),
    ("data-access", "Data Access Layer", "data model, storage and retrieval"),
    ("integration", "Integration Layer", "external APIs and service integrations"),
]


class LayeredArchitectureStrategy(BaseShardingStrategy):
    """
    Split an architecture design into four chained layers.

    PATTERN: Layer N depends on layer N-1, effort divided evenly
    """

    name = ShardingStrategyName.LAYERED_ARCHITECTURE

    def applies_to(self, task: Task, score: int) -> bool:
        return (
            task.type == TaskType.ARCHITECTURE_DESIGN
            and score > LAYERED_SCORE_THRESHOLD
        )

    def split(self, task: Task) -> List[Task]:
        hours = task.effort.estimated_hours / len(LAYERS)

        return [
            self._create_subtask(
                parent_task=task,
                index=index,
                title=f"{task.title} - {label}",
                description=f"{task.description}\n\nLayer focus: {focus}",
                estimated_hours=hours,
                dependencies=None if index == 0 else [shard_id(task.id, index - 1)],
                layer=layer,
            )
            for index, (layer, label, focus) in enumerate(LAYERS)
        ]
