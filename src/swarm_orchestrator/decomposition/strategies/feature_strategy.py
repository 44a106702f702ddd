"""Feature decomposition for large development tasks."""

import logging
import re
from typing import List, Set

from ..base import BaseShardingStrategy, extract_statements, shard_id, short_name
from ...models.sharding_models import ShardingStrategyName
from ...models.task_models import Task, TaskType


logger = logging.getLogger(__name__)

FEATURE_HOURS_THRESHOLD = 10.0
MAX_FEATURES = 8

_WORD = re.compile(r"[a-z][a-z0-9-]+")
_STOPWORDS = {
    "about", "after", "allow", "allows", "also", "based", "before", "being",
    "build", "create", "could", "every", "feature", "features", "from", "have",
    "implement", "into", "make", "must", "need", "needs", "other", "should",
    "some", "support", "that", "their", "them", "then", "there", "these",
    "this", "those", "through", "user", "users", "using", "when", "where",
    "which", "while", "with", "within", "would",
}


def key_terms(text: str) -> Set[str]:
    """Significant lowercase words of a statement."""
    return {
        word
        for word in _WORD.findall(text.lower())
        if len(word) >= 4 and word not in _STOPWORDS
    }


class FeatureDecompositionStrategy(BaseShardingStrategy):
    """
    Split a development task into discrete feature units.

    PATTERN: Features come from bullet lines or sentences of the description
    CRITICAL: A feature mentioning an earlier feature's name terms depends on it
    GOTCHA: A description with no usable statements yields one feature
    """

    name = ShardingStrategyName.FEATURE_DECOMPOSITION

    def applies_to(self, task: Task, score: int) -> bool:
        return (
            task.type == TaskType.DEVELOPMENT
            and task.effort.estimated_hours > FEATURE_HOURS_THRESHOLD
        )

    def split(self, task: Task) -> List[Task]:
        features = extract_statements(task.description)[:MAX_FEATURES]
        if not features:
            features = [task.description.strip() or task.title]

        hours = task.effort.estimated_hours / len(features)
        names = [short_name(feature) for feature in features]
        name_terms = [key_terms(name) for name in names]

        subtasks = []
        for index, feature in enumerate(features):
            terms = key_terms(feature)
            prerequisites = [
                shard_id(task.id, earlier)
                for earlier in range(index)
                if name_terms[earlier] & terms
            ]

            subtasks.append(
                self._create_subtask(
                    parent_task=task,
                    index=index,
                    title=f"Implement {names[index]}",
                    description=feature,
                    estimated_hours=hours,
                    dependencies=prerequisites or None,
                    acceptance_criteria=self._acceptance_criteria(
                        task, names[index], terms
                    ),
                    feature=names[index],
                )
            )

        self.logger.debug(f"Extracted {len(subtasks)} features from {task.id}")
        return subtasks

    def _acceptance_criteria(self, task: Task, name: str, terms: Set[str]) -> List[str]:
        """Generic criteria plus any parent criteria that mention the feature."""
        criteria = [
            f"{name} works as described",
            f"{name} is covered by automated tests",
        ]
        for criterion in task.acceptance_criteria:
            if key_terms(criterion) & terms and criterion not in criteria:
                criteria.append(criterion)
        return criteria
