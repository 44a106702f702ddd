"""Base class for task sharding strategies."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from ..models.sharding_models import ShardingStrategyName
from ..models.task_models import Task, TaskComplexity, TaskStatus, TaskType


logger = logging.getLogger(__name__)

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<text>.+?)\s*$")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;])\s+")


def shard_id(parent_id: str, index: int) -> str:
    """Deterministic sub-task id."""
    return f"{parent_id}_shard_{index}"


def extract_statements(text: str, min_words: int = 3) -> List[str]:
    """
    Pull discrete statements out of free text.

    PATTERN: Bullet or numbered lines win; otherwise fall back to sentences

    Args:
        text: Description to split
        min_words: Shorter fragments are dropped

    Returns:
        Ordered, de-duplicated statements
    """
    bullets = [
        match.group("text")
        for match in (_BULLET.match(line) for line in text.splitlines())
        if match
    ]
    candidates = bullets or _SENTENCE_SPLIT.split(text.strip())

    statements: List[str] = []
    seen = set()
    for candidate in candidates:
        statement = " ".join(candidate.split()).strip(" .;")
        key = statement.lower()
        if len(statement.split()) < min_words or key in seen:
            continue
        seen.add(key)
        statements.append(statement)
    return statements


def short_name(statement: str, max_words: int = 6) -> str:
    """Title-ish label from the first words of a statement."""
    words = statement.split()[:max_words]
    label = " ".join(words).rstrip(",:;.")
    return label[:1].upper() + label[1:]


class BaseShardingStrategy(ABC):
    """
    Abstract base class for sharding strategies.

    All sharding strategies must:
    - Implement applies_to() for precedence-ordered selection
    - Implement split() returning ordered sub-tasks
    - Derive sub-task ids deterministically from the parent id
    """

    name: ShardingStrategyName

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.name.value}")

    @abstractmethod
    def applies_to(self, task: Task, score: int) -> bool:
        """
        Check whether this strategy handles the task.

        Args:
            task: Task being sharded
            score: Precomputed complexity score

        Returns:
            True if the strategy should be used
        """
        pass

    @abstractmethod
    def split(self, task: Task) -> List[Task]:
        """
        Split a task into sub-tasks.

        CRITICAL: Deterministic for the same input
        PATTERN: Create sub-tasks through _create_subtask

        Args:
            task: Task to split

        Returns:
            Ordered list of sub-tasks
        """
        pass

    def _create_subtask(
        self,
        parent_task: Task,
        index: int,
        title: str,
        description: str,
        estimated_hours: float,
        dependencies: Optional[Iterable[str]] = None,
        task_type: Optional[TaskType] = None,
        complexity: Optional[TaskComplexity] = None,
        acceptance_criteria: Optional[List[str]] = None,
        **metadata: Any,
    ) -> Task:
        """
        Create a sub-task with proper parent linkage.

        PATTERN: Helper method for consistent sub-task creation
        GOTCHA: Root shards inherit the parent's external dependencies

        Args:
            parent_task: Task being split
            index: Position of the sub-task, used for its id
            title: Sub-task title
            description: Sub-task description
            estimated_hours: Effort of this piece
            dependencies: Dependency ids; None inherits the parent's
            task_type: Task type (defaults to parent's type)
            complexity: Complexity (defaults to parent's)
            acceptance_criteria: Criteria (defaults to parent's)
            **metadata: Extra metadata merged over the parent's

        Returns:
            New Task object
        """
        effort = parent_task.effort.model_copy(
            update={
                "estimated_hours": round(max(estimated_hours, 0.0), 4),
                "actual_hours": None,
                "complexity": complexity or parent_task.effort.complexity,
            }
        )

        return Task(
            id=shard_id(parent_task.id, index),
            parent_id=parent_task.id,
            title=title,
            description=description,
            type=task_type or parent_task.type,
            priority=parent_task.priority,
            status=TaskStatus.BACKLOG,
            dependencies=list(
                parent_task.dependencies if dependencies is None else dependencies
            ),
            effort=effort,
            acceptance_criteria=list(
                parent_task.acceptance_criteria
                if acceptance_criteria is None
                else acceptance_criteria
            ),
            metadata={
                **parent_task.metadata,
                "shard_index": index,
                "sharding_strategy": self.name.value,
                **metadata,
            },
        )

    def validate_subtasks(self, parent_task: Task, subtasks: List[Task]) -> bool:
        """
        Validate generated sub-tasks.

        Args:
            parent_task: Task that was split
            subtasks: Generated sub-tasks

        Returns:
            True if valid, False otherwise
        """
        if not subtasks:
            self.logger.warning(f"Sharding {parent_task.id} generated no sub-tasks")
            return False

        ids = [subtask.id for subtask in subtasks]
        if len(ids) != len(set(ids)):
            self.logger.warning(f"Sharding {parent_task.id} produced duplicate ids")
            return False

        for subtask in subtasks:
            if subtask.id in subtask.dependencies:
                self.logger.warning(f"Sub-task {subtask.id} depends on itself")
                return False

        return True
