"""Deterministic complexity scoring for sharding decisions."""

import math
from collections import Counter
from typing import Dict, Iterable

from ..models.task_models import (
    Task,
    TaskComplexity,
    TaskPriority,
    TaskType,
    RiskLevel,
)

BASE_SCORE = 5
LONG_DESCRIPTION_WORDS = 100
VERY_LONG_DESCRIPTION_WORDS = 200
MAX_DEPENDENCY_BONUS = 3.0
SHARD_SCORE_THRESHOLD = 7
SHARD_HOURS_THRESHOLD = 8.0

TYPE_BASELINES: Dict[TaskType, int] = {
    TaskType.ARCHITECTURE_DESIGN: 8,
    TaskType.DEVELOPMENT: 7,
    TaskType.REQUIREMENTS_ANALYSIS: 6,
    TaskType.DEPLOYMENT: 6,
    TaskType.TESTING: 5,
    TaskType.STORY_CREATION: 4,
    TaskType.REVIEW: 4,
    TaskType.DOCUMENTATION: 3,
}

PRIORITY_FACTORS: Dict[TaskPriority, float] = {
    TaskPriority.CRITICAL: 1.3,
    TaskPriority.HIGH: 1.1,
    TaskPriority.MEDIUM: 1.0,
    TaskPriority.LOW: 0.9,
}


def word_count(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def score_task(task: Task) -> int:
    """
    Compute the integer complexity score of a task.

    PATTERN: Additive factors, then a per-type floor, then a priority multiplier
    CRITICAL: Pure function, no side effects

    Args:
        task: Task to score

    Returns:
        Rounded complexity score
    """
    score = float(BASE_SCORE)

    words = word_count(task.description)
    if words > LONG_DESCRIPTION_WORDS:
        score += 2
    if words > VERY_LONG_DESCRIPTION_WORDS:
        score += 2

    score += min(len(task.dependencies) * 0.5, MAX_DEPENDENCY_BONUS)

    score = max(score, TYPE_BASELINES.get(task.type, BASE_SCORE))
    score *= PRIORITY_FACTORS.get(task.priority, 1.0)

    # Half-up rounding; Python's round() is banker's rounding
    return int(math.floor(score + 0.5))


def is_atomic(task: Task) -> bool:
    """Small, simple, low-risk tasks are never split."""
    return (
        task.effort.estimated_hours <= SHARD_HOURS_THRESHOLD
        and task.effort.complexity == TaskComplexity.SIMPLE
        and task.effort.risk_level == RiskLevel.LOW
    )


def should_shard(task: Task) -> bool:
    """
    Decide whether a task should be decomposed.

    GOTCHA: A task that is atomic (<= 8h, simple, low risk) is never sharded,
    even when its type baseline alone pushes the score above the threshold.

    Args:
        task: Task to check

    Returns:
        True if the task should be sharded
    """
    if is_atomic(task):
        return False

    return (
        score_task(task) > SHARD_SCORE_THRESHOLD
        or task.effort.estimated_hours > SHARD_HOURS_THRESHOLD
        or task.effort.risk_level == RiskLevel.HIGH
    )


def estimate_tokens(text: str) -> int:
    """
    Estimate token-equivalent usage of a piece of text.

    Uses roughly 1.3 tokens per word.
    """
    return int(word_count(text) * 1.3)


def complexity_distribution(tasks: Iterable[Task]) -> Dict[str, int]:
    """Count tasks per complexity class."""
    counts = Counter(task.effort.complexity.value for task in tasks)
    return {level.value: counts.get(level.value, 0) for level in TaskComplexity}
