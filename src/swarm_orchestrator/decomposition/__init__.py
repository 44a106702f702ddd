"""Task decomposition: complexity scoring, dependency graphs and sharding."""

from .complexity_scorer import (
    score_task,
    should_shard,
    is_atomic,
    estimate_tokens,
    complexity_distribution,
)
from .dependency_graph import DependencyGraph, GraphInvariantError
from .base import BaseShardingStrategy, shard_id
from .task_sharder import TaskSharder

__all__ = [
    "score_task",
    "should_shard",
    "is_atomic",
    "estimate_tokens",
    "complexity_distribution",
    "DependencyGraph",
    "GraphInvariantError",
    "BaseShardingStrategy",
    "shard_id",
    "TaskSharder",
]
