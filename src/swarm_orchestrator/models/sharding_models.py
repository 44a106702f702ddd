"""Models describing sharding history and statistics."""

from pydantic import BaseModel, Field
from typing import Dict, List
from enum import Enum
from datetime import datetime

from .task_models import Task


class ShardingStrategyName(str, Enum):
    """Available sharding strategies, in selection precedence order."""

    LAYERED_ARCHITECTURE = "layered-architecture"
    FEATURE_DECOMPOSITION = "feature-decomposition"
    USER_STORY_BREAKDOWN = "user-story-breakdown"
    COMPLEXITY_BASED = "complexity-based"
    TIME_BOXED = "time-boxed"


class ShardingRecord(BaseModel):
    """What one shard call produced for a parent task."""

    parent_id: str
    strategy: ShardingStrategyName
    subtasks: List[Task] = Field(default_factory=list)
    complexity_score: int = 0
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def subtask_ids(self) -> List[str]:
        return [subtask.id for subtask in self.subtasks]


class ShardingStats(BaseModel):
    """Aggregate sharding statistics."""

    total_tasks_sharded: int = 0
    total_subtasks: int = 0
    average_shards_per_task: float = 0.0
    strategy_usage: Dict[str, int] = Field(default_factory=dict)
    available_strategies: List[str] = Field(default_factory=list)


class DependencyValidation(BaseModel):
    """Result of validating a dependency graph."""

    is_valid: bool
    has_cycles: bool = False
    cycles: List[List[str]] = Field(default_factory=list)
    missing_dependencies: List[str] = Field(
        default_factory=list, description="Referenced but never registered nodes"
    )
    execution_order: List[str] = Field(default_factory=list)
