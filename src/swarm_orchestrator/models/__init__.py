"""Models package for the orchestration core."""

from .task_models import (
    TaskType,
    TaskPriority,
    TaskStatus,
    TaskComplexity,
    RiskLevel,
    ArtifactType,
    TaskEffort,
    TaskArtifact,
    Task,
    ProjectContext,
)
from .worker_models import (
    WorkerRole,
    WorkerStatus,
    WorkerPerformance,
    WorkerDefinition,
    Worker,
    DEFAULT_ROSTER,
)
from .coordination_models import (
    CoordinationType,
    WorkflowStep,
    ParallelStrategy,
    SequentialStrategy,
    HierarchicalStrategy,
    CollaborativeStrategy,
    CoordinationStrategy,
    Assignment,
    WorkInstruction,
    WorkerResult,
    ConflictResolution,
    Synthesis,
    ExecutionResult,
)
from .context_models import (
    ContextCategory,
    ContextEntry,
    SearchCriteria,
    ContextStats,
)
from .cost_models import (
    CostRecord,
    MonthlyStats,
    UsageStats,
    TimeEfficiencyStats,
    ResourceUtilizationStats,
    Impact,
    RecommendationType,
    CostRecommendation,
    CostReport,
)
from .event_models import EventKind, OrchestrationEvent, EventListener
from .sharding_models import (
    ShardingStrategyName,
    ShardingRecord,
    ShardingStats,
    DependencyValidation,
)
from .pipeline_models import PhaseResult, PipelineResult, PipelineStatus

__all__ = [
    # Tasks
    "TaskType",
    "TaskPriority",
    "TaskStatus",
    "TaskComplexity",
    "RiskLevel",
    "ArtifactType",
    "TaskEffort",
    "TaskArtifact",
    "Task",
    "ProjectContext",
    # Workers
    "WorkerRole",
    "WorkerStatus",
    "WorkerPerformance",
    "WorkerDefinition",
    "Worker",
    "DEFAULT_ROSTER",
    # Coordination
    "CoordinationType",
    "WorkflowStep",
    "ParallelStrategy",
    "SequentialStrategy",
    "HierarchicalStrategy",
    "CollaborativeStrategy",
    "CoordinationStrategy",
    "Assignment",
    "WorkInstruction",
    "WorkerResult",
    "ConflictResolution",
    "Synthesis",
    "ExecutionResult",
    # Context
    "ContextCategory",
    "ContextEntry",
    "SearchCriteria",
    "ContextStats",
    # Cost
    "CostRecord",
    "MonthlyStats",
    "UsageStats",
    "TimeEfficiencyStats",
    "ResourceUtilizationStats",
    "Impact",
    "RecommendationType",
    "CostRecommendation",
    "CostReport",
    # Events
    "EventKind",
    "OrchestrationEvent",
    "EventListener",
    # Sharding
    "ShardingStrategyName",
    "ShardingRecord",
    "ShardingStats",
    "DependencyValidation",
    # Pipeline
    "PhaseResult",
    "PipelineResult",
    "PipelineStatus",
]
