"""Models for assignments, coordination strategies and execution results."""

from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Any, Literal, Optional, Union
from enum import Enum
from datetime import datetime

from .task_models import Task
from .worker_models import Worker


class CoordinationType(str, Enum):
    """How several workers jointly execute one task."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    HIERARCHICAL = "hierarchical"
    COLLABORATIVE = "collaborative"


class WorkflowStep(BaseModel):
    """One worker's step inside a coordination workflow."""

    worker_id: str
    action: str = Field(default="execute", description="execute|analyze|coordinate")
    dependencies: List[str] = Field(
        default_factory=list, description="Worker ids whose steps must finish first"
    )
    timeout_ms: int = Field(gt=0, description="Step timeout in milliseconds")


class ParallelStrategy(BaseModel):
    """All workers run independently against the same task."""

    type: Literal["parallel"] = "parallel"
    workflow: List[WorkflowStep] = Field(default_factory=list)


class SequentialStrategy(BaseModel):
    """Workers run one after another, each seeing previous results."""

    type: Literal["sequential"] = "sequential"
    workflow: List[WorkflowStep] = Field(default_factory=list)


class HierarchicalStrategy(BaseModel):
    """A leader plans first, then subordinates run its delegations."""

    type: Literal["hierarchical"] = "hierarchical"
    leader_id: str
    workflow: List[WorkflowStep] = Field(default_factory=list)


class CollaborativeStrategy(BaseModel):
    """Independent analyses followed by a synthesis pass."""

    type: Literal["collaborative"] = "collaborative"
    workflow: List[WorkflowStep] = Field(default_factory=list)


CoordinationStrategy = Annotated[
    Union[ParallelStrategy, SequentialStrategy, HierarchicalStrategy, CollaborativeStrategy],
    Field(discriminator="type"),
]


class Assignment(BaseModel):
    """Binds one task to its workers and strategy. Never persisted."""

    task: Task
    worker_ids: List[str] = Field(min_length=1)
    strategy: CoordinationStrategy
    context: Dict[str, Any] = Field(
        default_factory=dict, description="Shared context handed to every worker"
    )
    created_at: datetime = Field(default_factory=datetime.now)


class WorkInstruction(BaseModel):
    """What a work executor receives for one step."""

    task: Task
    worker: Worker
    action: str = Field(default="execute")
    directive: Optional[str] = Field(
        default=None, description="Leader-derived or synthesis instruction"
    )
    context: Dict[str, Any] = Field(
        default_factory=dict, description="Previous results and leader guidance"
    )
    step_index: int = Field(default=0)


class WorkerResult(BaseModel):
    """Output of one worker step."""

    worker_id: str
    role: str
    action: str
    output: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: float = Field(default=0.0)


class ConflictResolution(BaseModel):
    """A key on which workers disagreed and the value that was kept."""

    key: str
    values: Dict[str, Any] = Field(description="worker_id -> value")
    resolved_value: Any
    resolved_by: str = Field(description="Worker whose value was kept")
    rationale: str


class Synthesis(BaseModel):
    """Merged view over collaborative analyses."""

    worker_count: int
    consensus_points: List[str] = Field(default_factory=list)
    conflict_resolutions: List[ConflictResolution] = Field(default_factory=list)
    merged_output: Dict[str, Any] = Field(default_factory=dict)
    recommendation: str = Field(default="")


class ExecutionResult(BaseModel):
    """Combined result of executing an assignment."""

    task_id: str
    strategy: CoordinationType
    worker_ids: List[str]
    results: List[WorkerResult] = Field(default_factory=list)
    leader_plan: Optional[WorkerResult] = Field(default=None)
    synthesis: Optional[Synthesis] = Field(default=None)
    artifacts: List[Any] = Field(default_factory=list)
    summary: str = Field(default="")
    duration_ms: float = Field(default=0.0)
    completed_at: datetime = Field(default_factory=datetime.now)
