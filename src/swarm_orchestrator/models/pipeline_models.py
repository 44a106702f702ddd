"""Models for orchestrator pipeline runs."""

from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime

from .task_models import ProjectContext, Task
from .coordination_models import ExecutionResult


class PipelineStatus(str, Enum):
    """Orchestrator run state."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SHUTDOWN = "shutdown"


class PhaseResult(BaseModel):
    """Outcome of one pipeline phase."""

    phase: str = Field(description="planning|development")
    success: bool = True
    duration_ms: float = 0.0
    tasks: List[Task] = Field(default_factory=list)
    executions: Dict[str, ExecutionResult] = Field(
        default_factory=dict, description="task_id -> execution result"
    )
    failed_tasks: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="task_id -> structured error"
    )
    blocked_tasks: List[str] = Field(default_factory=list)
    context_ids: List[str] = Field(default_factory=list)
    raw_usage: int = 0
    optimized_usage: int = 0
    metrics: Dict[str, Any] = Field(default_factory=dict)
    project: Optional[ProjectContext] = Field(
        default=None, description="Project as updated by the phase"
    )


class PipelineResult(BaseModel):
    """Outcome of a full orchestrator run."""

    project_id: str
    success: bool
    planning: Optional[PhaseResult] = None
    development: Optional[PhaseResult] = None
    duration_ms: float = 0.0
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
