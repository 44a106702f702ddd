"""Data models for tasks, projects and their effort estimates."""

from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime
from uuid import uuid4


class TaskType(str, Enum):
    """Types of tasks, used for scoring and strategy selection."""

    REQUIREMENTS_ANALYSIS = "requirements-analysis"
    ARCHITECTURE_DESIGN = "architecture-design"
    STORY_CREATION = "story-creation"
    DEVELOPMENT = "development"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    DOCUMENTATION = "documentation"
    REVIEW = "review"


class TaskPriority(str, Enum):
    """Task priority levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    TESTING = "testing"
    DONE = "done"
    BLOCKED = "blocked"


class TaskComplexity(str, Enum):
    """Coarse complexity class."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class RiskLevel(str, Enum):
    """Delivery risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ArtifactType(str, Enum):
    """Kinds of artifacts a task can produce."""

    DOCUMENT = "document"
    CODE = "code"
    TEST = "test"
    CONFIG = "config"
    DIAGRAM = "diagram"


class TaskEffort(BaseModel):
    """Effort estimate for a task."""

    estimated_hours: float = Field(default=0.0, ge=0, description="Estimated hours")
    actual_hours: Optional[float] = Field(default=None, description="Hours actually spent")
    complexity: TaskComplexity = Field(default=TaskComplexity.MEDIUM)
    risk_level: RiskLevel = Field(default=RiskLevel.LOW)


class TaskArtifact(BaseModel):
    """Something produced while working on a task."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: ArtifactType = Field(default=ArtifactType.DOCUMENT)
    content: str = Field(default="")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class Task(BaseModel):
    """A unit of work handled by the orchestrator."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique task ID")
    title: str = Field(description="Short task title")
    description: str = Field(default="", description="Detailed task description")
    type: TaskType = Field(description="Task type for scoring and strategy selection")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    status: TaskStatus = Field(default=TaskStatus.BACKLOG)
    parent_id: Optional[str] = Field(default=None, description="Parent task ID for shards")

    dependencies: List[str] = Field(
        default_factory=list, description="IDs of tasks that must complete first"
    )
    effort: TaskEffort = Field(default_factory=TaskEffort)
    artifacts: List[TaskArtifact] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    assigned_worker_ids: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)

    def mark_status(self, status: TaskStatus) -> None:
        """Move the task to a new status and touch timestamps."""
        self.status = status
        self.updated_at = datetime.now()
        if status == TaskStatus.DONE:
            self.completed_at = self.updated_at


class ProjectContext(BaseModel):
    """
    Free-form project payload ingested during planning.

    `requirements["functional"]` is a list of requirement dicts, each with
    id, title, description and optionally priority, acceptance_criteria,
    dependencies and estimated_hours.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str = Field(default="")
    requirements: Dict[str, Any] = Field(default_factory=dict)
    architecture: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def functional_requirements(self) -> List[Dict[str, Any]]:
        """Functional requirements, or an empty list."""
        return list(self.requirements.get("functional", []))
