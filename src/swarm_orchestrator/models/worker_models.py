"""Data models for workers and their performance."""

from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
from datetime import datetime


class WorkerRole(str, Enum):
    """Closed set of worker specialisations."""

    ANALYST = "analyst"
    PRODUCT_MANAGER = "product-manager"
    ARCHITECT = "architect"
    COORDINATOR = "coordinator"
    DEVELOPER = "developer"
    TESTER = "tester"
    OPS = "ops"
    REVIEWER = "reviewer"
    DESIGNER = "designer"


class WorkerStatus(str, Enum):
    """Worker availability."""

    ACTIVE = "active"
    BUSY = "busy"
    IDLE = "idle"
    OFFLINE = "offline"


class WorkerPerformance(BaseModel):
    """Running performance statistics for a worker."""

    tasks_completed: int = Field(default=0, ge=0)
    average_duration_ms: float = Field(default=0.0, ge=0)
    success_rate_pct: float = Field(default=100.0, ge=0, le=100)
    quality_score: float = Field(default=85.0, ge=0, le=100)


class WorkerDefinition(BaseModel):
    """Roster entry supplied by the caller at startup."""

    id: str
    name: str
    role: WorkerRole
    capabilities: List[str] = Field(default_factory=list)


class Worker(BaseModel):
    """A registered worker. Owned and mutated only by the worker pool."""

    id: str
    name: str
    role: WorkerRole
    capabilities: List[str] = Field(default_factory=list)
    status: WorkerStatus = Field(default=WorkerStatus.IDLE)
    current_task_id: Optional[str] = Field(default=None)
    performance: WorkerPerformance = Field(default_factory=WorkerPerformance)
    last_active: Optional[datetime] = Field(default=None)

    @classmethod
    def from_definition(cls, definition: WorkerDefinition) -> "Worker":
        """Create a fresh idle worker from a roster entry."""
        return cls(
            id=definition.id,
            name=definition.name,
            role=definition.role,
            capabilities=list(definition.capabilities),
        )


DEFAULT_ROSTER: List[WorkerDefinition] = [
    WorkerDefinition(
        id="analyst",
        name="Business Analyst",
        role=WorkerRole.ANALYST,
        capabilities=[
            "requirements gathering",
            "stakeholder analysis",
            "business process modeling",
            "gap analysis",
            "user story creation",
        ],
    ),
    WorkerDefinition(
        id="product-manager",
        name="Product Manager",
        role=WorkerRole.PRODUCT_MANAGER,
        capabilities=[
            "roadmap planning",
            "feature prioritization",
            "stakeholder management",
            "market analysis",
        ],
    ),
    WorkerDefinition(
        id="architect",
        name="System Architect",
        role=WorkerRole.ARCHITECT,
        capabilities=[
            "system architecture design",
            "technology selection",
            "scalability planning",
            "integration design",
        ],
    ),
    WorkerDefinition(
        id="coordinator",
        name="Delivery Coordinator",
        role=WorkerRole.COORDINATOR,
        capabilities=[
            "story file creation",
            "sprint planning",
            "context preservation",
            "task coordination",
        ],
    ),
    WorkerDefinition(
        id="developer",
        name="Senior Developer",
        role=WorkerRole.DEVELOPER,
        capabilities=[
            "code implementation",
            "technical design",
            "debugging",
            "performance optimization",
        ],
    ),
    WorkerDefinition(
        id="tester",
        name="QA Engineer",
        role=WorkerRole.TESTER,
        capabilities=[
            "test planning",
            "test automation",
            "quality assurance",
            "bug reporting",
        ],
    ),
    WorkerDefinition(
        id="ops",
        name="DevOps Engineer",
        role=WorkerRole.OPS,
        capabilities=[
            "deployment automation",
            "infrastructure management",
            "ci/cd pipeline",
            "monitoring setup",
        ],
    ),
    WorkerDefinition(
        id="designer",
        name="UI/UX Designer",
        role=WorkerRole.DESIGNER,
        capabilities=[
            "user interface design",
            "prototyping",
            "design system creation",
            "accessibility design",
        ],
    ),
]
