"""Shared fixtures for orchestration core tests."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from swarm_orchestrator.config.orchestrator_config import OrchestratorConfig
from swarm_orchestrator.models.task_models import (
    ProjectContext,
    RiskLevel,
    Task,
    TaskComplexity,
    TaskEffort,
    TaskPriority,
    TaskType,
)
from swarm_orchestrator.models.worker_models import WorkerDefinition, WorkerRole
from swarm_orchestrator.workers.base import FunctionExecutor


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = datetime(2024, 3, 15, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def make_task(
    task_id: str = "task-1",
    title: str = "Build feature",
    description: str = "Implement the feature end to end",
    task_type: TaskType = TaskType.DEVELOPMENT,
    priority: TaskPriority = TaskPriority.MEDIUM,
    hours: float = 4.0,
    complexity: TaskComplexity = TaskComplexity.MEDIUM,
    risk: RiskLevel = RiskLevel.LOW,
    dependencies=None,
    **fields,
) -> Task:
    """Build a task with sensible defaults."""
    return Task(
        id=task_id,
        title=title,
        description=description,
        type=task_type,
        priority=priority,
        dependencies=list(dependencies or []),
        effort=TaskEffort(estimated_hours=hours, complexity=complexity, risk_level=risk),
        **fields,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Configuration independent of the environment."""
    return OrchestratorConfig(
        context_cache_capacity=1000,
        context_eviction_fraction=0.1,
        context_recency_weight=1.0,
        shard_time_box_hours=4,
        task_timeout_minutes=1,
        max_concurrent_tasks=5,
        token_cost_per_thousand=0.02,
        hourly_cost=75,
        savings_alert_threshold=100,
        baseline_hours={"planning": 4.0, "development": 8.0},
        default_baseline_hours=2.0,
    )


@pytest.fixture
def small_roster():
    """Two developers, an architect and a tester."""
    return [
        WorkerDefinition(id="dev-a", name="Developer A", role=WorkerRole.DEVELOPER),
        WorkerDefinition(id="dev-b", name="Developer B", role=WorkerRole.DEVELOPER),
        WorkerDefinition(id="arch", name="Architect", role=WorkerRole.ARCHITECT),
        WorkerDefinition(id="qa", name="Tester", role=WorkerRole.TESTER),
    ]


@pytest.fixture
def calls():
    """Instructions seen by the echo executor."""
    return []


@pytest.fixture
def echo_executor(calls):
    """Executor that records each instruction and echoes who did what."""

    def execute(instruction):
        calls.append(instruction)
        return {
            "worker": instruction.worker.id,
            "action": instruction.action,
            "task": instruction.task.id,
        }

    return FunctionExecutor(execute)


@pytest.fixture
def project():
    """Project with three chained functional requirements."""
    return ProjectContext(
        id="shop",
        name="Web Shop",
        description="Online shop with accounts, catalogue and reporting",
        requirements={
            "functional": [
                {
                    "id": "FR001",
                    "title": "User Accounts",
                    "description": "System shall provide account registration",
                    "priority": "high",
                    "acceptance_criteria": ["Users can register with email"],
                    "estimated_hours": 4,
                },
                {
                    "id": "FR002",
                    "title": "Product Catalogue",
                    "description": "System shall list products",
                    "priority": "medium",
                    "acceptance_criteria": ["Products are listed with prices"],
                    "dependencies": ["FR001"],
                    "estimated_hours": 3,
                },
                {
                    "id": "FR003",
                    "title": "Sales Overview",
                    "description": "System shall summarise sales",
                    "priority": "low",
                    "acceptance_criteria": ["Daily totals are shown"],
                    "dependencies": ["FR002"],
                    "estimated_hours": 2,
                },
            ],
            "constraints": ["PostgreSQL"],
        },
        architecture={"components": [{"name": "Storefront"}]},
    )
