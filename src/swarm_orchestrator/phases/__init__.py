"""Pipeline phases run by the orchestrator."""

from .base import BasePhase, TaskRun, roles_for_task
from .planning_phase import PlanningPhase
from .development_phase import DevelopmentPhase

__all__ = [
    "BasePhase",
    "TaskRun",
    "roles_for_task",
    "PlanningPhase",
    "DevelopmentPhase",
]
