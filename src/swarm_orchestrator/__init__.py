"""Multi-agent task orchestration core."""

from .config.orchestrator_config import OrchestratorConfig
from .errors import (
    CancellationError,
    ErrorKind,
    ExecutionFailure,
    OrchestrationError,
    RoleUnavailableError,
    StepTimeoutError,
    ValidationError,
)
from .services.orchestration_service import Orchestrator

__version__ = "0.1.0"

__all__ = [
    "Orchestrator",
    "OrchestratorConfig",
    "OrchestrationError",
    "ErrorKind",
    "ValidationError",
    "RoleUnavailableError",
    "ExecutionFailure",
    "StepTimeoutError",
    "CancellationError",
]
