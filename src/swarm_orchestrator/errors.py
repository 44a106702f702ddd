"""Structured error taxonomy for the orchestration core."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Programmatic error categories."""

    VALIDATION = "validation"
    ROLE_UNAVAILABLE = "role_unavailable"
    EXECUTION_FAILURE = "execution_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class OrchestrationError(Exception):
    """
    Base error carrying a kind, a human message and the offending entity id.

    PATTERN: Callers branch on `kind` rather than on exception text
    """

    kind: ErrorKind = ErrorKind.EXECUTION_FAILURE

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for status snapshots and events."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "entity_id": self.entity_id,
        }

    def __str__(self) -> str:
        if self.entity_id:
            return f"[{self.kind.value}] {self.message} (entity: {self.entity_id})"
        return f"[{self.kind.value}] {self.message}"


class ValidationError(OrchestrationError):
    """Malformed input. Never retried."""

    kind = ErrorKind.VALIDATION


class RoleUnavailableError(OrchestrationError):
    """No worker can fill a required role."""

    kind = ErrorKind.ROLE_UNAVAILABLE


class ExecutionFailure(OrchestrationError):
    """A worker's unit of work raised or timed out."""

    kind = ErrorKind.EXECUTION_FAILURE


class StepTimeoutError(ExecutionFailure):
    """A workflow step exceeded its timeout."""

    kind = ErrorKind.TIMEOUT


class CancellationError(OrchestrationError):
    """Work was aborted on request. Not counted against worker statistics."""

    kind = ErrorKind.CANCELLED
