"""Notification events emitted by the orchestration core."""

from pydantic import BaseModel, Field
from typing import Dict, List, Any, Callable, Optional
from enum import Enum
from datetime import datetime


class EventKind(str, Enum):
    """Kinds of orchestration events."""

    TASK_COMPLETED = "task-completed"
    TASK_FAILED = "task-failed"
    TASK_CANCELLED = "task-cancelled"
    SIGNIFICANT_SAVINGS = "significant-savings"
    EXECUTION_STARTED = "execution-started"
    EXECUTION_COMPLETED = "execution-completed"
    EXECUTION_FAILED = "execution-failed"
    EXECUTION_CANCELLED = "execution-cancelled"
    EXECUTION_PAUSED = "execution-paused"
    EXECUTION_RESUMED = "execution-resumed"
    PLANNING_COMPLETED = "planning-completed"
    DEVELOPMENT_COMPLETED = "development-completed"


class OrchestrationEvent(BaseModel):
    """Payload delivered on the notification channel."""

    kind: EventKind
    timestamp: datetime = Field(default_factory=datetime.now)
    task_id: Optional[str] = Field(default=None)
    worker_ids: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = Field(default=None)
    error: Optional[Dict[str, Any]] = Field(default=None)
    data: Dict[str, Any] = Field(default_factory=dict)


EventListener = Callable[[OrchestrationEvent], None]
