"""Models for the context store."""

from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime


class ContextCategory(str, Enum):
    """Category of a context entry."""

    PROJECT = "project"
    TASK = "task"
    STORY = "story"
    WORKER = "worker"
    SYSTEM = "system"


class ContextEntry(BaseModel):
    """A cached, dependency-linked unit of background information."""

    id: str
    category: ContextCategory
    payload: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=datetime.now)
    last_accessed: datetime = Field(default_factory=datetime.now)
    access_count: int = Field(default=0, ge=0)
    compression_level: float = Field(
        default=1.0, description="Compressed size / original size"
    )
    compressed: bool = Field(default=False)


class SearchCriteria(BaseModel):
    """Filters for context search. Unset fields do not filter."""

    category: Optional[ContextCategory] = None
    keywords: List[str] = Field(default_factory=list)
    accessed_after: Optional[datetime] = None
    accessed_before: Optional[datetime] = None
    min_importance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_importance: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ContextStats(BaseModel):
    """Snapshot of context store health."""

    total_contexts: int = 0
    total_dependencies: int = 0
    compressed_contexts: int = 0
    average_compression_ratio: float = 1.0
    context_preservation: float = 100.0
    cache_utilization: float = 0.0
    capacity: int = 0
    evictions: int = 0
    category_counts: Dict[str, int] = Field(default_factory=dict)
