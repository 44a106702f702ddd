"""Models for cost and resource tracking."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum
from datetime import datetime


class CostRecord(BaseModel):
    """A logged unit-of-work outcome. Append-only."""

    timestamp: datetime = Field(default_factory=datetime.now)
    operation: str = Field(description="Operation label, e.g. planning")
    raw_usage: int = Field(ge=0, description="Token-equivalents before optimization")
    optimized_usage: int = Field(ge=0, description="Token-equivalents after optimization")
    duration_ms: float = Field(ge=0)
    workers_used: List[str] = Field(default_factory=list)
    usage_saved: float = Field(default=0.0, description="Dollars saved on usage")
    time_saved_hours: float = Field(default=0.0, ge=0)
    saved: float = Field(default=0.0, description="Total dollar-equivalent saved")

    @property
    def month_key(self) -> str:
        """Calendar month bucket, YYYY-MM."""
        return self.timestamp.strftime("%Y-%m")

    @property
    def reduction_pct(self) -> float:
        """Usage reduction for this record."""
        if self.raw_usage <= 0:
            return 0.0
        return (self.raw_usage - self.optimized_usage) / self.raw_usage * 100


class MonthlyStats(BaseModel):
    """Aggregate bucket for one calendar month."""

    month: str
    total_usage: int = 0
    optimized_usage: int = 0
    saved: float = 0.0
    reduction_pct: float = 0.0
    operation_count: int = 0


class UsageStats(BaseModel):
    """Aggregate token-equivalent usage."""

    total_usage: int = 0
    optimized_usage: int = 0
    reduction_percentage: float = 0.0
    cost_savings: float = 0.0


class TimeEfficiencyStats(BaseModel):
    """Aggregate time accounting in hours."""

    total_hours: float = 0.0
    automated_hours: float = 0.0
    manual_hours: float = 0.0
    efficiency_pct: float = 0.0


class ResourceUtilizationStats(BaseModel):
    """Per-worker utilisation normalised to the busiest worker (= 100)."""

    worker_utilization: Dict[str, float] = Field(default_factory=dict)
    parallelization_pct: float = 0.0
    average_workers_per_record: float = 0.0


class Impact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationType(str, Enum):
    TOKEN_OPTIMIZATION = "token-optimization"
    RESOURCE_ALLOCATION = "resource-allocation"
    PROCESS_IMPROVEMENT = "process-improvement"


class CostRecommendation(BaseModel):
    """A threshold-driven optimisation suggestion."""

    type: RecommendationType
    description: str
    impact: Impact
    effort: Impact
    estimated_savings: float


class CostReport(BaseModel):
    """Full optimisation report."""

    usage: UsageStats
    time_efficiency: TimeEfficiencyStats
    resource_utilization: ResourceUtilizationStats
    recommendations: List[CostRecommendation] = Field(default_factory=list)
    record_count: int = 0
    generated_at: datetime = Field(default_factory=datetime.now)
    last_record_at: Optional[datetime] = None
