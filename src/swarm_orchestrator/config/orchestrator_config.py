"""Orchestrator configuration with environment variable loading."""

import os
from typing import Dict
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _default_baselines() -> Dict[str, float]:
    """Manual-effort baselines in hours, keyed by operation label."""
    return {
        "planning": float(os.getenv("BASELINE_PLANNING_HOURS", "4")),
        "development": float(os.getenv("BASELINE_DEVELOPMENT_HOURS", "8")),
        "review": float(os.getenv("BASELINE_REVIEW_HOURS", "2")),
        "build": float(os.getenv("BASELINE_BUILD_HOURS", "1")),
    }


class OrchestratorConfig(BaseModel):
    """Configuration for the orchestration core."""

    # Context store
    context_cache_capacity: int = Field(
        default_factory=lambda: int(os.getenv("CONTEXT_CACHE_CAPACITY", "1000")),
        description="Maximum number of context entries held in the store",
        ge=1,
    )
    context_eviction_fraction: float = Field(
        default_factory=lambda: float(os.getenv("CONTEXT_EVICTION_FRACTION", "0.1")),
        description="Fraction of entries evicted when capacity is exceeded",
        gt=0,
        le=1,
    )
    context_recency_weight: float = Field(
        default_factory=lambda: float(os.getenv("CONTEXT_RECENCY_WEIGHT", "1.0")),
        description="Weight of the age-in-days term in the eviction/search rank",
    )
    compression_size_threshold: int = Field(
        default_factory=lambda: int(os.getenv("COMPRESSION_SIZE_THRESHOLD", "10000")),
        description="Serialized payload size (chars) above which compression applies",
    )
    compression_redundancy_threshold: float = Field(
        default_factory=lambda: float(
            os.getenv("COMPRESSION_REDUNDANCY_THRESHOLD", "0.7")
        ),
        description="Redundancy ratio (1 - unique word ratio) that triggers compression",
    )
    description_max_length: int = Field(
        default=500,
        description="Descriptions longer than this are truncated on compression",
    )
    array_compression_threshold: int = Field(
        default=20,
        description="Lists longer than this are sampled on compression",
    )
    array_keep_items: int = Field(
        default=10,
        description="Items kept from each end of a sampled list",
    )
    max_dependency_expansion: int = Field(
        default=5,
        description="Dependencies expanded per level on retrieval",
    )

    # Sharding
    shard_time_box_hours: float = Field(
        default_factory=lambda: float(os.getenv("SHARD_TIME_BOX_HOURS", "4")),
        description="Chunk size for time-boxed sharding",
        gt=0,
    )

    # Coordination
    task_timeout_minutes: float = Field(
        default_factory=lambda: float(os.getenv("TASK_TIMEOUT_MINUTES", "30")),
        description="Per workflow step timeout in minutes",
        gt=0,
    )
    max_concurrent_tasks: int = Field(
        default_factory=lambda: int(os.getenv("MAX_CONCURRENT_TASKS", "5")),
        description="Maximum concurrent worker executions",
        ge=1,
    )
    performance_window: int = Field(
        default=100,
        description="Outcomes kept per worker for the rolling success rate and history",
        ge=1,
    )

    # Cost tracking
    token_cost_per_thousand: float = Field(
        default_factory=lambda: float(os.getenv("TOKEN_COST_PER_THOUSAND", "0.02")),
        description="Dollar cost per 1K token-equivalents",
    )
    hourly_cost: float = Field(
        default_factory=lambda: float(os.getenv("HOURLY_COST", "75")),
        description="Dollar cost of one manual hour",
    )
    savings_alert_threshold: float = Field(
        default_factory=lambda: float(os.getenv("SAVINGS_ALERT_THRESHOLD", "100")),
        description="Savings per record above which a significant-savings event fires",
    )
    baseline_hours: Dict[str, float] = Field(
        default_factory=_default_baselines,
        description="Manual-effort baseline per operation label",
    )
    default_baseline_hours: float = Field(
        default=2.0,
        description="Baseline for operations without an explicit entry",
    )
    recent_savings_floor: float = Field(
        default=50.0,
        description="Seven-day savings below which a process review is recommended",
    )
    usage_reduction_target: float = Field(
        default=60.0,
        description="Average usage reduction (%) below which optimization is recommended",
    )
    parallelization_target: float = Field(
        default=40.0,
        description="Multi-worker record rate (%) below which parallelism is recommended",
    )

    @property
    def task_timeout_ms(self) -> int:
        """Per-step timeout converted to milliseconds."""
        return int(self.task_timeout_minutes * 60 * 1000)

    def baseline_for(self, operation: str) -> float:
        """Get the manual baseline in hours for an operation."""
        return self.baseline_hours.get(operation, self.default_baseline_hours)


def get_orchestrator_config() -> OrchestratorConfig:
    """Get orchestrator configuration instance."""
    return OrchestratorConfig()
