"""Cost and resource tracking with optimisation recommendations."""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config.orchestrator_config import OrchestratorConfig
from ..errors import ValidationError
from ..models.cost_models import (
    CostRecommendation,
    CostRecord,
    CostReport,
    Impact,
    MonthlyStats,
    RecommendationType,
    ResourceUtilizationStats,
    TimeEfficiencyStats,
    UsageStats,
)
from ..models.event_models import EventKind, EventListener, OrchestrationEvent

logger = logging.getLogger(__name__)

MS_PER_HOUR = 60 * 60 * 1000
UTILIZATION_WINDOW_DAYS = 30
RECENT_SAVINGS_DAYS = 7
AUTOMATION_FULL_WORKERS = 3
IMPACT_ORDER = {Impact.HIGH: 0, Impact.MEDIUM: 1, Impact.LOW: 2}


class CostTracker:
    """
    Tracks unit-of-work costs and produces optimisation reports.

    PATTERN: Append-only history with monthly aggregation
    CRITICAL: record() is the only writer; all writes hold a threading.Lock
    GOTCHA: Windowed stats (30 / 7 days) are relative to the injected clock
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        listener: Optional[EventListener] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize cost tracker.

        Args:
            config: Pricing, baselines and recommendation thresholds
            listener: Notification callback for significant savings
            clock: Time source, injectable for tests
        """
        self.config = config or OrchestratorConfig()
        self.listener = listener
        self._clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

        self.history: List[CostRecord] = []
        self.monthly_stats: Dict[str, MonthlyStats] = {}
        self._lock = threading.Lock()

    def record(
        self,
        operation: str,
        duration_ms: float,
        raw_usage: int,
        optimized_usage: int,
        workers_used: Iterable[str] = (),
        timestamp: Optional[datetime] = None,
    ) -> CostRecord:
        """
        Record a completed unit of work.

        PATTERN: Usage savings plus time savings against the operation baseline

        Args:
            operation: Operation label (planning, development, review, ...)
            duration_ms: Actual duration
            raw_usage: Token-equivalents before optimisation
            optimized_usage: Token-equivalents after optimisation
            workers_used: Worker ids involved
            timestamp: Record time (now if None)

        Returns:
            The appended CostRecord

        Raises:
            ValidationError: On negative usage or duration
        """
        if raw_usage < 0 or optimized_usage < 0 or duration_ms < 0:
            raise ValidationError("Usage and duration must be non-negative", entity_id=operation)

        usage_saved = self.usage_cost(raw_usage - optimized_usage)
        baseline_hours = self.config.baseline_for(operation)
        time_saved_hours = max(0.0, baseline_hours - duration_ms / MS_PER_HOUR)

        entry = CostRecord(
            timestamp=timestamp or self._clock(),
            operation=operation,
            raw_usage=raw_usage,
            optimized_usage=optimized_usage,
            duration_ms=duration_ms,
            workers_used=list(workers_used),
            usage_saved=usage_saved,
            time_saved_hours=time_saved_hours,
            saved=usage_saved + time_saved_hours * self.config.hourly_cost,
        )

        with self._lock:
            self.history.append(entry)
            self._update_monthly_stats(entry)

        self.logger.info(f"Cost tracked for {operation}: ${entry.saved:.2f} saved")

        if entry.saved > self.config.savings_alert_threshold and self.listener:
            try:
                self.listener(
                    OrchestrationEvent(
                        kind=EventKind.SIGNIFICANT_SAVINGS,
                        worker_ids=entry.workers_used,
                        data={
                            "operation": operation,
                            "saved": entry.saved,
                            "reduction_pct": round(entry.reduction_pct, 2),
                            "time_saved_hours": time_saved_hours,
                        },
                    )
                )
            except Exception as e:
                self.logger.error(f"Event listener failed on significant savings: {e}")

        return entry

    def usage_cost(self, usage: float) -> float:
        """Dollar cost of a number of token-equivalents."""
        return usage / 1000 * self.config.token_cost_per_thousand

    def _update_monthly_stats(self, entry: CostRecord) -> None:
        month = entry.month_key
        stats = self.monthly_stats.get(month)
        if stats is None:
            stats = MonthlyStats(month=month)
            self.monthly_stats[month] = stats

        stats.total_usage += entry.raw_usage
        stats.optimized_usage += entry.optimized_usage
        stats.saved += entry.saved
        stats.operation_count += 1
        stats.reduction_pct = (
            (stats.total_usage - stats.optimized_usage) / stats.total_usage * 100
            if stats.total_usage > 0
            else 0.0
        )

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def report(self) -> CostReport:
        """
        Generate the full optimisation report.

        Returns:
            CostReport with usage, time, utilisation and ranked recommendations
        """
        with self._lock:
            history = list(self.history)

        return CostReport(
            usage=self._usage_stats(history),
            time_efficiency=self._time_stats(history),
            resource_utilization=self._utilization_stats(history),
            recommendations=self._recommendations(history),
            record_count=len(history),
            generated_at=self._clock(),
            last_record_at=history[-1].timestamp if history else None,
        )

    def _usage_stats(self, history: List[CostRecord]) -> UsageStats:
        total = sum(entry.raw_usage for entry in history)
        optimized = sum(entry.optimized_usage for entry in history)
        reduction = (total - optimized) / total * 100 if total > 0 else 0.0

        return UsageStats(
            total_usage=total,
            optimized_usage=optimized,
            reduction_percentage=round(reduction, 2),
            cost_savings=round(self.usage_cost(total - optimized), 2),
        )

    def _time_stats(self, history: List[CostRecord]) -> TimeEfficiencyStats:
        total_ms = sum(entry.duration_ms for entry in history)
        automated_ms = sum(
            entry.duration_ms * min(len(entry.workers_used) / AUTOMATION_FULL_WORKERS, 1.0)
            for entry in history
        )

        return TimeEfficiencyStats(
            total_hours=round(total_ms / MS_PER_HOUR, 2),
            automated_hours=round(automated_ms / MS_PER_HOUR, 2),
            manual_hours=round((total_ms - automated_ms) / MS_PER_HOUR, 2),
            efficiency_pct=round(automated_ms / total_ms * 100, 2) if total_ms > 0 else 0.0,
        )

    def _utilization_stats(self, history: List[CostRecord]) -> ResourceUtilizationStats:
        recent = self._recent(history, UTILIZATION_WINDOW_DAYS)

        usage: Dict[str, int] = defaultdict(int)
        for entry in recent:
            for worker_id in entry.workers_used:
                usage[worker_id] += 1

        busiest = max(usage.values(), default=0)
        utilization = {
            worker_id: round(count / busiest * 100, 2) for worker_id, count in usage.items()
        } if busiest else {}

        return ResourceUtilizationStats(
            worker_utilization=utilization,
            parallelization_pct=round(self._parallelization(recent), 2),
            average_workers_per_record=(
                round(sum(len(e.workers_used) for e in recent) / len(recent), 2)
                if recent
                else 0.0
            ),
        )

    def _parallelization(self, records: List[CostRecord]) -> float:
        if not records:
            return 0.0
        multi = sum(1 for entry in records if len(entry.workers_used) > 1)
        return multi / len(records) * 100

    def _recommendations(self, history: List[CostRecord]) -> List[CostRecommendation]:
        """
        Threshold-driven recommendations.

        PATTERN: Ranked by impact, then estimated savings
        """
        recommendations = []

        if self._average_reduction(history) < self.config.usage_reduction_target:
            recommendations.append(
                CostRecommendation(
                    type=RecommendationType.TOKEN_OPTIMIZATION,
                    description=(
                        "Increase usage optimisation aggressiveness to reach higher "
                        "reduction rates"
                    ),
                    impact=Impact.HIGH,
                    effort=Impact.LOW,
                    estimated_savings=150,
                )
            )

        recent = self._recent(history, UTILIZATION_WINDOW_DAYS)
        if self._parallelization(recent) < self.config.parallelization_target:
            recommendations.append(
                CostRecommendation(
                    type=RecommendationType.RESOURCE_ALLOCATION,
                    description="Use more parallel coordination to improve throughput",
                    impact=Impact.MEDIUM,
                    effort=Impact.MEDIUM,
                    estimated_savings=200,
                )
            )

        recent_savings = sum(
            entry.saved for entry in self._recent(history, RECENT_SAVINGS_DAYS)
        )
        if recent_savings < self.config.recent_savings_floor:
            recommendations.append(
                CostRecommendation(
                    type=RecommendationType.PROCESS_IMPROVEMENT,
                    description="Review workflow processes to reduce manual intervention",
                    impact=Impact.HIGH,
                    effort=Impact.HIGH,
                    estimated_savings=300,
                )
            )

        recommendations.sort(
            key=lambda rec: (IMPACT_ORDER[rec.impact], -rec.estimated_savings)
        )
        return recommendations

    def _average_reduction(self, history: List[CostRecord]) -> float:
        if not history:
            return 0.0
        return sum(entry.reduction_pct for entry in history) / len(history)

    def _recent(self, history: List[CostRecord], days: int) -> List[CostRecord]:
        cutoff = self._clock() - timedelta(days=days)
        return [entry for entry in history if entry.timestamp >= cutoff]

    # ------------------------------------------------------------------
    # Breakdown helpers
    # ------------------------------------------------------------------

    def get_monthly_savings(self) -> Dict[str, float]:
        """Dollar savings per YYYY-MM bucket."""
        with self._lock:
            return {month: round(stats.saved, 2) for month, stats in sorted(self.monthly_stats.items())}

    def get_time_efficiency_gains(self) -> Dict[str, float]:
        """
        Percentage of the baseline saved per operation, floored at 0.

        GOTCHA: Operations with a zero baseline report 0.0
        """
        with self._lock:
            history = list(self.history)

        durations: Dict[str, List[float]] = defaultdict(list)
        for entry in history:
            durations[entry.operation].append(entry.duration_ms)

        gains = {}
        for operation, values in durations.items():
            baseline_ms = self.config.baseline_for(operation) * MS_PER_HOUR
            if baseline_ms <= 0:
                gains[operation] = 0.0
                continue
            average = sum(values) / len(values)
            gains[operation] = round(max(0.0, (baseline_ms - average) / baseline_ms * 100), 2)
        return gains

    def get_projected_annual_savings(self) -> float:
        """Average of the last three monthly buckets times twelve."""
        with self._lock:
            months = [self.monthly_stats[key] for key in sorted(self.monthly_stats)][-3:]
        if not months:
            return 0.0
        return round(sum(stats.saved for stats in months) / len(months) * 12, 2)

    def get_current_stats(self) -> Dict[str, Any]:
        """Headline numbers for status snapshots."""
        with self._lock:
            history = list(self.history)
        return {
            "total_operations": len(history),
            "total_savings": round(sum(entry.saved for entry in history), 2),
            "average_reduction": round(self._average_reduction(history), 2),
            "last_record_at": history[-1].timestamp.isoformat() if history else None,
        }

    def get_breakdown(self, scope: str = "operation") -> Dict[str, Dict[str, float]]:
        """
        Aggregate savings and usage by scope.

        Args:
            scope: operation, worker or month

        Returns:
            Mapping of scope key to totals

        Raises:
            ValidationError: Unknown scope
        """
        with self._lock:
            history = list(self.history)

        if scope == "operation":
            keys = lambda entry: [entry.operation]  # noqa: E731
        elif scope == "worker":
            keys = lambda entry: entry.workers_used  # noqa: E731
        elif scope == "month":
            keys = lambda entry: [entry.month_key]  # noqa: E731
        else:
            raise ValidationError(f"Unknown scope: {scope}")

        breakdown: Dict[str, Dict[str, float]] = defaultdict(
            lambda: {"records": 0, "raw_usage": 0, "optimized_usage": 0, "saved": 0.0}
        )
        for entry in history:
            for key in keys(entry):
                totals = breakdown[key]
                totals["records"] += 1
                totals["raw_usage"] += entry.raw_usage
                totals["optimized_usage"] += entry.optimized_usage
                totals["saved"] += entry.saved
        return dict(breakdown)

    def export_data(self) -> Dict[str, Any]:
        """Export history, monthly buckets and the current report."""
        with self._lock:
            history = [entry.model_dump(mode="json") for entry in self.history]
            monthly = {key: stats.model_dump() for key, stats in self.monthly_stats.items()}
        return {
            "history": history,
            "monthly_stats": monthly,
            "report": self.report().model_dump(mode="json"),
            "exported_at": self._clock().isoformat(),
        }

    def clear_history(self) -> None:
        """Drop all records and monthly buckets."""
        with self._lock:
            self.history.clear()
            self.monthly_stats.clear()
        self.logger.info("Cost history cleared")
