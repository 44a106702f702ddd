"""Services package for the orchestration core."""

from .cost_tracking_service import CostTracker

__all__ = [
    "CostTracker",
]
