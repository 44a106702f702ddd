"""Sharding strategies, in selection precedence order."""

from .layered_strategy import LayeredArchitectureStrategy
from .feature_strategy import FeatureDecompositionStrategy
from .user_story_strategy import UserStoryStrategy
from .complexity_strategy import ComplexityBasedStrategy
from .time_boxed_strategy import TimeBoxedStrategy

__all__ = [
    "LayeredArchitectureStrategy",
    "FeatureDecompositionStrategy",
    "UserStoryStrategy",
    "ComplexityBasedStrategy",
    "TimeBoxedStrategy",
]
