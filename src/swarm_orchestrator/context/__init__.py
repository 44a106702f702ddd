"""Context store package."""

from .compression import PayloadCompressor
from .context_store import ContextStore, task_importance

__all__ = ["ContextStore", "PayloadCompressor", "task_importance"]
