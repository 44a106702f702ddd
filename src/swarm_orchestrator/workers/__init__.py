"""Worker pool, coordinator and the executor contract."""

from .base import WorkExecutor, FunctionExecutor
from .worker_pool import WorkerPool
from .coordinator import Coordinator

__all__ = ["WorkExecutor", "FunctionExecutor", "WorkerPool", "Coordinator"]
