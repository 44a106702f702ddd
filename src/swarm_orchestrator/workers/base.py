"""Work executor contract used by the coordinator."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Union

from ..models.coordination_models import WorkInstruction

logger = logging.getLogger(__name__)


class WorkExecutor(ABC):
    """
    Abstract collaborator that performs one unit of work.

    All executors must:
    - Implement async execute() method
    - Return a structured dict result
    - Raise on failure (the coordinator records and re-raises)
    """

    @abstractmethod
    async def execute(self, instruction: WorkInstruction) -> Dict[str, Any]:
        """
        Execute one workflow step.

        CRITICAL: Must be async and cancellable
        PATTERN: A hierarchical leader may return a `delegation` mapping
            (worker id, role or position -> directive) and `guidance`

        Args:
            instruction: What to do, for which task, as which worker

        Returns:
            Structured result
        """
        pass


ExecuteFn = Callable[[WorkInstruction], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]


def is_async_callable(fn: Any) -> bool:
    """True for coroutine functions and objects with an async __call__."""
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


class FunctionExecutor(WorkExecutor):
    """
    Adapts a plain sync or async callable to the executor contract.

    CRITICAL: Sync callables run in the loop's default thread pool so the
        coordinator's step timeout and cancellation still apply
    GOTCHA: A timed-out sync call keeps running in its thread; only the
        await is abandoned
    """

    def __init__(self, fn: ExecuteFn):
        self.fn = fn
        self.is_async = is_async_callable(fn)

    async def execute(self, instruction: WorkInstruction) -> Dict[str, Any]:
        if self.is_async:
            result = await self.fn(instruction)
        else:
            # Run in thread pool to avoid blocking the loop
            loop = asyncio.get_event_loop()
            result = await loop.run_in_executor(None, self.fn, instruction)
            if inspect.isawaitable(result):
                result = await result

        if result is None:
            return {}
        if not isinstance(result, dict):
            return {"output": result}
        return result
