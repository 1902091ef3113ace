"""
Executor contract.

An executor delivers one Action payload and reports success or failure.
Delivery retries belong to the executor; the dispatcher never retries.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Union

from ..flows.base import ActionPayload

ExecutorCallback = Callable[[ActionPayload], Awaitable[Union[bool, None]]]


class ActionExecutor(ABC):
    """Delivers action payloads."""

    @abstractmethod
    async def execute(self, payload: ActionPayload) -> bool:
        """
        Deliver a payload.

        Returns:
            True on success, False on failure. Raising also counts as failure.
        """


class CallbackExecutor(ActionExecutor):
    """Adapts an async callable. ``None`` results count as success."""

    def __init__(self, callback: ExecutorCallback):
        self._callback = callback

    async def execute(self, payload: ActionPayload) -> bool:
        result = await self._callback(payload)
        return result is None or bool(result)


__all__ = ["ActionExecutor", "CallbackExecutor", "ExecutorCallback"]
