"""Small asyncio helpers for bounded calls into collaborators."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, timeout: float) -> T:
    """Run a synchronous adapter call in a worker thread with a deadline.

    Raises:
        TimeoutError: If the call does not finish within ``timeout`` seconds
    """
    return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)


async def bounded(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a coroutine with a deadline."""
    return await asyncio.wait_for(awaitable, timeout)


def caller_cancelled() -> bool:
    """True when the running task itself has been asked to cancel.

    Distinguishes a caller's cancellation (must propagate) from a
    CancelledError raised by a collaborator (treated as a failed call).
    """
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
