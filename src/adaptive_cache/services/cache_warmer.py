"""Debounced background cache warming.

Each tenant has at most one pending warming timer. Scheduling again while
the timer is pending replaces it, so a burst of stores collapses into a
single warming pass once the burst has been quiet for ``delay`` seconds.
A pass that has already started is not interrupted by new schedules.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class CacheWarmer:
    """Per-tenant debounce timers in front of a warming coroutine.

    Example:
        ```python
        warmer = CacheWarmer(warm=service.warm_cache, delay=5.0)
        warmer.schedule("tenant-a")
        warmer.schedule("tenant-a")  # replaces the first timer
        await warmer.flush()         # run pending passes now (tests, shutdown)
        ```
    """

    def __init__(self, warm: Callable[[str], Awaitable[Any]], delay: float) -> None:
        self._warm = warm
        self._delay = delay
        self._pending: dict[str, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending_tenants(self) -> list[str]:
        return [tenant for tenant, task in self._pending.items() if not task.done()]

    def schedule(self, tenant_id: str) -> asyncio.Task:
        """(Re)start the debounce timer for a tenant."""
        existing = self._pending.get(tenant_id)
        if existing is not None and not existing.done():
            existing.cancel()

        task = asyncio.get_running_loop().create_task(
            self._run_later(tenant_id), name=f"cache-warming:{tenant_id}"
        )
        self._pending[tenant_id] = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _run_later(self, tenant_id: str) -> None:
        await asyncio.sleep(self._delay)
        if self._pending.get(tenant_id) is asyncio.current_task():
            del self._pending[tenant_id]
        await self._run(tenant_id)

    async def _run(self, tenant_id: str) -> None:
        try:
            await self._warm(tenant_id)
        except Exception:
            logger.exception("Background cache warming failed for tenant %s", tenant_id)

    async def flush(self, tenant_id: str | None = None) -> int:
        """Cancel pending timers and run their warming passes immediately.

        Returns:
            Number of warming passes run
        """
        tenants = [tenant_id] if tenant_id is not None else list(self._pending)
        flushed = 0
        for tenant in tenants:
            task = self._pending.pop(tenant, None)
            if task is None or task.done():
                continue
            task.cancel()
            await self._run(tenant)
            flushed += 1
        return flushed

    async def cancel_all(self) -> None:
        """Cancel pending timers and in-flight passes, then wait for them."""
        tasks = list(self._running)
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
