"""Fire-and-forget and periodic background work.

Advisory side effects (cache fills, click increments, last-used updates) run
as detached ``asyncio`` tasks with their own timeout. They never share the
cancellation scope of the request that triggered them, and their failures
are logged and counted, never raised to a caller.

Flow Diagram — submit()
=======================
::
    ┌─────────────┐
    │ Request     │
    │ handler     │
    └──────┬──────┘
           ▼  submit(name, factory, timeout)
    ┌─────────────┐        ┌──────────────────┐
    │ create_task │──────▶ │ wait_for(coro,   │
    │ (tracked)   │        │          timeout)│
    └──────┬──────┘        └────────┬─────────┘
           ▼                        ▼
    ┌─────────────┐        ┌──────────────────┐
    │ Response    │        │ log + count      │
    │ returned    │        │ failures, drop   │
    └─────────────┘        └──────────────────┘

Classes:
    BackgroundDispatcher:  Tracks detached advisory tasks.
    ExpiredLinkSweeper:  Periodically deletes links past their expiry.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from prometheus_client import Counter

__all__ = ["BackgroundDispatcher", "ExpiredLinkSweeper"]

BACKGROUND_TASKS_TOTAL = Counter(
    "shortener_background_tasks_total",
    "Fire-and-forget tasks by name and outcome",
    ["task", "outcome"],
)
EXPIRED_LINKS_PURGED_TOTAL = Counter(
    "shortener_expired_links_purged_total",
    "Links removed by the expiry sweep",
)


class BackgroundDispatcher:
    """Runs advisory coroutines outside the request's lifetime."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, default_timeout: float = 2.0):
        self._logger = logger
        self._default_timeout = default_timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        name: str,
        factory: Callable[[], Awaitable[Any]],
        timeout: float | None = None,
    ) -> asyncio.Task:
        """Schedule ``factory()`` and return immediately.

        ``factory`` is called inside the new task, so even building the
        coroutine cannot raise into the caller.
        """
        task = asyncio.create_task(self._run(name, factory, timeout or self._default_timeout), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, factory: Callable[[], Awaitable[Any]], timeout: float) -> None:
        try:
            await asyncio.wait_for(factory(), timeout=timeout)
        except asyncio.TimeoutError:
            BACKGROUND_TASKS_TOTAL.labels(task=name, outcome="timeout").inc()
            self._logger.warning(f"Background task {name} timed out after {timeout}s")
        except asyncio.CancelledError:
            BACKGROUND_TASKS_TOTAL.labels(task=name, outcome="cancelled").inc()
            raise
        except Exception as exc:
            BACKGROUND_TASKS_TOTAL.labels(task=name, outcome="error").inc()
            self._logger.warning(f"Background task {name} failed: {exc}")
        else:
            BACKGROUND_TASKS_TOTAL.labels(task=name, outcome="success").inc()

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            self._logger.warning(f"Cancelled {len(still_running)} background tasks at shutdown")


class ExpiredLinkSweeper:
    """Deletes expired links on a fixed interval until stopped."""

    def __init__(
        self,
        purge: Callable[[], Awaitable[int]],
        interval_seconds: float,
        logger: logging.Logger | logging.LoggerAdapter,
        timeout_seconds: float = 30.0,
    ):
        self._purge = purge
        self._interval = interval_seconds
        self._logger = logger
        self._timeout = timeout_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._logger.info(f"Starting expired link sweep every {self._interval}s")
        self._task = asyncio.create_task(self._loop(), name="expired-link-sweep")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._logger.info("Expired link sweep stopped")

    async def run_once(self) -> int:
        try:
            count = await asyncio.wait_for(self._purge(), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._logger.error(f"Expired link sweep timed out after {self._timeout}s")
            return 0
        except Exception as exc:
            self._logger.error(f"Expired link sweep failed: {exc}")
            return 0
        if count:
            EXPIRED_LINKS_PURGED_TOTAL.inc(count)
            self._logger.info(f"Cleaned up {count} expired URLs")
        return count

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()
