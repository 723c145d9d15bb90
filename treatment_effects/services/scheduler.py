"""
Cancellable periodic tasks on the asyncio event loop.

Each ``PeriodicTask`` owns exactly one asyncio task. It runs its callback
immediately on ``start()`` and then once per interval until ``stop()``.
A failing callback is logged and the loop keeps going.
"""

import asyncio
import contextlib
import inspect
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TaskCallback = Callable[[], Awaitable[None] | None]


class PeriodicTask:
    """A named, independently cancellable fixed-interval loop."""

    def __init__(self, name: str, interval_seconds: float, callback: TaskCallback) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self.run_count = 0
        self.logger = logger.bind(component="periodic_task", task=name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. No-op if already running."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        self.logger.debug("periodic_task_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.logger.debug("periodic_task_stopped", runs=self.run_count)

    async def _run_callback(self) -> None:
        outcome = self._callback()
        if inspect.isawaitable(outcome):
            await outcome

    async def _run(self) -> None:
        while True:
            started = time.perf_counter()
            try:
                await self._run_callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception("periodic_task_callback_failed", error=str(e))
            self.run_count += 1

            elapsed = time.perf_counter() - started
            sleep_time = max(0.0, self.interval_seconds - elapsed)
            if sleep_time == 0:
                self.logger.warning(
                    "periodic_task_slower_than_interval",
                    elapsed_seconds=round(elapsed, 3),
                    interval_seconds=self.interval_seconds,
                )
            await asyncio.sleep(sleep_time)
