"""Cancellable interval tasks for periodic re-evaluation and cleanup."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Callable

import structlog

logger = structlog.get_logger()


class PeriodicTask:
    """
    Runs ``func`` every ``interval`` seconds on the running event loop.

    A failing run is logged and the task keeps going. ``run_once`` is exposed
    so tests can drive the same callable without waiting on the loop.
    """

    def __init__(self, name: str, func: Callable[[], object], interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.func = func
        self.interval = interval
        self.runs = 0
        self.failures = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"burnwatch-{self.name}")
        logger.info("periodic_task_started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("periodic_task_stopped", task=self.name, runs=self.runs)

    def run_once(self) -> bool:
        """Run ``func`` once; returns False if it raised."""
        self.runs += 1
        try:
            self.func()
        except Exception:
            self.failures += 1
            logger.exception("periodic_task_failed", task=self.name)
            return False
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.run_once()
