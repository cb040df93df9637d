from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from burnwatch.alerts.models import Alert, AlertChannel


class DeliveryAction(str, Enum):
    TRIGGER = "trigger"
    RESOLVE = "resolve"


@dataclass(slots=True)
class DeliveryJob:
    alert: Alert
    channel: AlertChannel
    action: DeliveryAction = DeliveryAction.TRIGGER
    note: str | None = None


class DeliveryQueue:
    """asyncio-backed queue that decouples notification I/O from state changes.

    ``put`` never blocks. When the queue is bound to a running loop and called
    from another thread, the put is handed to that loop.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def put(self, job: DeliveryJob) -> None:
        loop = self._loop
        if loop is not None and loop.is_running() and not _in_loop(loop):
            loop.call_soon_threadsafe(self._queue.put_nowait, job)
            return
        self._queue.put_nowait(job)

    async def get(self) -> DeliveryJob:
        return await self._queue.get()

    def get_nowait(self) -> DeliveryJob | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def size(self) -> int:
        return self._queue.qsize()


def _in_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
