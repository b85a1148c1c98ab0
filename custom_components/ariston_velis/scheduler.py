"""Cancellable one-shot and periodic timers backed by asyncio tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

_LOGGER = logging.getLogger(__name__)


class ScheduledHandle:
    """Handle of a scheduled callback that can be cancelled once."""

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        """Return True while the callback is pending or running."""
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Cancel the callback; a no-op once it has finished."""
        if self._task is not None and not self._task.done():
            _LOGGER.debug("Cancelling scheduled callback %s", self.name)
            self._task.cancel()
        self._scheduler._release(self)  # noqa: SLF001

    async def async_wait(self) -> None:
        """Wait until the callback has finished or was cancelled."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task


class Scheduler:
    """Schedules coroutine callbacks and keeps track of live handles.

    Every handle stays registered until it completes or is cancelled, so
    ``cancel_all`` can release all pending timers on shutdown.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._handles: set[ScheduledHandle] = set()

    @property
    def pending(self) -> int:
        """Return the number of live handles."""
        return len(self._handles)

    def schedule_once(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "once",
    ) -> ScheduledHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        handle = ScheduledHandle(self, name)

        async def _run() -> None:
            try:
                await asyncio.sleep(delay)
                await callback()
            finally:
                self._release(handle)

        return self._start(handle, _run())

    def schedule_periodic(
        self,
        period: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "periodic",
    ) -> ScheduledHandle:
        """Run ``callback`` every ``period`` seconds at a fixed rate.

        Ticks are aligned to the schedule start, so a slow callback or an
        unrelated on-demand refresh never shifts later ticks. Ticks missed
        while a callback was still running are skipped.
        """
        if period <= 0:
            error_msg = f"Period must be positive, got {period}"
            raise ValueError(error_msg)
        handle = ScheduledHandle(self, name)
        start = self.clock()

        async def _run() -> None:
            tick = 1
            try:
                while True:
                    await asyncio.sleep(max(0.0, start + tick * period - self.clock()))
                    await callback()
                    elapsed = self.clock() - start
                    tick = max(tick + 1, int(elapsed // period) + 1)
            finally:
                self._release(handle)

        return self._start(handle, _run())

    def cancel_all(self) -> None:
        """Cancel every live handle."""
        for handle in list(self._handles):
            handle.cancel()

    def _start(
        self, handle: ScheduledHandle, coro: Coroutine[None, None, None]
    ) -> ScheduledHandle:
        handle._task = asyncio.get_running_loop().create_task(  # noqa: SLF001
            coro, name=f"ariston_velis_{handle.name}"
        )
        self._handles.add(handle)
        return handle

    def _release(self, handle: ScheduledHandle) -> None:
        self._handles.discard(handle)
